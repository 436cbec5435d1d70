"""Runtime dependency bundle and LangGraph state types.

The conversation manager is dependency-injected:

- ``ConversationDeps`` collects the collaborators one agent node needs.
- ``_GraphState`` is the state passed between LangGraph nodes for one run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence, TypedDict

from flowmesh_ai.core.config import FunctionCallingConfig, get_settings

from ..events import EventEmitter
from ..interfaces import LLMProvider
from ..memory import MemoryManager
from ..schemas.domain import ConversationRequest, ConversationState, LLMStreamChunk
from ..state import StateManager
from ..tools import ToolCallManager, ToolDefinition, ToolExecutor

StreamObserver = Callable[[LLMStreamChunk], Awaitable[None]]


@dataclass(frozen=True)
class ConversationDeps:
    """Dependency bundle for ``FunctionCallingConversationManager``.

    ``llm``, ``tool_call_manager`` and ``state_manager`` are required. Memory
    defaults to a no-op manager and events are dropped when no emitter is
    given. ``config`` defaults to the ``function_calling`` section of the
    process settings. ``stream_observer`` receives chunks of streaming LLM
    responses.
    """

    llm: LLMProvider
    tool_call_manager: ToolCallManager
    state_manager: StateManager
    tool_executors: Sequence[ToolExecutor] = ()
    memory: Optional[MemoryManager] = None
    emitter: Optional[EventEmitter] = None
    config: FunctionCallingConfig = field(default_factory=lambda: get_settings().function_calling)
    stream_observer: Optional[StreamObserver] = None


class _GraphState(TypedDict):
    """LangGraph state of one conversation run.

    - ``conversation``: the conversation state, mutated in place by nodes.
    - ``request``: the request that started the run.
    - ``tools``: tools discovered for this run.
    """

    conversation: ConversationState
    request: ConversationRequest
    tools: List[ToolDefinition]
