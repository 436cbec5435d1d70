from __future__ import annotations

from datetime import timedelta
from typing import List

import pytest

from flowmesh_ai.agent_core.events import EventEmitter
from flowmesh_ai.agent_core.memory import (
    DefaultMemoryManager,
    NoOpMemoryManager,
    create_memory_manager,
)
from flowmesh_ai.agent_core.memory.manager import MEMORY_INPUT_ID
from flowmesh_ai.agent_core.schemas import (
    AgentConversation,
    ConversationContext,
    ConversationFilter,
    ConversationMemoryConfig,
    ConversationResult,
    ConversationState,
    ConversationStatus,
    NodeEvent,
    NodeEventType,
    StoreConversationRequest,
    utc_now,
)


class _Store:
    def __init__(self, conversations=None, *, fail_retrieve=False, fail_store=False) -> None:
        self.conversations: List[AgentConversation] = conversations or []
        self.fail_retrieve = fail_retrieve
        self.fail_store = fail_store
        self.filters: List[ConversationFilter] = []
        self.stored: List[StoreConversationRequest] = []

    async def retrieve_conversations(self, conversation_filter: ConversationFilter) -> List[AgentConversation]:
        self.filters.append(conversation_filter)
        if self.fail_retrieve:
            raise ConnectionError("memory store down")
        return list(self.conversations)

    async def store_conversation(self, request: StoreConversationRequest) -> None:
        if self.fail_store:
            raise ConnectionError("memory store down")
        self.stored.append(request)


class _Publisher:
    def __init__(self) -> None:
        self.events: List[NodeEvent] = []

    async def publish(self, event: NodeEvent) -> None:
        self.events.append(event)


def _config(**kwargs) -> ConversationMemoryConfig:
    defaults = dict(session_id="session-1", conversation_count=3, memory_node_id="memory-1")
    defaults.update(kwargs)
    return ConversationMemoryConfig(**defaults)


def _state() -> ConversationState:
    return ConversationState(
        conversation_id="conv-1",
        workspace_id="ws-1",
        context=ConversationContext(initial_prompt="hello"),
    )


def _prior(n: int) -> AgentConversation:
    return AgentConversation(
        conversation_id=f"old-{n}",
        user_prompt=f"earlier prompt {n}",
        final_response="earlier answer",
        status="completed",
        created_at=utc_now() - timedelta(hours=n),
    )


@pytest.mark.asyncio
async def test_noop_manager_passes_through() -> None:
    memory = NoOpMemoryManager()

    assert memory.enabled is False
    assert await memory.retrieve_context("ws") == ""
    assert await memory.enhance_system_prompt("base", "ws") == "base"
    assert await memory.store_start(_state()) is None
    assert await memory.store_complete(_state(), None) is None


def test_create_memory_manager_selects_implementation() -> None:
    assert isinstance(create_memory_manager(None, _config()), NoOpMemoryManager)
    assert isinstance(create_memory_manager(_Store(), None), NoOpMemoryManager)
    assert isinstance(create_memory_manager(_Store(), _config(enabled=False)), NoOpMemoryManager)
    assert isinstance(create_memory_manager(_Store(), _config()), DefaultMemoryManager)


def test_default_manager_requires_store() -> None:
    with pytest.raises(ValueError):
        DefaultMemoryManager(None, _config())  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_enhance_system_prompt_with_prior_conversations() -> None:
    store = _Store([_prior(1), _prior(2)])
    publisher = _Publisher()
    memory = DefaultMemoryManager(store, _config(), agent_node_id="agent-1", emitter=EventEmitter(publisher))

    prompt = await memory.enhance_system_prompt("You are helpful.", "ws-1")

    assert prompt.startswith("You are helpful.\n\n## Previous Conversation Context")
    assert "earlier prompt 1" in prompt
    conversation_filter = store.filters[0]
    assert conversation_filter.session_id == "session-1"
    assert conversation_filter.workspace_id == "ws-1"
    assert conversation_filter.limit == 3
    assert conversation_filter.status == "completed"

    assert [e.type for e in publisher.events] == [NodeEventType.node_execution_started, NodeEventType.node_executed]
    executed = publisher.events[1]
    assert executed.node_id == "memory-1"
    assert executed.items_by_input[MEMORY_INPUT_ID][0].data["operation"] == "memory_enhancement"
    assert executed.items_by_input[MEMORY_INPUT_ID][0].from_node == "agent-1"
    assert executed.items_by_output["output-memory-1-0"][0].data["conversation_count"] == 2


@pytest.mark.asyncio
async def test_retrieval_failure_returns_base_prompt() -> None:
    publisher = _Publisher()
    memory = DefaultMemoryManager(_Store(fail_retrieve=True), _config(), emitter=EventEmitter(publisher))

    assert await memory.enhance_system_prompt("base", "ws-1") == "base"
    assert await memory.retrieve_context("ws-1") == ""
    assert publisher.events[-1].type == NodeEventType.node_failed


@pytest.mark.asyncio
async def test_empty_history_leaves_prompt_unchanged() -> None:
    memory = DefaultMemoryManager(_Store(), _config())

    assert await memory.enhance_system_prompt("base", "ws-1") == "base"


@pytest.mark.asyncio
async def test_store_start_and_complete() -> None:
    store = _Store()
    memory = DefaultMemoryManager(store, _config(), agent_node_id="agent-1")
    state = _state()

    await memory.store_start(state)
    state.status = ConversationStatus.completed
    result = ConversationResult(
        conversation_id="conv-1", final_response="done", rounds=1, status=ConversationStatus.completed
    )
    await memory.store_complete(state, result)

    started, completed = store.stored
    assert started.conversation.status == "started"
    assert started.conversation.metadata["phase"] == "initialization"
    assert started.partition_key == "ws-1"
    assert started.ttl_seconds == 0
    assert completed.conversation.status == "completed"
    assert completed.conversation.final_response == "done"
    assert completed.conversation.session_id == "session-1"


@pytest.mark.asyncio
async def test_store_failures_are_swallowed() -> None:
    publisher = _Publisher()
    memory = DefaultMemoryManager(_Store(fail_store=True), _config(), emitter=EventEmitter(publisher))
    state = _state()
    state.status = ConversationStatus.failed

    await memory.store_complete(state, None)

    assert publisher.events[-1].type == NodeEventType.node_failed
    assert publisher.events[-1].items_by_input[MEMORY_INPUT_ID][0].data["status"] == "failed"


@pytest.mark.asyncio
async def test_memory_limits_default_to_process_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FLOWMESH_AI_MEMORY__RESPONSE_PREVIEW_LENGTH", "7")
    monkeypatch.setenv("FLOWMESH_AI_MEMORY__CONVERSATION_COUNT", "2")
    monkeypatch.setenv("FLOWMESH_AI_MEMORY__INCLUDE_TOOL_USAGE", "false")

    config = ConversationMemoryConfig(session_id="session-1", memory_node_id="memory-1")
    assert config.response_preview_length == 7
    assert config.conversation_count == 2
    assert config.include_tool_usage is False

    store = _Store([_prior(1)])
    context = await DefaultMemoryManager(store, config).retrieve_context("ws-1")

    assert context.endswith("Agent Response: earlier...")
    assert "earlier answer" not in context
    assert store.filters[0].limit == 2
    assert store.filters[0].include_tools is False
