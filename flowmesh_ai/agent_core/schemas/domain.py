from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import Field, field_validator

from .base import BaseSchema, utc_now


class ConversationStep(str, Enum):
    llm_call = "llm_call"
    tool_execution = "tool_execution"
    completed = "completed"


class ConversationStatus(str, Enum):
    running = "running"
    completed = "completed"
    failed = "failed"
    paused = "paused"


class MessageRole(str, Enum):
    user = "user"
    assistant = "assistant"
    tool = "tool"


class ToolCall(BaseSchema):
    """A tool call requested by the model.

    Providers deliver arguments either as a mapping or as a JSON string; both
    are normalized to a dict. Unparseable strings become ``{}``.
    """

    id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("arguments", mode="before")
    @classmethod
    def _parse_arguments(cls, value: Any) -> Any:
        if value is None or value == "":
            return {}
        if isinstance(value, (str, bytes)):
            try:
                parsed = json.loads(value)
            except ValueError:
                return {}
            return parsed if isinstance(parsed, dict) else {}
        return value


class ConversationMessage(BaseSchema):
    role: MessageRole
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class ConversationError(BaseSchema):
    """Snapshot of the last failure, kept for diagnostics only."""

    type: str
    message: str
    round: int
    step: ConversationStep
    recoverable: bool
    timestamp: datetime = Field(default_factory=utc_now)


class FunctionCallExecution(BaseSchema):
    """One tool call executed during a conversation."""

    round: int
    tool_call_id: str
    tool_name: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    start_time: datetime
    end_time: datetime
    success: bool
    result: Any = None
    error: Optional[str] = None
    duration_seconds: float = 0.0
    node_id: Optional[str] = None
    integration_type: Optional[str] = None
    action_type: Optional[str] = None


class ConversationContext(BaseSchema):
    initial_prompt: str = ""
    available_tools: List[str] = Field(default_factory=list)
    extra: Dict[str, Any] = Field(default_factory=dict)


class ConversationState(BaseSchema):
    """Durable snapshot of a function-calling conversation.

    Owned by the conversation manager during a run and externalized through a
    ``StateManager`` between steps.
    """

    conversation_id: str = Field(default_factory=lambda: str(uuid4()))
    workspace_id: str = ""
    current_step: ConversationStep = ConversationStep.llm_call
    round: int = Field(default=0, ge=0)
    conversation_history: List[ConversationMessage] = Field(default_factory=list)
    tool_executions: List[FunctionCallExecution] = Field(default_factory=list)
    tool_failures: int = Field(default=0, ge=0)
    status: ConversationStatus = ConversationStatus.running
    last_error: Optional[ConversationError] = None
    context: ConversationContext = Field(default_factory=ConversationContext)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def touch(self) -> None:
        self.updated_at = utc_now()


class ConversationRequest(BaseSchema):
    """Input of one agent-node execution."""

    conversation_id: str = Field(default_factory=lambda: str(uuid4()))
    workspace_id: str
    initial_prompt: str
    system_prompt: Optional[str] = Field(default=None, description="Custom system prompt, enriched with tool info")
    model: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    agent_node_id: str = Field(default="", description="Workflow node id of the agent itself")
    llm_node_id: str = Field(default="", description="Workflow node id providing the language model")


class ConversationResult(BaseSchema):
    conversation_id: str
    final_response: str
    rounds: int
    tool_executions: List[FunctionCallExecution] = Field(default_factory=list)
    tool_failures: int = 0
    status: ConversationStatus
    total_duration_seconds: float = 0.0
    conversation_history: List[ConversationMessage] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


# =====================================================================
# LLM provider contract
# =====================================================================


class LLMTool(BaseSchema):
    name: str
    description: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


class LLMRequest(BaseSchema):
    messages: List[ConversationMessage] = Field(default_factory=list)
    tools: List[LLMTool] = Field(default_factory=list)
    system_prompt: str = ""
    temperature: float = 0.7
    max_tokens: int = 4096
    model: Optional[str] = None


class LLMResponse(BaseSchema):
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Dict[str, Any] = Field(default_factory=dict)


class LLMStreamChunk(BaseSchema):
    """Incremental piece of a streamed LLM response."""

    content_delta: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    finish_reason: Optional[str] = None
