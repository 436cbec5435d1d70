from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from flowmesh_ai.core.config import MemoryConfig, get_settings

from .base import BaseSchema, utc_now
from .domain import ConversationMessage


class AgentConversation(BaseSchema):
    """Conversation record kept by the external memory store."""

    conversation_id: str
    session_id: str = ""
    workspace_id: str = ""
    agent_node_id: str = ""
    messages: List[ConversationMessage] = Field(default_factory=list)
    user_prompt: str = ""
    final_response: str = ""
    tools_used: List[str] = Field(default_factory=list)
    status: str = "started"
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ConversationFilter(BaseSchema):
    session_id: str = ""
    workspace_id: str = ""
    limit: int = 5
    status: Optional[str] = None
    include_tools: bool = True


class StoreConversationRequest(BaseSchema):
    conversation: AgentConversation
    partition_key: str = ""
    ttl_seconds: int = 0


def _memory_settings() -> MemoryConfig:
    return get_settings().memory


class ConversationMemoryConfig(BaseSchema):
    """Per-agent memory binding, usually taken from the memory node settings.

    Limits not given by the node fall back to the ``memory`` section of the
    process settings.
    """

    enabled: bool = True
    session_id: str = ""
    conversation_count: int = Field(default_factory=lambda: _memory_settings().conversation_count, ge=0)
    include_tool_usage: bool = Field(default_factory=lambda: _memory_settings().include_tool_usage)
    max_context_length: int = Field(default_factory=lambda: _memory_settings().max_context_length, ge=0)
    response_preview_length: int = Field(
        default_factory=lambda: _memory_settings().response_preview_length, ge=1
    )
    memory_node_id: str = ""
