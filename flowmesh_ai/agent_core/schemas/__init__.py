"""Pydantic schemas shared across the agent core."""

from .base import BaseSchema, utc_now
from .domain import (
    ConversationContext,
    ConversationError,
    ConversationMessage,
    ConversationRequest,
    ConversationResult,
    ConversationState,
    ConversationStatus,
    ConversationStep,
    FunctionCallExecution,
    LLMRequest,
    LLMResponse,
    LLMStreamChunk,
    LLMTool,
    MessageRole,
    ToolCall,
)
from .events import (
    NodeEvent,
    NodeEventType,
    NodeExecutedEvent,
    NodeExecutionStartedEvent,
    NodeFailedEvent,
    NodeItem,
    output_port,
)
from .integration import (
    ArrayOptions,
    Integration,
    IntegrationAction,
    IntegrationInput,
    IntegrationOutput,
    MapOptions,
    NodeProperty,
    NumberOptions,
    PeekParams,
    PeekResult,
    PeekResultItem,
    PropertyOption,
    PropertyType,
    WorkflowNode,
)
from .memory import (
    AgentConversation,
    ConversationFilter,
    ConversationMemoryConfig,
    StoreConversationRequest,
)

__all__ = [
    "AgentConversation",
    "ArrayOptions",
    "BaseSchema",
    "ConversationContext",
    "ConversationError",
    "ConversationFilter",
    "ConversationMemoryConfig",
    "ConversationMessage",
    "ConversationRequest",
    "ConversationResult",
    "ConversationState",
    "ConversationStatus",
    "ConversationStep",
    "FunctionCallExecution",
    "Integration",
    "IntegrationAction",
    "IntegrationInput",
    "IntegrationOutput",
    "LLMRequest",
    "LLMResponse",
    "LLMStreamChunk",
    "LLMTool",
    "MapOptions",
    "MessageRole",
    "NodeEvent",
    "NodeEventType",
    "NodeExecutedEvent",
    "NodeExecutionStartedEvent",
    "NodeFailedEvent",
    "NodeItem",
    "NodeProperty",
    "NumberOptions",
    "PeekParams",
    "PeekResult",
    "PeekResultItem",
    "PropertyOption",
    "PropertyType",
    "StoreConversationRequest",
    "ToolCall",
    "WorkflowNode",
    "output_port",
    "utc_now",
]
