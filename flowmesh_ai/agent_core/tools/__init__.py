"""Tool discovery, JSON-Schema generation and tool call execution."""

from .manager import TOOL_CALL_INPUT_ID, ToolCallManager, tool_name_for
from .models import ToolCallResult, ToolDefinition, ToolExecutor
from .schema_builder import ToolSchemaBuilder

__all__ = [
    "TOOL_CALL_INPUT_ID",
    "ToolCallManager",
    "ToolCallResult",
    "ToolDefinition",
    "ToolExecutor",
    "ToolSchemaBuilder",
    "tool_name_for",
]
