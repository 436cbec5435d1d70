"""The function-calling conversation manager and its prompt helpers."""

from .engine import FunctionCallingConversationManager, format_tool_result
from .models import ConversationDeps, StreamObserver
from .prompts import build_system_prompt, describe_peekable_data, describe_tools

__all__ = [
    "ConversationDeps",
    "FunctionCallingConversationManager",
    "StreamObserver",
    "build_system_prompt",
    "describe_peekable_data",
    "describe_tools",
    "format_tool_result",
]
