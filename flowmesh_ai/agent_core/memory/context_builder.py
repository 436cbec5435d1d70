"""Format prior conversations into prompt context."""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

from ..schemas.memory import AgentConversation

TRUNCATION_MARKER = "\n\n[Context truncated due to length...]"

CONTEXT_HEADER = (
    "## Previous Conversation Context\n"
    "Here is relevant context from previous conversations with this agent:\n\n"
)

CONTEXT_FOOTER = (
    "\n\nUse this context to provide better assistance and maintain continuity, "
    "but focus primarily on the current user request."
)


class MemoryContextBuilder:
    """Turn ``AgentConversation`` records into a bounded block of prompt text.

    ``max_context_length`` of 0 disables truncation.
    """

    def __init__(
        self,
        *,
        max_context_length: int = 2000,
        include_tools: bool = True,
        response_preview_length: int = 200,
        conversation_limit: int = 5,
    ) -> None:
        self.max_context_length = max_context_length
        self.include_tools = include_tools
        self.response_preview_length = response_preview_length
        self.conversation_limit = conversation_limit

    def build_context(self, conversations: Sequence[AgentConversation]) -> str:
        if not conversations:
            return ""
        if len(conversations) == 1:
            text = self.format_conversation(conversations[0])
        else:
            text = self.format_conversations(conversations)
        return self.truncate(text)

    def format_conversation(self, conversation: AgentConversation) -> str:
        lines = [f"**Conversation from {conversation.created_at.strftime('%Y-%m-%d %H:%M')}:**"]
        if conversation.user_prompt:
            lines.append(f"User Request: {conversation.user_prompt}")
        if conversation.final_response:
            lines.append(f"Agent Response: {self._preview(conversation.final_response)}")
        if self.include_tools and conversation.tools_used:
            lines.append(f"Tools Used: {', '.join(conversation.tools_used)}")

        metadata = conversation.metadata
        execution_time = metadata.get("execution_time")
        if isinstance(execution_time, (int, float)):
            lines.append(f"Execution Time: {execution_time:.2f}s")
        tool_failures = metadata.get("tool_failures")
        if isinstance(tool_failures, int) and tool_failures > 0:
            lines.append(f"Tool Failures: {tool_failures}")
        if conversation.status != "completed":
            lines.append(f"Status: {conversation.status}")
        return "\n".join(lines)

    def format_conversations(self, conversations: Sequence[AgentConversation]) -> str:
        """Oldest first, newest last, at most ``conversation_limit`` entries."""
        ordered = sorted(conversations, key=lambda c: c.created_at)
        if self.conversation_limit > 0:
            ordered = ordered[-self.conversation_limit :]
        return "## Recent Conversations\n\n" + "\n\n".join(self.format_conversation(c) for c in ordered)

    def format_raw(self, data: Dict[str, Any]) -> str:
        """Format a plain key/value context, for stores returning raw data."""
        if not data:
            return ""
        lines: List[str] = ["## Previous Context"]
        lines.extend(f"- {key}: {value}" for key, value in data.items())
        return self.truncate("\n".join(lines))

    def truncate(self, text: str) -> str:
        """Cut ``text`` to the budget, at a sentence boundary when one lies past the middle."""
        limit = self.max_context_length
        if limit <= 0 or len(text) <= limit:
            return text
        cut = text[:limit]
        boundary = cut.rfind(". ")
        if boundary > limit // 2:
            cut = cut[: boundary + 1]
        return cut + TRUNCATION_MARKER

    @staticmethod
    def enhance_system_prompt(base_prompt: str, context: str) -> str:
        if not context:
            return base_prompt
        return f"{base_prompt}\n\n{CONTEXT_HEADER}{context}{CONTEXT_FOOTER}"

    def _preview(self, text: str) -> str:
        if len(text) <= self.response_preview_length:
            return text
        return text[: self.response_preview_length] + "..."
