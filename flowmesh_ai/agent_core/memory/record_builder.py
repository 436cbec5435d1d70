"""Build ``AgentConversation`` records from conversation state."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..schemas.base import utc_now
from ..schemas.domain import (
    ConversationMessage,
    ConversationResult,
    ConversationState,
    ConversationStatus,
    FunctionCallExecution,
    MessageRole,
)
from ..schemas.memory import AgentConversation


def _unique_tool_names(executions: List[FunctionCallExecution]) -> List[str]:
    seen: List[str] = []
    for execution in executions:
        if execution.tool_name not in seen:
            seen.append(execution.tool_name)
    return seen


def _execution_stats(executions: List[FunctionCallExecution]) -> Dict[str, Any]:
    total = len(executions)
    successful = sum(1 for e in executions if e.success)
    total_duration = sum(e.duration_seconds for e in executions)
    return {
        "total": total,
        "successful": successful,
        "failed": total - successful,
        "total_duration": total_duration,
        "average_duration": total_duration / total if total else 0.0,
    }


def _last_assistant_content(messages: List[ConversationMessage]) -> str:
    for message in reversed(messages):
        if message.role == MessageRole.assistant and message.content.strip():
            return message.content
    return ""


class ConversationRecordBuilder:
    def __init__(self, *, agent_node_id: str = "", session_id: str = "") -> None:
        self.agent_node_id = agent_node_id
        self.session_id = session_id

    def build_from_state(
        self,
        state: ConversationState,
        *,
        status: Optional[str] = None,
        final_response: Optional[str] = None,
        extra_metadata: Optional[Dict[str, Any]] = None,
    ) -> AgentConversation:
        """
        Snapshot ``state`` as a conversation record.

        Args:
            state: Conversation state to record.
            status: Record status; defaults to the state status.
            final_response: Defaults to the last non-empty assistant message.
            extra_metadata: Merged over the computed metadata.
        """
        metadata = self._metadata(state)
        if extra_metadata:
            metadata.update(extra_metadata)
        return AgentConversation(
            conversation_id=state.conversation_id,
            session_id=self.session_id,
            workspace_id=state.workspace_id,
            agent_node_id=self.agent_node_id,
            messages=[m.model_copy(deep=True) for m in state.conversation_history],
            user_prompt=state.context.initial_prompt,
            final_response=final_response
            if final_response is not None
            else _last_assistant_content(state.conversation_history),
            tools_used=_unique_tool_names(state.tool_executions),
            status=status or state.status.value,
            metadata=metadata,
            created_at=state.created_at,
            updated_at=utc_now(),
        )

    def build_from_state_and_result(
        self, state: ConversationState, result: ConversationResult
    ) -> AgentConversation:
        return self.build_from_state(
            state,
            status=result.status.value,
            final_response=result.final_response,
            extra_metadata={
                "result_tool_executions": len(result.tool_executions),
                "total_duration": result.total_duration_seconds,
            },
        )

    def update_record_with_progress(self, record: AgentConversation, state: ConversationState) -> AgentConversation:
        """Refresh messages, tools and metadata of an existing record from ``state``."""
        updated = record.model_copy(deep=True)
        updated.messages = [m.model_copy(deep=True) for m in state.conversation_history]
        updated.tools_used = _unique_tool_names(state.tool_executions)
        updated.metadata.update(self._metadata(state))
        if state.status != ConversationStatus.running:
            updated.status = state.status.value
        updated.updated_at = utc_now()
        return updated

    @staticmethod
    def build_conversation_summary(record: AgentConversation) -> str:
        parts = [f"Conversation {record.conversation_id} ({record.status})"]
        if record.user_prompt:
            parts.append(f"prompt: {record.user_prompt}")
        if record.tools_used:
            parts.append(f"tools: {', '.join(record.tools_used)}")
        rounds = record.metadata.get("rounds")
        if rounds is not None:
            parts.append(f"rounds: {rounds}")
        return "; ".join(parts)

    def _metadata(self, state: ConversationState) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "agent_node_id": self.agent_node_id,
            "rounds": state.round,
            "tool_failures": state.tool_failures,
            "current_step": state.current_step.value,
            "execution_status": state.status.value,
            "execution_time": (state.updated_at - state.created_at).total_seconds(),
            "tool_executions": _execution_stats(state.tool_executions),
            "context_keys": sorted(state.context.extra.keys()),
        }
        if state.last_error is not None:
            metadata["last_error"] = state.last_error.model_dump(mode="json")
        return metadata
