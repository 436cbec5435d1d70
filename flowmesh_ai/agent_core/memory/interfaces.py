"""Conversation store interface contract.

Backends (Redis, MongoDB, Postgres, platform-native stores) implement this
Protocol. Consistency and retention of stored records belong to the backend.
"""

from __future__ import annotations

from typing import List, Protocol

from ..schemas.memory import AgentConversation, ConversationFilter, StoreConversationRequest


class ConversationStore(Protocol):
    """Persist and query agent conversation records."""

    async def retrieve_conversations(self, conversation_filter: ConversationFilter) -> List[AgentConversation]:
        """
        Retrieve conversations matching a filter.

        Args:
            conversation_filter: Session, workspace, limit, status and tool inclusion.

        Returns:
            Matching conversations, most recent first.
        """
        ...

    async def store_conversation(self, request: StoreConversationRequest) -> None:
        """
        Insert or update a conversation record.

        Args:
            request: The record with its partition key and TTL (0 keeps it forever).
        """
        ...
