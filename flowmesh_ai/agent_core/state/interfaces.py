"""State manager interface contract.

Implementations must isolate stored state from callers: ``save`` stores a
copy and ``load`` returns a fresh copy, so mutating an object on one side never
changes the other. A conversation that is not found is reported as ``None``:
for the conversation manager it means "start fresh".
"""

from __future__ import annotations

from typing import Optional, Protocol

from ..schemas.domain import ConversationState


class StateManager(Protocol):
    """Persist function-calling conversation state keyed by conversation id."""

    async def save(self, state: ConversationState) -> None:
        """
        Insert or replace the state of ``state.conversation_id``.

        Args:
            state: The state to persist.

        Raises:
            StateManagerError: If the state cannot be persisted.
        """
        ...

    async def load(self, conversation_id: str) -> Optional[ConversationState]:
        """
        Load a conversation state.

        Args:
            conversation_id: The conversation identifier.

        Returns:
            A copy of the stored state, or None if not found.
        """
        ...

    async def delete(self, conversation_id: str) -> None:
        """
        Delete a conversation state. Unknown ids are a no-op.

        Args:
            conversation_id: The conversation identifier.
        """
        ...
