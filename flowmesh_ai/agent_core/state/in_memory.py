"""In-memory state manager.

Safe for concurrent use by conversations running in different tasks or
threads. Running two conversations with the same id at the same time is not
supported.
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Dict, List, Optional

from ..errors import StateManagerError
from ..schemas.base import utc_now
from ..schemas.domain import ConversationState

logger = logging.getLogger(__name__)


class InMemoryStateManager:
    def __init__(self) -> None:
        self._states: Dict[str, ConversationState] = {}
        self._lock = threading.RLock()

    async def save(self, state: ConversationState) -> None:
        if not state.conversation_id:
            raise StateManagerError("", "save", "conversation id is empty")
        snapshot = state.model_copy(deep=True)
        with self._lock:
            self._states[state.conversation_id] = snapshot

    async def load(self, conversation_id: str) -> Optional[ConversationState]:
        with self._lock:
            stored = self._states.get(conversation_id)
            if stored is None:
                return None
            return stored.model_copy(deep=True)

    async def delete(self, conversation_id: str) -> None:
        with self._lock:
            self._states.pop(conversation_id, None)

    async def get_all_states(self) -> List[ConversationState]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._states.values()]

    def state_count(self) -> int:
        with self._lock:
            return len(self._states)

    async def cleanup_expired_states(self, max_age: timedelta) -> int:
        """Delete states not updated within ``max_age``. Returns the number removed."""
        cutoff = utc_now() - max_age
        with self._lock:
            expired = [cid for cid, s in self._states.items() if s.updated_at < cutoff]
            for cid in expired:
                del self._states[cid]
        if expired:
            logger.info(f"Removed {len(expired)} expired conversation states")
        return len(expired)
