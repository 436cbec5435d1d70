"""SQLAlchemy async state manager.

Usage
-----

- Create an async engine with ``create_engine``.
- Create tables with ``create_all`` (for tests/dev; production typically uses
  migrations).
- Create a session factory with ``create_sessionmaker``.
- Build the manager with ``SqlStateManager(session_factory)``.

Each method opens an ``AsyncSession``, performs its operation and commits, so
a saved state is durable when ``save`` returns. States are stored as JSON and
re-validated on load, which gives callers an independent copy.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..errors import StateManagerError
from ..schemas.base import utc_now
from ..schemas.domain import ConversationState
from .models import Base, ConversationStateRow

logger = logging.getLogger(__name__)


def create_engine(db_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Postgres URLs are normalized to the ``asyncpg`` driver; other URLs (for
    example ``sqlite+aiosqlite://``) are used as given.
    """
    url = re.sub(r"^postgres(?:ql)?(?:\+[a-z0-9_]+)?://", "postgresql+asyncpg://", db_url, count=1)
    return create_async_engine(url, pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an ``async_sessionmaker`` with safe defaults for this project."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables for the current ORM metadata."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@dataclass(frozen=True)
class SqlStateManager:
    """SQL implementation of ``StateManager``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def save(self, state: ConversationState) -> None:
        """
        Insert or replace the stored state.

        Args:
            state: The conversation state to persist.
        """
        payload = state.model_dump(mode="json")
        try:
            async with self.session_factory() as s:
                row = await s.get(ConversationStateRow, state.conversation_id)
                if row is None:
                    s.add(
                        ConversationStateRow(
                            conversation_id=state.conversation_id,
                            workspace_id=state.workspace_id,
                            status=state.status.value,
                            state=payload,
                            created_at=state.created_at,
                            updated_at=state.updated_at,
                        )
                    )
                else:
                    row.workspace_id = state.workspace_id
                    row.status = state.status.value
                    row.state = payload
                    row.updated_at = state.updated_at
                await s.commit()
        except SQLAlchemyError as e:
            raise StateManagerError(state.conversation_id, "save", str(e)) from e

    async def load(self, conversation_id: str) -> Optional[ConversationState]:
        """
        Load a stored state.

        Args:
            conversation_id: The conversation identifier.

        Returns:
            The state, or None if not found.
        """
        try:
            async with self.session_factory() as s:
                row = await s.get(ConversationStateRow, conversation_id)
                if row is None:
                    return None
                return ConversationState.model_validate(row.state)
        except SQLAlchemyError as e:
            raise StateManagerError(conversation_id, "load", str(e)) from e

    async def delete(self, conversation_id: str) -> None:
        async with self.session_factory() as s:
            await s.execute(delete(ConversationStateRow).where(ConversationStateRow.conversation_id == conversation_id))
            await s.commit()

    async def get_all_states(self) -> List[ConversationState]:
        async with self.session_factory() as s:
            rows = (await s.execute(select(ConversationStateRow))).scalars().all()
            return [ConversationState.model_validate(r.state) for r in rows]

    async def state_count(self) -> int:
        async with self.session_factory() as s:
            return int((await s.execute(select(func.count()).select_from(ConversationStateRow))).scalar_one())

    async def cleanup_expired_states(self, max_age: timedelta) -> int:
        """Delete states not updated within ``max_age``. Returns the number removed."""
        cutoff = utc_now() - max_age
        async with self.session_factory() as s:
            result = await s.execute(delete(ConversationStateRow).where(ConversationStateRow.updated_at < cutoff))
            await s.commit()
        removed = result.rowcount or 0
        if removed:
            logger.info(f"Removed {removed} expired conversation states")
        return removed
