"""SQLAlchemy ORM models for conversation state persistence.

Table names are prefixed with ``fm_`` to avoid collisions in shared databases.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class ConversationStateRow(Base):
    """Row model for ``fm_conversation_states``.

    ``state`` holds the JSON dump of a ``ConversationState``; ``status`` and
    ``updated_at`` are duplicated as columns for housekeeping queries.
    """

    __tablename__ = "fm_conversation_states"

    conversation_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    workspace_id: Mapped[str] = mapped_column(String(128), index=True)
    status: Mapped[str] = mapped_column(String(32))
    state: Mapped[Dict[str, Any]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
