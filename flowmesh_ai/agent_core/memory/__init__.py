"""Conversation memory: prior-conversation context and conversation records."""

from .context_builder import MemoryContextBuilder
from .interfaces import ConversationStore
from .manager import (
    DefaultMemoryManager,
    MemoryManager,
    NoOpMemoryManager,
    create_memory_manager,
)
from .record_builder import ConversationRecordBuilder

__all__ = [
    "ConversationRecordBuilder",
    "ConversationStore",
    "DefaultMemoryManager",
    "MemoryContextBuilder",
    "MemoryManager",
    "NoOpMemoryManager",
    "create_memory_manager",
]
