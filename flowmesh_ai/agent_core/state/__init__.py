"""Function-calling conversation state persistence."""

from .in_memory import InMemoryStateManager
from .interfaces import StateManager
from .sql import SqlStateManager, create_all, create_engine, create_sessionmaker

__all__ = [
    "InMemoryStateManager",
    "SqlStateManager",
    "StateManager",
    "create_all",
    "create_engine",
    "create_sessionmaker",
]
