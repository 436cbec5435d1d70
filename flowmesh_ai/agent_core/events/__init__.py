"""Node execution events and streaming relay."""

from .publisher import EventEmitter, EventPublisher, WorkflowExecutionContext
from .relay import StreamRelay

__all__ = [
    "EventEmitter",
    "EventPublisher",
    "StreamRelay",
    "WorkflowExecutionContext",
]
