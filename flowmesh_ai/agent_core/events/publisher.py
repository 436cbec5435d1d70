"""Event publishing for node execution history.

``EventEmitter`` is what the agent core calls. It stamps events with the
workflow identifiers of the current execution and never lets a publishing
failure reach the run: errors are logged and dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from ..schemas.events import (
    ItemsByPort,
    NodeEvent,
    NodeExecutedEvent,
    NodeExecutionStartedEvent,
    NodeFailedEvent,
)

logger = logging.getLogger(__name__)


class EventPublisher(Protocol):
    """Deliver node events to observers (execution history, live views)."""

    async def publish(self, event: NodeEvent) -> None:
        """
        Publish one event.

        Args:
            event: Started, executed or failed event of a workflow node.
        """
        ...


@dataclass
class WorkflowExecutionContext:
    """Identifiers of the surrounding workflow execution.

    ``tool_executions`` collects a short record per tool call so the
    surrounding executor can report which nodes the agent used.
    """

    workflow_id: str = ""
    execution_id: str = ""
    enable_events: bool = True
    tool_executions: List[Dict[str, Any]] = field(default_factory=list)

    def record_tool_execution(self, record: Dict[str, Any]) -> None:
        self.tool_executions.append(record)


class EventEmitter:
    def __init__(
        self,
        publisher: Optional[EventPublisher] = None,
        context: Optional[WorkflowExecutionContext] = None,
    ) -> None:
        self._publisher = publisher
        self._context = context or WorkflowExecutionContext()

    @property
    def context(self) -> WorkflowExecutionContext:
        return self._context

    @property
    def enabled(self) -> bool:
        return self._publisher is not None and self._context.enable_events

    async def node_started(self, node_id: str) -> None:
        await self._emit(NodeExecutionStartedEvent(node_id=node_id, **self._ids()))

    async def node_executed(
        self,
        node_id: str,
        *,
        items_by_input: Optional[ItemsByPort] = None,
        items_by_output: Optional[ItemsByPort] = None,
    ) -> None:
        await self._emit(
            NodeExecutedEvent(
                node_id=node_id,
                items_by_input=items_by_input or {},
                items_by_output=items_by_output or {},
                **self._ids(),
            )
        )

    async def node_failed(self, node_id: str, error: str, *, items_by_input: Optional[ItemsByPort] = None) -> None:
        await self._emit(
            NodeFailedEvent(node_id=node_id, error=error, items_by_input=items_by_input or {}, **self._ids())
        )

    def _ids(self) -> Dict[str, str]:
        return {"workflow_id": self._context.workflow_id, "execution_id": self._context.execution_id}

    async def _emit(self, event: NodeEvent) -> None:
        if not self.enabled or not event.node_id:
            return
        try:
            await self._publisher.publish(event)  # type: ignore[union-attr]
        except Exception as e:
            logger.warning(f"Failed to publish {event.type.value} event for node {event.node_id}: {e}")
