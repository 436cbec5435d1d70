"""Node execution events published for execution history views.

Every event carries the workflow node id it is attributed to, so the
surrounding executor can rebuild the graph of an agent run (agent node, LLM
node, memory node and the tool nodes the agent called).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import Field

from .base import BaseSchema, utc_now


class NodeEventType(str, Enum):
    node_execution_started = "node.execution_started"
    node_executed = "node.executed"
    node_failed = "node.failed"


class NodeItem(BaseSchema):
    """One item flowing into or out of a node."""

    data: Dict[str, Any] = Field(default_factory=dict)
    from_node: Optional[str] = None


ItemsByPort = Dict[str, List[NodeItem]]


class _NodeEventBase(BaseSchema):
    node_id: str
    workflow_id: str = ""
    execution_id: str = ""
    timestamp: datetime = Field(default_factory=utc_now)


class NodeExecutionStartedEvent(_NodeEventBase):
    type: NodeEventType = NodeEventType.node_execution_started


class NodeExecutedEvent(_NodeEventBase):
    type: NodeEventType = NodeEventType.node_executed
    items_by_input: ItemsByPort = Field(default_factory=dict)
    items_by_output: ItemsByPort = Field(default_factory=dict)


class NodeFailedEvent(_NodeEventBase):
    type: NodeEventType = NodeEventType.node_failed
    error: str
    items_by_input: ItemsByPort = Field(default_factory=dict)


NodeEvent = Union[NodeExecutionStartedEvent, NodeExecutedEvent, NodeFailedEvent]


def output_port(node_id: str, index: int = 0) -> str:
    return f"output-{node_id}-{index}"
