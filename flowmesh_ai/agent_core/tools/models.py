"""Tool executor bindings, tool definitions and tool call results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field

from ..parameters.resolver import ParameterResolution
from ..schemas.base import BaseSchema, utc_now
from ..schemas.integration import IntegrationAction, WorkflowNode


@dataclass(frozen=True)
class ToolExecutor:
    """An integration node bound to an agent as one or more callable tools.

    Attributes
    ----------
    executor:
        Object implementing ``IntegrationExecutor`` (and optionally
        ``PeekableIntegrationExecutor``).
    workflow_node:
        The node owning the tool; provides preset settings and the paths the
        agent is authorized to set. Required.
    allowed_actions:
        Action types exposed to the agent. Empty means every action.
    """

    executor: Any
    integration_type: str
    node_id: str
    workflow_node: WorkflowNode
    node_name: str = ""
    credential_id: str = ""
    workspace_id: str = ""
    allowed_actions: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.executor is None:
            raise ValueError(f"tool executor for node {self.node_id} has no integration executor")
        if self.workflow_node is None:
            raise ValueError(f"tool executor for node {self.node_id} has no workflow node")

    def allows(self, action_type: str) -> bool:
        return not self.allowed_actions or action_type in self.allowed_actions


@dataclass
class ToolDefinition:
    name: str
    description: str
    parameters: Dict[str, Any]
    action_type: str
    tool_executor: ToolExecutor
    action: Optional[IntegrationAction] = field(default=None, repr=False)


class ToolCallResult(BaseSchema):
    tool_name: str
    tool_call_id: str = ""
    action_type: str = ""
    node_id: str = ""
    success: bool
    result: Any = None
    error: Optional[str] = None
    duration_seconds: float = 0.0
    start_time: datetime = Field(default_factory=utc_now)
    end_time: datetime = Field(default_factory=utc_now)
    resolved_settings: Dict[str, Any] = Field(default_factory=dict)
    resolution_log: List[ParameterResolution] = Field(default_factory=list)
