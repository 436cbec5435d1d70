"""Integration metadata and integration executor payloads.

These models describe what the agent core reads from the workflow platform:
the action catalogue of an integration (with its property schemas), the
workflow node an agent tool is bound to, and the request/response shapes of
integration executors (``execute`` and the optional ``peek`` lookup).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import BaseSchema


class PropertyType(str, Enum):
    string = "string"
    text = "text"
    code = "code"
    number = "number"
    boolean = "boolean"
    array = "array"
    map = "map"
    options = "options"
    json = "json"
    tag_input = "tag_input"
    list_tag_input = "list_tag_input"
    credential = "credential"


class PropertyOption(BaseSchema):
    label: str
    value: Any
    description: str = ""


class NumberOptions(BaseSchema):
    integer: bool = False
    min: Optional[float] = None
    max: Optional[float] = None


class ArrayOptions(BaseSchema):
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    item_type: Optional[PropertyType] = None
    item_properties: List[NodeProperty] = Field(default_factory=list)


class MapOptions(BaseSchema):
    properties: List[NodeProperty] = Field(default_factory=list)


class NodeProperty(BaseSchema):
    """Schema of one configurable property of an integration action."""

    key: str
    name: str = ""
    description: str = ""
    required: bool = False
    type: PropertyType = PropertyType.string
    options: List[PropertyOption] = Field(default_factory=list)
    number_opts: Optional[NumberOptions] = None
    array_opts: Optional[ArrayOptions] = None
    map_opts: Optional[MapOptions] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    peekable: bool = False
    peekable_type: Optional[str] = None
    hidden: bool = False
    sub_node_properties: List[NodeProperty] = Field(default_factory=list)


class IntegrationAction(BaseSchema):
    action_type: str
    name: str
    description: str = ""
    properties: List[NodeProperty] = Field(default_factory=list)


class Integration(BaseSchema):
    integration_type: str
    name: str = ""
    description: str = ""
    actions: List[IntegrationAction] = Field(default_factory=list)


class WorkflowNode(BaseSchema):
    """Read-only view of the workflow node that owns a tool executor."""

    id: str
    name: str = ""
    integration_type: str
    action_type: str = ""
    integration_settings: Dict[str, Any] = Field(default_factory=dict)
    provided_by_agent: List[str] = Field(
        default_factory=list, description="Property paths the agent is authorized to set"
    )


class PeekParams(BaseSchema):
    peekable_type: str
    workspace_id: str = ""
    credential_id: str = ""
    payload: Dict[str, Any] = Field(default_factory=dict)


class PeekResultItem(BaseSchema):
    key: str = ""
    value: Any = None
    content: str = ""


class PeekResult(BaseSchema):
    result: List[PeekResultItem] = Field(default_factory=list)


class IntegrationInput(BaseSchema):
    node_id: str = ""
    workspace_id: str = ""
    credential_id: str = ""
    action_type: str
    settings: Dict[str, Any] = Field(default_factory=dict)
    payload_by_input_id: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)


class IntegrationOutput(BaseSchema):
    result_payloads_by_output_index: List[Any] = Field(default_factory=list)


ArrayOptions.model_rebuild()
MapOptions.model_rebuild()
NodeProperty.model_rebuild()
