"""Build LLM-facing JSON-Schema objects from integration property schemas.

The paths a node authorizes the agent to set become tool parameters.
Top-level paths map to their property schema; nested paths such as
``items[0].name`` become flat parameters named after the path. The other
visible properties of the action are listed read-only, marked as
pre-configured, and never required.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from ..parameters import SPECIAL_KEYS
from ..paths import PathAccessor, find_property, is_valid_path, root_property
from ..schemas.integration import IntegrationAction, NodeProperty, PropertyType, WorkflowNode

logger = logging.getLogger(__name__)

PRECONFIGURED_NOTE = "Pre-configured by the workflow; values sent for it are ignored."

_STRING_TYPES = {
    PropertyType.string,
    PropertyType.text,
    PropertyType.code,
    PropertyType.credential,
    PropertyType.tag_input,
}


class ToolSchemaBuilder:
    def __init__(self, accessor: PathAccessor | None = None) -> None:
        self._accessor = accessor or PathAccessor()

    def build(self, action: IntegrationAction, workflow_node: WorkflowNode) -> Dict[str, Any]:
        """
        Build the ``parameters`` object of a tool.

        Args:
            action: Integration action with its property schemas.
            workflow_node: Node providing authorized paths and presets.

        Returns:
            A JSON-Schema ``object`` with ``properties`` and ``required``.
        """
        properties: Dict[str, Any] = {}
        required: List[str] = []
        for path in workflow_node.provided_by_agent:
            if path in properties:
                continue
            if not is_valid_path(path):
                logger.warning(f"Skipping malformed agent-authorized path '{path}' in tool schema")
                continue
            prop = find_property(action.properties, path)
            if prop is None:
                logger.debug(f"Action {action.action_type} has no property for path '{path}'")
                continue
            schema = self.property_schema(prop)
            if path != prop.key:
                schema["description"] = f"{schema.get('description', '')} (path: {path})".strip()
            properties[path] = schema
            if prop.required and not self._accessor.has(workflow_node.integration_settings, path):
                required.append(path)

        authorized_roots = {root_property(path) for path in properties}
        for prop in action.properties:
            if prop.hidden or prop.key in SPECIAL_KEYS or prop.key in authorized_roots:
                continue
            properties[prop.key] = self.preconfigured_schema(prop)

        return {"type": "object", "properties": properties, "required": required}

    def preconfigured_schema(self, prop: NodeProperty) -> Dict[str, Any]:
        """Schema of a property the workflow node sets; values sent by the model are ignored."""
        schema = self.property_schema(prop)
        description = schema.get("description", "")
        schema["description"] = f"{PRECONFIGURED_NOTE} {description}".strip()
        schema["readOnly"] = True
        return schema

    def property_schema(self, prop: NodeProperty) -> Dict[str, Any]:
        """Map one property to a JSON-Schema fragment."""
        if prop.options:
            schema = self._options_schema(prop)
        elif prop.type in _STRING_TYPES:
            schema = self._string_schema(prop)
        elif prop.type == PropertyType.number:
            schema = self._number_schema(prop)
        elif prop.type == PropertyType.boolean:
            schema = {"type": "boolean"}
        elif prop.type in (PropertyType.array, PropertyType.list_tag_input):
            schema = self._array_schema(prop)
        elif prop.type in (PropertyType.map, PropertyType.json):
            schema = self._object_schema(prop.map_opts.properties if prop.map_opts else prop.sub_node_properties)
        else:
            schema = {"type": "string"}

        description = prop.description or prop.name
        if description:
            schema["description"] = description
        return schema

    @staticmethod
    def _string_schema(prop: NodeProperty) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": "string"}
        if prop.min_length is not None:
            schema["minLength"] = prop.min_length
        if prop.max_length is not None:
            schema["maxLength"] = prop.max_length
        if prop.pattern:
            schema["pattern"] = prop.pattern
        return schema

    @staticmethod
    def _number_schema(prop: NodeProperty) -> Dict[str, Any]:
        opts = prop.number_opts
        schema: Dict[str, Any] = {"type": "integer" if opts is not None and opts.integer else "number"}
        if opts is not None:
            if opts.min is not None:
                schema["minimum"] = opts.min
            if opts.max is not None:
                schema["maximum"] = opts.max
        return schema

    @staticmethod
    def _options_schema(prop: NodeProperty) -> Dict[str, Any]:
        values = [o.value for o in prop.options]
        if all(isinstance(v, bool) for v in values):
            json_type = "boolean"
        elif all(isinstance(v, int) and not isinstance(v, bool) for v in values):
            json_type = "integer"
        elif all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in values):
            json_type = "number"
        else:
            json_type = "string"
            values = [str(v) for v in values]
        schema: Dict[str, Any] = {"type": json_type, "enum": values}
        if prop.type == PropertyType.array:
            return {"type": "array", "items": schema}
        return schema

    def _array_schema(self, prop: NodeProperty) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": "array"}
        opts = prop.array_opts
        if prop.type == PropertyType.list_tag_input:
            schema["items"] = {"type": "string"}
        elif opts is not None and opts.item_properties:
            schema["items"] = self._object_schema(opts.item_properties)
        elif opts is not None and opts.item_type is not None:
            schema["items"] = self.property_schema(NodeProperty(key="item", type=opts.item_type))
        else:
            schema["items"] = {"type": "object"}

        if opts is not None:
            if opts.min_items is not None:
                schema["minItems"] = opts.min_items
            if opts.max_items is not None:
                schema["maxItems"] = opts.max_items
        return schema

    def _object_schema(self, properties: Sequence[NodeProperty]) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": "object"}
        if properties:
            schema["properties"] = {p.key: self.property_schema(p) for p in properties if not p.hidden}
            required = [p.key for p in properties if p.required and not p.hidden]
            if required:
                schema["required"] = required
        return schema
