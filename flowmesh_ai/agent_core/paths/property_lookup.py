"""Locate the ``NodeProperty`` schema that a property path points to."""

from __future__ import annotations

from typing import List, Optional, Sequence

from ..errors import PathError
from ..schemas.integration import NodeProperty, PropertyType
from .property_path import parse_path


def _children(prop: NodeProperty) -> List[NodeProperty]:
    if prop.type == PropertyType.array and prop.array_opts is not None:
        return list(prop.array_opts.item_properties)
    if prop.type == PropertyType.map and prop.map_opts is not None:
        return list(prop.map_opts.properties)
    return list(prop.sub_node_properties)


def find_property(properties: Sequence[NodeProperty], path: str) -> Optional[NodeProperty]:
    """Return the property addressed by ``path``, or None when the schema has no such property.

    Array indices in the path are ignored: every element of an array of
    objects shares the item schema.
    """
    try:
        segments = parse_path(path)
    except PathError:
        return None

    current: List[NodeProperty] = list(properties)
    found: Optional[NodeProperty] = None
    for segment in segments:
        found = next((p for p in current if p.key == segment.name), None)
        if found is None:
            return None
        current = _children(found)
    return found
