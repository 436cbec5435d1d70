"""Property paths over nested settings trees."""

from .accessor import PathAccessor
from .property_lookup import find_property
from .property_path import (
    PathSegment,
    add_path,
    build_path,
    contains_path,
    filter_paths_by_prefix,
    is_valid_path,
    leaf_property,
    parent_path,
    parse_path,
    path_steps,
    remove_path,
    root_property,
    update_paths_on_array_remove,
)

__all__ = [
    "PathAccessor",
    "PathSegment",
    "add_path",
    "build_path",
    "find_property",
    "contains_path",
    "filter_paths_by_prefix",
    "is_valid_path",
    "leaf_property",
    "parent_path",
    "parse_path",
    "path_steps",
    "remove_path",
    "root_property",
    "update_paths_on_array_remove",
]
