"""Dotted and bracket-indexed property paths.

A property path addresses a value inside a nested settings tree, for example
``users[0].messages[1].text`` or ``matrix[2][0]``. Paths are ``.``-separated
segments; every segment is a key optionally followed by one or more ``[N]``
indices with ``N`` a non-negative integer.

Besides parsing, this module carries the list utilities used to maintain the
agent-authorized path lists of workflow nodes (add/remove entries, keep paths
consistent when an array element is removed, prefix filtering).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

from ..errors import PathError

MAX_ARRAY_INDEX = 999_999

_ALLOWED_CHARS = re.compile(r"^[a-zA-Z0-9._\-\[\]]+$")
_SEGMENT = re.compile(r"^([^\[\]]+)((?:\[\d+\])*)$")
_INDEX = re.compile(r"\[(\d+)\]")

Step = Union[str, int]


@dataclass(frozen=True)
class PathSegment:
    """A key with the (possibly empty) chain of indices applied to it."""

    name: str
    indices: Tuple[int, ...] = ()

    def __str__(self) -> str:
        return self.name + "".join(f"[{i}]" for i in self.indices)


def parse_path(path: str) -> List[PathSegment]:
    """Parse ``path`` into segments.

    Raises:
        PathError: If the path is empty or syntactically malformed.
    """
    if not path:
        raise PathError(path, "path cannot be empty")
    if not _ALLOWED_CHARS.match(path):
        raise PathError(path, "path contains invalid characters")
    if ".." in path or ".[" in path:
        raise PathError(path, "path contains empty segments")
    if path.startswith(".") or path.endswith("."):
        raise PathError(path, "path cannot start or end with a dot")

    segments: List[PathSegment] = []
    for raw in path.split("."):
        match = _SEGMENT.match(raw)
        if match is None:
            raise PathError(path, f"malformed segment '{raw}'")
        indices = tuple(int(i) for i in _INDEX.findall(match.group(2)))
        if any(i > MAX_ARRAY_INDEX for i in indices):
            raise PathError(path, f"array index exceeds {MAX_ARRAY_INDEX}")
        segments.append(PathSegment(match.group(1), indices))
    return segments


def path_steps(path: str) -> List[Step]:
    """Flatten a path into navigation steps: ``str`` keys and ``int`` indices."""
    steps: List[Step] = []
    for segment in parse_path(path):
        steps.append(segment.name)
        steps.extend(segment.indices)
    return steps


def is_valid_path(path: str) -> bool:
    if path.count("[") != path.count("]"):
        return False
    try:
        parse_path(path)
    except PathError:
        return False
    return True


def build_path(segments: Iterable[Union[PathSegment, str]]) -> str:
    return ".".join(str(s) for s in segments)


def parent_path(path: str) -> Optional[str]:
    """Return the path without its last segment, or ``None`` for a top-level path."""
    segments = parse_path(path)
    if len(segments) <= 1:
        return None
    return build_path(segments[:-1])


def leaf_property(path: str) -> str:
    """Return the key of the last segment, without indices."""
    return parse_path(path)[-1].name


def root_property(path: str) -> str:
    return parse_path(path)[0].name


def contains_path(paths: Iterable[str], path: str) -> bool:
    return path in set(paths)


def add_path(paths: List[str], path: str) -> List[str]:
    """Return a sorted, de-duplicated copy of ``paths`` with ``path`` added."""
    parse_path(path)
    return sorted(set(paths) | {path})


def remove_path(paths: List[str], path: str) -> List[str]:
    return [p for p in paths if p != path]


def filter_paths_by_prefix(paths: Iterable[str], prefix: str) -> List[str]:
    """Return the paths equal to ``prefix`` or nested below it."""
    return [p for p in paths if p == prefix or p.startswith(prefix + ".") or p.startswith(prefix + "[")]


def update_paths_on_array_remove(paths: Iterable[str], array_path: str, removed_index: int) -> List[str]:
    """Keep authorized paths consistent after an array element is removed.

    Paths under ``array_path[removed_index]`` are dropped and paths under a
    higher index are shifted down by one. Other paths are kept unchanged.
    """
    pattern = re.compile(r"^" + re.escape(array_path) + r"\[(\d+)\](.*)$")
    updated: List[str] = []
    for p in paths:
        match = pattern.match(p)
        if match is None:
            updated.append(p)
            continue
        index = int(match.group(1))
        if index == removed_index:
            continue
        if index > removed_index:
            updated.append(f"{array_path}[{index - 1}]{match.group(2)}")
        else:
            updated.append(p)
    return updated
