"""Get/set/delete on nested dict/list trees addressed by property paths."""

from __future__ import annotations

from typing import Any, List, MutableMapping, Tuple

from ..errors import PathError
from .property_path import Step, path_steps

_MISSING = object()


class PathAccessor:
    """Navigate JSON-like settings trees (dicts, lists and scalars).

    ``get`` never raises: any missing key, out of range index or type mismatch
    is reported as not found. ``set`` creates intermediate containers on demand
    and raises ``PathError`` when the path cannot be written.
    """

    def get(self, root: Any, path: str) -> Tuple[Any, bool]:
        try:
            steps = path_steps(path)
        except PathError:
            return None, False
        if not isinstance(root, dict):
            return None, False

        current = root
        for step in steps:
            current = self._child(current, step)
            if current is _MISSING:
                return None, False
        return current, True

    def has(self, root: Any, path: str) -> bool:
        return self.get(root, path)[1]

    def set(self, root: MutableMapping[str, Any], path: str, value: Any) -> None:
        """Assign ``value`` at ``path``, creating intermediate containers.

        A missing intermediate becomes a list when the next step is an index
        (padded with empty dicts up to that index) and a dict otherwise.

        Raises:
            PathError: For an empty or malformed path, a non-dict root, a
                scalar intermediate, or an index applied to a non-list.
        """
        if not path:
            raise PathError(path, "path cannot be empty")
        if not isinstance(root, dict):
            raise PathError(path, "root must be an object")
        steps = path_steps(path)

        current: Any = root
        for position, step in enumerate(steps[:-1]):
            next_step = steps[position + 1]
            current = self._ensure_container(current, step, next_step, path)
        self._assign(current, steps[-1], value, path)

    def delete(self, root: Any, path: str) -> bool:
        """Remove the value at ``path``. Returns False when nothing was there."""
        try:
            steps = path_steps(path)
        except PathError:
            return False
        parent, found = (root, True) if len(steps) == 1 else self._walk(root, steps[:-1])
        if not found:
            return False
        last = steps[-1]
        if isinstance(last, int):
            if isinstance(parent, list) and last < len(parent):
                del parent[last]
                return True
            return False
        if isinstance(parent, dict) and last in parent:
            del parent[last]
            return True
        return False

    def _walk(self, root: Any, steps: List[Step]) -> Tuple[Any, bool]:
        current = root
        for step in steps:
            current = self._child(current, step)
            if current is _MISSING:
                return None, False
        return current, True

    @staticmethod
    def _child(container: Any, step: Step) -> Any:
        if isinstance(step, int):
            if isinstance(container, list) and step < len(container):
                return container[step]
            return _MISSING
        if isinstance(container, dict) and step in container:
            return container[step]
        return _MISSING

    @staticmethod
    def _new_container(next_step: Step) -> Any:
        return [] if isinstance(next_step, int) else {}

    def _ensure_container(self, current: Any, step: Step, next_step: Step, path: str) -> Any:
        if isinstance(step, int):
            if not isinstance(current, list):
                raise PathError(path, f"cannot index non-array value with [{step}]")
            _pad(current, step)
            child = current[step] if step < len(current) else None
            if child is None:
                child = self._new_container(next_step)
                if step < len(current):
                    current[step] = child
                else:
                    current.append(child)
        else:
            if not isinstance(current, dict):
                raise PathError(path, f"cannot navigate into non-object value at '{step}'")
            child = current.get(step)
            if child is None:
                child = self._new_container(next_step)
                current[step] = child

        if isinstance(next_step, int) and not isinstance(child, list):
            raise PathError(path, f"cannot index non-array value with [{next_step}]")
        if not isinstance(next_step, int) and not isinstance(child, dict):
            raise PathError(path, f"cannot navigate into non-object value at '{next_step}'")
        return child

    @staticmethod
    def _assign(container: Any, step: Step, value: Any, path: str) -> None:
        if isinstance(step, int):
            if not isinstance(container, list):
                raise PathError(path, f"cannot index non-array value with [{step}]")
            _pad(container, step)
            if step < len(container):
                container[step] = value
            else:
                container.append(value)
            return
        if not isinstance(container, dict):
            raise PathError(path, f"cannot set '{step}' on non-object value")
        container[step] = value


def _pad(items: list, index: int) -> None:
    """Pad ``items`` with empty dicts so that ``index`` is the next free slot or exists."""
    while len(items) < index:
        items.append({})
