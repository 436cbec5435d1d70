"""Path-based merge of AI-provided values into preset settings.

The merger never mutates the preset tree it is given: it works on a structural
deep copy and decides, per authorized path, whether the AI value is set
directly or combined with the value the operator configured.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional, Protocol, Tuple

from ..errors import PathError
from ..paths import PathAccessor

logger = logging.getLogger(__name__)


def deep_copy(value: Any) -> Any:
    """Structural copy of a JSON-like tree (dicts, lists, tuples and scalars)."""
    if isinstance(value, dict):
        return {k: deep_copy(v) for k, v in value.items()}
    if isinstance(value, list):
        return [deep_copy(v) for v in value]
    if isinstance(value, tuple):
        return tuple(deep_copy(v) for v in value)
    return value


class ArrayMergeStrategy(Protocol):
    def merge(self, existing: Any, incoming: Any) -> Any:
        """Combine the preset value with the AI value at the same path."""
        ...


class ArrayAppendStrategy:
    """AI items first, then preset items. Non-list values are replaced."""

    def merge(self, existing: Any, incoming: Any) -> Any:
        if isinstance(existing, list) and isinstance(incoming, list):
            return deep_copy(incoming) + deep_copy(existing)
        return deep_copy(incoming)


class ReplaceStrategy:
    """The AI value always replaces the preset value."""

    def merge(self, existing: Any, incoming: Any) -> Any:
        return deep_copy(incoming)


class SettingsMerger:
    def __init__(
        self,
        accessor: Optional[PathAccessor] = None,
        array_strategy: Optional[ArrayMergeStrategy] = None,
    ) -> None:
        self._accessor = accessor or PathAccessor()
        self._strategy: ArrayMergeStrategy = array_strategy or ArrayAppendStrategy()

    @property
    def accessor(self) -> PathAccessor:
        return self._accessor

    def with_array_strategy(self, strategy: ArrayMergeStrategy) -> "SettingsMerger":
        return SettingsMerger(self._accessor, strategy)

    def merge_value(self, existing: Any, incoming: Any) -> Any:
        return self._strategy.merge(existing, incoming)

    def merge(
        self,
        preset_settings: Dict[str, Any],
        agent_authorized_paths: Iterable[str],
        ai_values: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Merge AI values into a copy of the preset settings.

        Args:
            preset_settings: Operator configured settings; left untouched.
            agent_authorized_paths: Paths the agent may set.
            ai_values: AI values, keyed by path or nested like the settings tree.

        Returns:
            A new settings tree.
        """
        merged = deep_copy(preset_settings or {})
        for path in agent_authorized_paths:
            incoming, found = self.lookup_ai_value(ai_values, path)
            if not found:
                continue

            existing, exists = self._accessor.get(preset_settings or {}, path)
            value = self._strategy.merge(existing, incoming) if exists else deep_copy(incoming)
            try:
                self._accessor.set(merged, path, value)
            except PathError as e:
                logger.warning(f"Skipping agent value for path '{path}': {e}")
        return merged

    def lookup_ai_value(self, ai_values: Dict[str, Any], path: str) -> Tuple[Any, bool]:
        """Read an AI value by literal key first, then as a nested path. ``None`` counts as absent."""
        if not ai_values:
            return None, False
        if path in ai_values:
            value = ai_values[path]
            return value, value is not None
        value, found = self._accessor.get(ai_values, path)
        return value, found and value is not None
