"""Translate human readable labels into identifiers for peekable fields.

A peekable field takes values from an external catalogue (bucket names,
channels, spreadsheets...). The model usually proposes the label it read in the
prompt, while the integration needs the identifier. The resolver asks the
integration's ``peek`` capability for the options and picks the first match by
content, then value, then key, then substring containment. Without a match the
original value is kept since it may already be a valid identifier.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..interfaces import PeekableIntegrationExecutor
from ..paths import PathAccessor, find_property, is_valid_path
from ..schemas.integration import NodeProperty, PeekParams, PeekResultItem

logger = logging.getLogger(__name__)


def _normalize(value: Any) -> str:
    return str(value).strip().lower()


def match_peek_item(items: Sequence[PeekResultItem], display_value: str) -> Optional[PeekResultItem]:
    """Return the item ``display_value`` refers to, by priority content > value > key > substring."""
    wanted = _normalize(display_value)
    if not wanted:
        return None
    for attribute in ("content", "value", "key"):
        for item in items:
            candidate = getattr(item, attribute)
            if candidate is not None and _normalize(candidate) == wanted:
                return item
    for item in items:
        if item.content and wanted in _normalize(item.content):
            return item
    return None


class PeekableValueResolver:
    """Resolve peekable values through an executor's ``peek`` capability.

    Lookups are cached per instance under ``"{peekable_type}:{display}"``; one
    resolver is used per conversation run.
    """

    def __init__(self, accessor: Optional[PathAccessor] = None) -> None:
        self._accessor = accessor or PathAccessor()
        self._cache: Dict[str, Any] = {}

    @staticmethod
    def identify_peekable_fields(
        properties: Sequence[NodeProperty], authorized_paths: Iterable[str]
    ) -> List[Tuple[str, NodeProperty]]:
        """Return ``(path, property)`` for each authorized path pointing to a peekable property."""
        fields: List[Tuple[str, NodeProperty]] = []
        for path in authorized_paths:
            if not is_valid_path(path):
                continue
            prop = find_property(properties, path)
            if prop is not None and prop.peekable and prop.peekable_type:
                fields.append((path, prop))
        return fields

    async def peek(self, executor: Any, params: PeekParams) -> List[PeekResultItem]:
        """Fetch options from ``executor``. Returns [] when it cannot peek or the lookup fails."""
        if not isinstance(executor, PeekableIntegrationExecutor):
            return []
        try:
            result = await executor.peek(params)
        except Exception as e:
            logger.warning(f"Peek lookup for '{params.peekable_type}' failed: {e}")
            return []
        return list(result.result)

    async def resolve_value(
        self,
        executor: Any,
        prop: NodeProperty,
        display_value: Any,
        *,
        workspace_id: str = "",
        credential_id: str = "",
        settings: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Translate ``display_value`` (or each string of a list) into identifiers."""
        if isinstance(display_value, list):
            return [
                await self.resolve_value(
                    executor,
                    prop,
                    v,
                    workspace_id=workspace_id,
                    credential_id=credential_id,
                    settings=settings,
                )
                for v in display_value
            ]
        if not isinstance(display_value, str) or not prop.peekable_type:
            return display_value

        cache_key = f"{prop.peekable_type}:{display_value}"
        if cache_key in self._cache:
            return self._cache[cache_key]

        items = await self.peek(
            executor,
            PeekParams(
                peekable_type=prop.peekable_type,
                workspace_id=workspace_id,
                credential_id=credential_id,
                payload=settings or {},
            ),
        )
        item = match_peek_item(items, display_value)
        if item is None:
            logger.debug(f"No peek option matches '{display_value}' for {prop.peekable_type}, keeping value")
            return display_value

        logger.debug(f"Resolved peekable '{prop.key}': '{display_value}' -> {item.value!r}")
        self._cache[cache_key] = item.value
        return item.value

    async def resolve_settings(
        self,
        executor: Any,
        properties: Sequence[NodeProperty],
        authorized_paths: Iterable[str],
        settings: Dict[str, Any],
        *,
        only_paths: Optional[Iterable[str]] = None,
        workspace_id: str = "",
        credential_id: str = "",
    ) -> Dict[str, Any]:
        """
        Replace labels with identifiers in ``settings`` (in place) for peekable paths.

        Args:
            executor: Integration executor, used only if it can peek.
            properties: Property schemas of the action being called.
            authorized_paths: Agent-authorized paths of the node.
            settings: Resolved settings tree.
            only_paths: Restrict to these paths (the ones the model provided).
            workspace_id: Workspace forwarded to the lookup.
            credential_id: Credential forwarded to the lookup.

        Returns:
            The same ``settings`` dict.
        """
        if not isinstance(executor, PeekableIntegrationExecutor):
            return settings
        restrict = set(only_paths) if only_paths is not None else None
        for path, prop in self.identify_peekable_fields(properties, authorized_paths):
            if restrict is not None and path not in restrict:
                continue
            value, found = self._accessor.get(settings, path)
            if not found or value is None:
                continue
            resolved = await self.resolve_value(
                executor,
                prop,
                value,
                workspace_id=workspace_id,
                credential_id=credential_id,
                settings=settings,
            )
            if resolved != value:
                self._accessor.set(settings, path, resolved)
        return settings

    def clear_cache(self) -> None:
        self._cache.clear()
