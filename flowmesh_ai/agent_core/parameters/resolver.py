"""Trust boundary between AI-provided tool arguments and operator presets.

Only the property paths a workflow node explicitly lists in
``provided_by_agent`` may carry a value proposed by the model. Everything else
comes from the node's preset settings. Each decision is recorded in an audit
log so partial failures (missing values, ignored keys) surface to callers and
to execution history without aborting the tool call.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional

from pydantic import Field

from ..errors import ParameterResolutionError, PathError
from ..paths import is_valid_path, root_property
from ..schemas.base import BaseSchema
from ..schemas.integration import WorkflowNode
from .merger import SettingsMerger, deep_copy

logger = logging.getLogger(__name__)

SPECIAL_KEYS: FrozenSet[str] = frozenset(
    {
        "credential_id",
        "node_id",
        "integration_type",
        "action_type",
        "_tool_call",
        "_tool_name",
        "_tool_call_id",
    }
)


class ResolutionSource(str, Enum):
    ai_provided = "ai_provided"
    preset_value = "preset_value"
    missing = "missing"


class ParameterResolution(BaseSchema):
    path: str
    source: ResolutionSource
    value: Any = None
    was_agent_authorized: bool
    ai_value_was_available: bool


class ParameterResolutionResult(BaseSchema):
    resolved_settings: Dict[str, Any] = Field(default_factory=dict)
    resolution_log: List[ParameterResolution] = Field(default_factory=list)

    def summary(self) -> Dict[str, int]:
        """Count audit entries per source."""
        counts = {source.value: 0 for source in ResolutionSource}
        for entry in self.resolution_log:
            counts[entry.source.value] += 1
        return counts

    def entry_for(self, path: str) -> Optional[ParameterResolution]:
        return next((e for e in self.resolution_log if e.path == path), None)


class ParameterResolver:
    def __init__(self, merger: Optional[SettingsMerger] = None) -> None:
        self._merger = merger or SettingsMerger()
        self._accessor = self._merger.accessor

    def resolve(
        self, workflow_node: Optional[WorkflowNode], ai_arguments: Optional[Dict[str, Any]]
    ) -> ParameterResolutionResult:
        """
        Resolve the settings of one tool call for the node that owns the tool.

        Args:
            workflow_node: Node providing preset settings and authorized paths.
            ai_arguments: Arguments the model supplied for the tool call.

        Returns:
            Merged settings plus the per-field audit log.

        Raises:
            ParameterResolutionError: If ``workflow_node`` is None.
        """
        if workflow_node is None:
            raise ParameterResolutionError("workflow node is required for parameter resolution")
        return self.resolve_settings(
            workflow_node.integration_settings,
            workflow_node.provided_by_agent,
            ai_arguments or {},
        )

    def resolve_settings(
        self,
        preset_settings: Dict[str, Any],
        agent_authorized_paths: Iterable[str],
        ai_arguments: Dict[str, Any],
    ) -> ParameterResolutionResult:
        preset_settings = preset_settings or {}
        ai_arguments = ai_arguments or {}
        resolved = {k: deep_copy(v) for k, v in preset_settings.items() if k not in SPECIAL_KEYS}
        log: List[ParameterResolution] = []

        authorized: List[str] = []
        for path in agent_authorized_paths:
            if path in authorized:
                continue
            if not is_valid_path(path):
                logger.warning(f"Skipping malformed agent-authorized path '{path}'")
                continue
            if root_property(path) in SPECIAL_KEYS:
                logger.warning(f"Skipping agent-authorized path '{path}': '{root_property(path)}' is a reserved key")
                continue
            authorized.append(path)

        for path in authorized:
            log.append(self._resolve_path(path, preset_settings, ai_arguments, resolved))

        authorized_roots = {root_property(p) for p in authorized}
        for key, value in ai_arguments.items():
            if key in authorized:
                continue
            if key in authorized_roots:
                for path in self._unused_ai_paths(key, value, authorized):
                    log.append(self._ignored_entry(path, preset_settings))
                continue
            log.append(self._ignored_entry(key, preset_settings, lookup_preset=key not in SPECIAL_KEYS))

        return ParameterResolutionResult(resolved_settings=resolved, resolution_log=log)

    def _unused_ai_paths(self, path: str, value: Any, authorized: List[str]) -> Iterator[str]:
        """Yield the paths under ``path`` whose AI value no authorized path consumes."""
        if path in authorized:
            return
        if not any(p.startswith(f"{path}.") or p.startswith(f"{path}[") for p in authorized):
            yield path
        elif isinstance(value, dict):
            for key, child in value.items():
                yield from self._unused_ai_paths(f"{path}.{key}", child, authorized)
        elif isinstance(value, list):
            for index, child in enumerate(value):
                yield from self._unused_ai_paths(f"{path}[{index}]", child, authorized)
        else:
            yield path

    def _ignored_entry(
        self, path: str, preset_settings: Dict[str, Any], *, lookup_preset: bool = True
    ) -> ParameterResolution:
        preset_value, has_preset = None, False
        if lookup_preset:
            preset_value, has_preset = self._accessor.get(preset_settings, path)
        logger.info(f"Ignoring AI-provided value for unauthorized path '{path}'")
        return ParameterResolution(
            path=path,
            source=ResolutionSource.preset_value if has_preset else ResolutionSource.missing,
            value=deep_copy(preset_value),
            was_agent_authorized=False,
            ai_value_was_available=True,
        )

    def _resolve_path(
        self,
        path: str,
        preset_settings: Dict[str, Any],
        ai_arguments: Dict[str, Any],
        resolved: Dict[str, Any],
    ) -> ParameterResolution:
        ai_value, ai_found = self._merger.lookup_ai_value(ai_arguments, path)
        preset_value, has_preset = self._accessor.get(preset_settings, path)

        if ai_found:
            value = self._merger.merge_value(preset_value, ai_value) if has_preset else deep_copy(ai_value)
            try:
                self._accessor.set(resolved, path, value)
            except PathError as e:
                logger.warning(f"Cannot apply AI value at '{path}', keeping preset: {e}")
            else:
                return ParameterResolution(
                    path=path,
                    source=ResolutionSource.ai_provided,
                    value=deep_copy(value),
                    was_agent_authorized=True,
                    ai_value_was_available=True,
                )

        if has_preset:
            logger.debug(f"No AI value for '{path}', using preset value")
            return ParameterResolution(
                path=path,
                source=ResolutionSource.preset_value,
                value=deep_copy(preset_value),
                was_agent_authorized=True,
                ai_value_was_available=ai_found,
            )

        logger.warning(f"No AI or preset value available for agent-authorized path '{path}'")
        return ParameterResolution(
            path=path,
            source=ResolutionSource.missing,
            value=None,
            was_agent_authorized=True,
            ai_value_was_available=ai_found,
        )
