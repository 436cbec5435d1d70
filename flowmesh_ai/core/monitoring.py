"""
Monitoring and Tracing Configuration Module.

This module provides integration with Pydantic Logfire for tracing the agent
core: LLM calls, tool executions and conversation runs are wrapped in spans
when monitoring is enabled. When it is disabled every helper is a cheap no-op.
"""

import contextlib
import logging
from typing import Any, ContextManager

import logfire

from flowmesh_ai.core.config import MonitoringConfig, get_settings

logger = logging.getLogger(__name__)

_logfire_configured = False


def initialize_logfire(config: MonitoringConfig | None = None) -> bool:
    """
    Initialize Pydantic Logfire for monitoring and tracing.

    Args:
        config: Monitoring configuration. Defaults to ``AgentCoreSettings.monitoring``.

    Returns:
        True when Logfire has been configured and spans will be emitted.
    """
    global _logfire_configured
    config = config or get_settings().monitoring

    if not config.logfire_enabled:
        logger.info("Logfire monitoring is disabled. Set FLOWMESH_AI_MONITORING__LOGFIRE_ENABLED=true to enable.")
        return False

    if not config.logfire_token:
        logger.warning(
            "Logfire is enabled but no token is set. "
            "Monitoring will not work. Set FLOWMESH_AI_MONITORING__LOGFIRE_TOKEN to enable Logfire."
        )
        return False

    logfire.configure(
        token=config.logfire_token,
        service_name=config.service_name,
        environment=config.environment,
    )
    _logfire_configured = True
    logger.info(f"Logfire monitoring initialized: service={config.service_name}, environment={config.environment}")
    return True


def is_monitoring_enabled() -> bool:
    return _logfire_configured


def span(name: str, **attributes: Any) -> ContextManager[Any]:
    """
    Open a Logfire span, or a null context when monitoring is off.

    Args:
        name: Span message template
        **attributes: Structured attributes attached to the span
    """
    if not _logfire_configured:
        return contextlib.nullcontext()
    return logfire.span(name, **attributes)
