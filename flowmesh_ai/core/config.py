"""
Configuration Settings.

This module defines the agent core configuration using Pydantic's BaseSettings.
Every value is read from environment variables (prefix ``FLOWMESH_AI_``) or a
``.env`` file. Nested sections use ``__`` as delimiter, for example
``FLOWMESH_AI_FUNCTION_CALLING__MAX_ROUNDS=5``.
"""

from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# =====================================================================
# Section Models
# =====================================================================


class FunctionCallingConfig(BaseModel):
    """Limits and retry budget for the function-calling round loop."""

    max_rounds: int = Field(default=10, ge=1, description="Maximum LLM/tool rounds per conversation")
    llm_timeout_seconds: float = Field(default=60.0, gt=0, description="Timeout applied to each LLM call")
    max_tool_failures: int = Field(
        default=3, ge=1, description="Conversation-level tool failure count that stops the loop"
    )
    state_save_retries: int = Field(default=3, ge=1, description="Attempts used to persist the final state")
    state_save_retry_delay_seconds: float = Field(
        default=0.1, ge=0, description="Delay between final state persistence attempts"
    )
    tool_call_prefix: str = Field(
        default="functions.", description="Provider namespace prefix stripped from tool call names"
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Default sampling temperature")
    max_tokens: int = Field(default=4096, ge=1, description="Default completion token budget")


class MemoryConfig(BaseModel):
    """Defaults for conversation memory retrieval and formatting."""

    conversation_count: int = Field(default=5, ge=0, description="Number of prior conversations to retrieve")
    max_context_length: int = Field(default=2000, ge=0, description="Character budget of the injected context")
    include_tool_usage: bool = Field(default=True, description="Include tools used in conversation summaries")
    response_preview_length: int = Field(
        default=200, ge=1, description="Characters of the prior agent response kept in a summary"
    )


class LoggingConfig(BaseModel):
    """Logging configuration consumed by ``flowmesh_ai.core.logging_config``."""

    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")
    format: str = Field(default="detailed", description="Log format (simple, detailed, json)")
    file_dir: str = Field(default="logs", description="Directory of the log file")
    enable_file_logging: bool = Field(default=False, description="Write logs to a file as well")


class MonitoringConfig(BaseModel):
    """Logfire monitoring configuration."""

    logfire_enabled: bool = Field(default=False, description="Enable Logfire tracing")
    logfire_token: str = Field(default="", description="Logfire write token")
    service_name: str = Field(default="flowmesh-ai-agent-core", description="Service name reported to Logfire")
    environment: str = Field(default="development", description="Deployment environment")


# =====================================================================
# Main Settings Class
# =====================================================================


class AgentCoreSettings(BaseSettings):
    """
    Agent core settings model.

    All properties are bound from environment variables and the ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="FLOWMESH_AI_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    function_calling: FunctionCallingConfig = Field(default_factory=FunctionCallingConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)


@lru_cache(maxsize=1)
def get_settings() -> AgentCoreSettings:
    """Return the process-wide settings instance."""
    return AgentCoreSettings()
