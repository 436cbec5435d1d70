"""Exception hierarchy for the agent core.

Recoverable conditions (a missing AI value, a memory outage, a peek miss) are
logged where they happen and never reach these classes. The exceptions below
cover per-call failures that the conversation loop weighs against its failure
budget, and fatal conditions that end a run.
"""

from typing import Optional


class AgentCoreError(Exception):
    """Base exception for all agent core errors."""


class PathError(AgentCoreError):
    """Raised when a property path cannot be parsed or written."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid path '{path}': {reason}")


class ParameterResolutionError(AgentCoreError):
    """Raised when parameter resolution is invoked without a workflow node."""


class ToolDiscoveryError(AgentCoreError):
    """Raised when no callable tool can be enumerated from the bound executors."""

    def __init__(self, message: str, failed_integrations: Optional[list[str]] = None):
        self.failed_integrations = failed_integrations or []
        super().__init__(f"failed to discover tools: {message}")


class ToolExecutionError(AgentCoreError):
    """Raised by integration executors when an action fails."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' failed: {message}")


class LLMProviderError(AgentCoreError):
    """Raised by LLM providers on transport, auth or rate-limit failures.

    ``recoverable=False`` marks a structural failure (for example an
    unreachable provider) that terminates the run regardless of the
    failure budget.
    """

    def __init__(self, message: str, *, recoverable: bool = True):
        self.recoverable = recoverable
        super().__init__(message)


class LLMTimeoutError(LLMProviderError):
    """Raised when an LLM call exceeds its timeout."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"LLM call timed out after {timeout_seconds:g}s", recoverable=True)


class StateManagerError(AgentCoreError):
    """Raised when conversation state cannot be saved or loaded."""

    def __init__(self, conversation_id: str, operation: str, reason: str):
        self.conversation_id = conversation_id
        self.operation = operation
        super().__init__(f"Failed to {operation} state for conversation {conversation_id}: {reason}")


class ConversationExecutionError(AgentCoreError):
    """Terminal error of a function-calling conversation run."""

    def __init__(self, conversation_id: str, message: str, *, round: int = 0, step: str = ""):
        self.conversation_id = conversation_id
        self.round = round
        self.step = step
        super().__init__(f"Conversation {conversation_id} failed at round {round} ({step}): {message}")
