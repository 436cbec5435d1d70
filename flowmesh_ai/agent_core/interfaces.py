"""Collaborator interface contracts.

The agent core depends on these Protocols instead of concrete language model
clients or integration implementations.

Contract guidelines
-------------------

- All methods are async.
- Failures are raised as exceptions: ``LLMProviderError`` for model
  providers, any exception for integration executors. The core decides
  whether a failure is absorbed or ends the run.
- Optional capabilities (streaming, peek lookups) are separate runtime
  checkable Protocols. The core dispatches on ``isinstance`` checks, so new
  integrations plug in without changes to the core.
"""

from __future__ import annotations

from typing import AsyncIterator, Protocol, runtime_checkable

from .schemas.domain import LLMRequest, LLMResponse, LLMStreamChunk
from .schemas.integration import (
    Integration,
    IntegrationInput,
    IntegrationOutput,
    PeekParams,
    PeekResult,
)


@runtime_checkable
class LLMProvider(Protocol):
    """Generate one model turn for a conversation."""

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Call the model with the full conversation and tool schemas.

        Args:
            request: Messages, tools, system prompt and sampling settings.

        Returns:
            The assistant content, requested tool calls and finish reason.

        Raises:
            LLMProviderError: On transport, auth or rate-limit failures.
        """
        ...


@runtime_checkable
class StreamingLLMProvider(Protocol):
    """Optional capability: stream a model turn as incremental chunks."""

    def stream(self, request: LLMRequest) -> AsyncIterator[LLMStreamChunk]:
        """
        Stream the response for ``request``.

        Args:
            request: Messages, tools, system prompt and sampling settings.

        Returns:
            An async iterator of chunks; tool calls arrive complete.
        """
        ...


@runtime_checkable
class IntegrationExecutor(Protocol):
    """Execute an action of a bound integration."""

    async def execute(self, integration_input: IntegrationInput) -> IntegrationOutput:
        """
        Run ``integration_input.action_type`` with the resolved settings.

        Args:
            integration_input: Action type, settings and input items by input id.

        Returns:
            Result payloads by output index.
        """
        ...


@runtime_checkable
class PeekableIntegrationExecutor(Protocol):
    """Optional capability: list label/identifier options of a peekable field."""

    async def peek(self, params: PeekParams) -> PeekResult:
        """
        Look up the options available for ``params.peekable_type``.

        Args:
            params: Peekable type, workspace, credential and current settings.

        Returns:
            Items carrying a key, an identifier value and human readable content.
        """
        ...


class IntegrationCatalog(Protocol):
    """Read access to integration metadata (action catalogues)."""

    async def get_integration(self, integration_type: str) -> Integration:
        """
        Fetch an integration definition.

        Args:
            integration_type: Integration identifier, for example ``http``.

        Returns:
            The integration with its actions and property schemas.
        """
        ...
