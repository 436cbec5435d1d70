"""Tool discovery and tool call execution.

``ToolCallManager`` turns the integration nodes bound to an agent into tools
the model can call, and executes one model-issued tool call end to end:

1. look the tool up by name (a provider namespace prefix is tolerated),
2. resolve parameters against the owning node's presets and authorized paths,
3. translate peekable labels into identifiers,
4. invoke the integration executor,
5. format the result.

Each call is reported as started/completed/failed events attributed to the
tool's workflow node. Integration failures never raise out of
``execute_tool_call``: they come back as ``ToolCallResult(success=False)`` and
the conversation loop decides what to do with them.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Sequence

from flowmesh_ai.core.config import get_settings
from flowmesh_ai.core.monitoring import span

from ..errors import ToolDiscoveryError
from ..events import EventEmitter
from ..interfaces import IntegrationCatalog
from ..parameters import ParameterResolver, PeekableValueResolver, ResolutionSource
from ..schemas.base import utc_now
from ..schemas.domain import LLMTool, ToolCall
from ..schemas.events import NodeItem, output_port
from ..schemas.integration import IntegrationInput, IntegrationOutput, PeekParams, PeekResultItem
from .models import ToolCallResult, ToolDefinition, ToolExecutor
from .schema_builder import ToolSchemaBuilder

logger = logging.getLogger(__name__)

TOOL_CALL_INPUT_ID = "tool_call_input"

DEFAULT_TOOL_RESULT = {"success": True, "message": "Tool executed successfully"}


def tool_name_for(integration_type: str, action_type: str) -> str:
    return f"{integration_type}_{action_type}".lower()


class ToolCallManager:
    def __init__(
        self,
        catalog: IntegrationCatalog,
        *,
        emitter: Optional[EventEmitter] = None,
        resolver: Optional[ParameterResolver] = None,
        peekable_resolver: Optional[PeekableValueResolver] = None,
        schema_builder: Optional[ToolSchemaBuilder] = None,
        agent_node_id: str = "",
        tool_call_prefix: Optional[str] = None,
    ) -> None:
        """
        Initialize the ToolCallManager.

        Args:
            catalog: Source of integration action catalogues.
            emitter: Event emitter for node events (no events when omitted).
            resolver: Parameter resolver applied to every tool call.
            peekable_resolver: Label to identifier resolver, cached per manager.
            schema_builder: JSON-Schema builder for tool parameters.
            agent_node_id: Node id of the agent, used as ``from_node`` of input items.
            tool_call_prefix: Provider namespace prefix stripped from tool names.
                Defaults to ``function_calling.tool_call_prefix`` of the settings.
        """
        if catalog is None:
            raise ValueError("integration catalog is required")
        self._catalog = catalog
        self._emitter = emitter or EventEmitter()
        self._resolver = resolver or ParameterResolver()
        self._peekable = peekable_resolver or PeekableValueResolver()
        self._schema_builder = schema_builder or ToolSchemaBuilder()
        self._agent_node_id = agent_node_id
        if tool_call_prefix is None:
            tool_call_prefix = get_settings().function_calling.tool_call_prefix
        self._prefix = tool_call_prefix

    async def discover_tools(self, tool_executors: Sequence[ToolExecutor]) -> List[ToolDefinition]:
        """
        Build tool definitions for every allowed action of the bound executors.

        An executor whose integration cannot be fetched is skipped. Tool names
        are unique; a later executor wins over an earlier one.

        Raises:
            ToolDiscoveryError: If executors are bound but none could be enumerated.
        """
        tools: Dict[str, ToolDefinition] = {}
        failed: List[str] = []
        for tool_executor in tool_executors:
            try:
                integration = await self._catalog.get_integration(tool_executor.integration_type)
            except Exception as e:
                logger.warning(
                    f"Failed to fetch integration {tool_executor.integration_type} "
                    f"for node {tool_executor.node_id}: {e}"
                )
                failed.append(tool_executor.integration_type)
                continue

            for action in integration.actions:
                if not tool_executor.allows(action.action_type):
                    continue
                name = tool_name_for(tool_executor.integration_type, action.action_type)
                if name in tools:
                    logger.warning(f"Tool name collision for '{name}', node {tool_executor.node_id} wins")
                tools[name] = ToolDefinition(
                    name=name,
                    description=f"{action.name}: {action.description}",
                    parameters=self._schema_builder.build(action, tool_executor.workflow_node),
                    action_type=action.action_type,
                    tool_executor=tool_executor,
                    action=action,
                )

        if tool_executors and len(failed) == len(tool_executors):
            raise ToolDiscoveryError(f"no integration could be loaded ({', '.join(failed)})", failed)

        logger.info(f"Discovered {len(tools)} tools from {len(tool_executors)} executors")
        return list(tools.values())

    @staticmethod
    def llm_tools(tool_definitions: Iterable[ToolDefinition]) -> List[LLMTool]:
        return [LLMTool(name=t.name, description=t.description, parameters=t.parameters) for t in tool_definitions]

    def find_tool(self, name: str, tool_definitions: Iterable[ToolDefinition]) -> Optional[ToolDefinition]:
        if self._prefix and name.startswith(self._prefix):
            name = name[len(self._prefix) :]
        return next((t for t in tool_definitions if t.name == name), None)

    async def execute_tool_call(self, tool_call: ToolCall, tool_definitions: Sequence[ToolDefinition]) -> ToolCallResult:
        """
        Execute one tool call requested by the model.

        Args:
            tool_call: Tool call id, name and AI-provided arguments.
            tool_definitions: Tools discovered for the current conversation.

        Returns:
            The call outcome; ``success=False`` for unknown tools and integration errors.
        """
        start_time = utc_now()
        started = time.perf_counter()

        tool = self.find_tool(tool_call.name, tool_definitions)
        if tool is None:
            logger.warning(f"Tool not found: {tool_call.name}")
            return ToolCallResult(
                tool_name=tool_call.name,
                tool_call_id=tool_call.id,
                success=False,
                error=f"tool not found: {tool_call.name}",
                start_time=start_time,
                end_time=utc_now(),
            )

        executor = tool.tool_executor
        node = executor.workflow_node
        await self._emitter.node_started(executor.node_id)

        resolution = self._resolver.resolve(node, tool_call.arguments)
        settings = resolution.resolved_settings
        input_item: Dict[str, Any] = {}
        with span("tool call {tool_name}", tool_name=tool.name, node_id=executor.node_id):
            try:
                ai_paths = [
                    e.path
                    for e in resolution.resolution_log
                    if e.was_agent_authorized and e.source == ResolutionSource.ai_provided
                ]
                if tool.action is not None:
                    await self._peekable.resolve_settings(
                        executor.executor,
                        tool.action.properties,
                        node.provided_by_agent,
                        settings,
                        only_paths=ai_paths,
                        workspace_id=executor.workspace_id,
                        credential_id=executor.credential_id,
                    )
                input_item = {
                    "_tool_call": True,
                    "_tool_name": tool.name,
                    "_tool_call_id": tool_call.id,
                    **settings,
                }
                output = await executor.executor.execute(
                    IntegrationInput(
                        node_id=executor.node_id,
                        workspace_id=executor.workspace_id,
                        credential_id=executor.credential_id,
                        action_type=tool.action_type,
                        settings=settings,
                        payload_by_input_id={TOOL_CALL_INPUT_ID: [input_item]},
                    )
                )
            except Exception as e:
                duration = time.perf_counter() - started
                logger.error(f"Tool {tool.name} failed after {duration:.2f}s: {e}")
                await self._emitter.node_failed(
                    executor.node_id, str(e), items_by_input=self._input_items(input_item or settings)
                )
                self._record(tool, tool_call, success=False, duration=duration)
                return ToolCallResult(
                    tool_name=tool.name,
                    tool_call_id=tool_call.id,
                    action_type=tool.action_type,
                    node_id=executor.node_id,
                    success=False,
                    error=str(e),
                    duration_seconds=duration,
                    start_time=start_time,
                    end_time=utc_now(),
                    resolved_settings=settings,
                    resolution_log=resolution.resolution_log,
                )

        result = self.format_result(output)
        duration = time.perf_counter() - started
        await self._emitter.node_executed(
            executor.node_id,
            items_by_input=self._input_items(input_item),
            items_by_output={
                output_port(executor.node_id, 0): [
                    NodeItem(data=result if isinstance(result, dict) else {"result": result})
                ]
            },
        )
        self._record(tool, tool_call, success=True, duration=duration)
        logger.info(f"Tool {tool.name} executed in {duration:.2f}s")
        return ToolCallResult(
            tool_name=tool.name,
            tool_call_id=tool_call.id,
            action_type=tool.action_type,
            node_id=executor.node_id,
            success=True,
            result=result,
            duration_seconds=duration,
            start_time=start_time,
            end_time=utc_now(),
            resolved_settings=settings,
            resolution_log=resolution.resolution_log,
        )

    async def get_peekable_data(
        self, tool_definitions: Sequence[ToolDefinition]
    ) -> Dict[str, Dict[str, List[PeekResultItem]]]:
        """
        Collect the available options of every agent-authorized peekable field.

        Returns:
            ``{tool_name: {path: [options]}}``; tools without options are omitted.
        """
        data: Dict[str, Dict[str, List[PeekResultItem]]] = {}
        for tool in tool_definitions:
            if tool.action is None:
                continue
            executor = tool.tool_executor
            node = executor.workflow_node
            fields = self._peekable.identify_peekable_fields(tool.action.properties, node.provided_by_agent)
            for path, prop in fields:
                items = await self._peekable.peek(
                    executor.executor,
                    PeekParams(
                        peekable_type=prop.peekable_type or "",
                        workspace_id=executor.workspace_id,
                        credential_id=executor.credential_id,
                        payload=node.integration_settings,
                    ),
                )
                if items:
                    data.setdefault(tool.name, {})[path] = items
        return data

    @staticmethod
    def format_result(output: Optional[IntegrationOutput]) -> Any:
        """Prefer the first payload parsed as JSON, fall back to its raw text."""
        payloads = output.result_payloads_by_output_index if output is not None else []
        if not payloads or payloads[0] in (None, "", b""):
            return dict(DEFAULT_TOOL_RESULT)
        first = payloads[0]
        if isinstance(first, (bytes, bytearray)):
            first = first.decode("utf-8", errors="replace")
        if isinstance(first, str):
            try:
                return json.loads(first)
            except ValueError:
                return first
        return first

    def _input_items(self, item: Dict[str, Any]) -> Dict[str, List[NodeItem]]:
        return {TOOL_CALL_INPUT_ID: [NodeItem(data=item, from_node=self._agent_node_id or None)]}

    def _record(self, tool: ToolDefinition, tool_call: ToolCall, *, success: bool, duration: float) -> None:
        self._emitter.context.record_tool_execution(
            {
                "tool_name": tool.name,
                "tool_call_id": tool_call.id,
                "node_id": tool.tool_executor.node_id,
                "integration_type": tool.tool_executor.integration_type,
                "action_type": tool.action_type,
                "success": success,
                "duration_seconds": duration,
            }
        )
