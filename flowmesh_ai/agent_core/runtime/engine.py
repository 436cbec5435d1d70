"""LangGraph function-calling conversation manager.

``FunctionCallingConversationManager`` runs one agent-node execution: it
alternates between calling the language model and executing the tools the
model requests until the model answers without tool calls.

Execution model
---------------

- The manager runs a LangGraph state machine over ``_GraphState``. Nodes
  ``llm_call`` and ``tool_execution`` mutate the ``ConversationState`` in place
  and routing follows ``ConversationState.current_step``.
- ``llm_call`` builds the system prompt (tool descriptions, peekable options,
  memory context), calls the provider under a timeout and appends the
  assistant message. Tool calls route to ``tool_execution``, a plain answer
  completes the run.
- ``tool_execution`` runs the requested calls sequentially, in request order,
  through the ``ToolCallManager`` and appends one tool message per call. Then
  the round counter advances and the loop goes back to ``llm_call``.

Limits and failures
-------------------

- The loop completes once ``max_rounds`` rounds ran. The partial conversation
  is still summarized and returned.
- Failed tool calls count against ``max_tool_failures``. Reaching it completes
  the run, skipping the remaining calls of the round.
- A failing LLM call (or an unexpected step error) completes the run with the
  partial result while under the failure budget. At or over the budget, or for
  a non-recoverable provider error, the run fails with
  ``ConversationExecutionError``.

Persistence
-----------

State is resumed by conversation id, saved after every step and saved again on
exit with a small retry budget, whatever the outcome.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import List, Optional

from langgraph.graph import END, StateGraph

from flowmesh_ai.core.monitoring import span

from ..errors import (
    ConversationExecutionError,
    LLMProviderError,
    LLMTimeoutError,
    ToolDiscoveryError,
)
from ..events import EventEmitter, StreamRelay
from ..interfaces import StreamingLLMProvider
from ..memory import NoOpMemoryManager
from ..schemas.base import utc_now
from ..schemas.domain import (
    ConversationContext,
    ConversationError,
    ConversationMessage,
    ConversationRequest,
    ConversationResult,
    ConversationState,
    ConversationStatus,
    ConversationStep,
    FunctionCallExecution,
    LLMRequest,
    LLMResponse,
    LLMStreamChunk,
    MessageRole,
    ToolCall,
)
from ..schemas.events import NodeItem, output_port
from ..tools import ToolCallResult, ToolDefinition
from .models import ConversationDeps, _GraphState
from .prompts import build_system_prompt

logger = logging.getLogger(__name__)

LLM_INPUT_ID = "llm_input"
TOOL_LIMIT_SKIP_MESSAGE = "Skipped: tool failure limit reached"
DEFAULT_FINAL_RESPONSE = "Task completed"


def format_tool_result(result: ToolCallResult) -> str:
    """Render a tool call outcome as the content of a tool message."""
    if not result.success:
        return f"Error executing tool: {result.error}"
    if isinstance(result.result, str):
        return result.result
    return json.dumps(result.result, default=str)


class FunctionCallingConversationManager:
    """Run the LLM/tool round loop of one agent node."""

    def __init__(self, deps: ConversationDeps) -> None:
        """
        Initialize the manager.

        Args:
            deps: Collaborators of the agent node.

        Raises:
            ValueError: If the LLM provider, tool call manager or state manager is missing.
        """
        if deps.llm is None:
            raise ValueError("LLM provider is required")
        if deps.tool_call_manager is None:
            raise ValueError("tool call manager is required")
        if deps.state_manager is None:
            raise ValueError("state manager is required")
        self._deps = deps
        self._config = deps.config
        self._memory = deps.memory or NoOpMemoryManager()
        self._emitter = deps.emitter or EventEmitter()
        self._graph = self._build_graph()
        self._llm_calls = 0

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        g: StateGraph = StateGraph(_GraphState)
        g.add_node("start", self._node_start)
        g.add_node("llm_call", self._node_llm_call)
        g.add_node("tool_execution", self._node_tool_execution)
        g.add_node("finish", self._node_finish)

        routes = {"llm_call": "llm_call", "tool_execution": "tool_execution", "finish": "finish"}
        g.set_entry_point("start")
        g.add_conditional_edges("start", self._route, routes)
        g.add_conditional_edges("llm_call", self._route, {"tool_execution": "tool_execution", "finish": "finish"})
        g.add_conditional_edges("tool_execution", self._route, {"llm_call": "llm_call", "finish": "finish"})
        g.add_edge("finish", END)
        return g.compile()

    @property
    def llm_calls(self) -> int:
        """LLM calls made by the current (or last) run."""
        return self._llm_calls

    async def execute(self, request: ConversationRequest) -> ConversationResult:
        """
        Run a conversation to completion.

        Args:
            request: Prompt, conversation id and LLM settings of the agent node.

        Returns:
            The final response with tool executions and history.

        Raises:
            ConversationExecutionError: If the run fails (tool discovery failure,
                state initialization failure, failure budget exhausted,
                non-recoverable provider error). The cause is chained.
        """
        self._llm_calls = 0
        started = time.perf_counter()
        state = await self._init_or_load_state(request)
        if state.status == ConversationStatus.completed:
            logger.info(f"Conversation {state.conversation_id} already completed, returning stored result")
            return self._build_result(state, 0.0)
        await self._memory.store_start(state)

        try:
            with span("conversation {conversation_id}", conversation_id=state.conversation_id):
                tools = await self._discover_tools(state)
                final: _GraphState = await self._graph.ainvoke(
                    {"conversation": state, "request": request, "tools": tools},
                    config={"recursion_limit": 2 * self._config.max_rounds + 5},
                )
            state = final["conversation"]
            state.status = ConversationStatus.completed
            state.current_step = ConversationStep.completed
            state.touch()
            result = self._build_result(state, time.perf_counter() - started)
            await self._memory.store_complete(state, result)
            logger.info(
                f"Conversation {state.conversation_id} completed: rounds={state.round}, "
                f"tools={len(state.tool_executions)}, failures={state.tool_failures}"
            )
            return result
        except asyncio.CancelledError:
            self._mark_failed(state, "cancelled", "conversation cancelled")
            raise
        except Exception as e:
            self._mark_failed(state, "execution_error", str(e))
            await self._memory.store_complete(state, None)
            logger.error(f"Conversation {state.conversation_id} failed: {e}")
            if isinstance(e, ConversationExecutionError):
                raise
            raise ConversationExecutionError(
                state.conversation_id, str(e), round=state.round, step=state.current_step.value
            ) from e
        finally:
            await self._save_final_state(state)

    async def _init_or_load_state(self, request: ConversationRequest) -> ConversationState:
        try:
            state = await self._deps.state_manager.load(request.conversation_id)
        except Exception as e:
            raise ConversationExecutionError(
                request.conversation_id, f"failed to load state: {e}", step="initialization"
            ) from e

        if state is not None:
            logger.info(
                f"Resuming conversation {state.conversation_id} at round {state.round} ({state.current_step.value})"
            )
            if state.status != ConversationStatus.completed:
                state.status = ConversationStatus.running
                if state.current_step == ConversationStep.completed:
                    state.current_step = ConversationStep.llm_call
            return state

        state = ConversationState(
            conversation_id=request.conversation_id,
            workspace_id=request.workspace_id,
            conversation_history=[ConversationMessage(role=MessageRole.user, content=request.initial_prompt)],
            context=ConversationContext(initial_prompt=request.initial_prompt),
        )
        try:
            await self._deps.state_manager.save(state)
        except Exception as e:
            raise ConversationExecutionError(
                state.conversation_id, f"failed to initialize state: {e}", step="initialization"
            ) from e
        return state

    async def _discover_tools(self, state: ConversationState) -> List[ToolDefinition]:
        try:
            tools = await self._deps.tool_call_manager.discover_tools(self._deps.tool_executors)
        except ToolDiscoveryError as e:
            raise ConversationExecutionError(state.conversation_id, str(e), step="initialization") from e
        state.context.available_tools = [t.name for t in tools]
        return tools

    # ------------------------------------------------------------------
    # Graph nodes
    # ------------------------------------------------------------------

    async def _node_start(self, gs: _GraphState) -> _GraphState:
        """Graph entry node. Routing resumes at the stored step."""
        return gs

    async def _node_finish(self, gs: _GraphState) -> _GraphState:
        gs["conversation"].current_step = ConversationStep.completed
        return gs

    def _route(self, gs: _GraphState) -> str:
        state = gs["conversation"]
        if state.current_step == ConversationStep.llm_call:
            return "llm_call"
        if state.current_step == ConversationStep.tool_execution:
            return "tool_execution"
        return "finish"

    async def _node_llm_call(self, gs: _GraphState) -> _GraphState:
        state = gs["conversation"]
        try:
            response = await self._call_llm(state, gs["request"], gs["tools"])
        except Exception as e:
            self._apply_error_policy(state, e, ConversationStep.llm_call)
            await self._save_state(state)
            return gs

        state.conversation_history.append(
            ConversationMessage(
                role=MessageRole.assistant,
                content=response.content or "",
                tool_calls=list(response.tool_calls),
            )
        )
        if response.tool_calls:
            logger.debug(f"Round {state.round}: model requested {len(response.tool_calls)} tool calls")
            state.current_step = ConversationStep.tool_execution
        else:
            state.current_step = ConversationStep.completed
        state.touch()
        await self._save_state(state)
        return gs

    async def _node_tool_execution(self, gs: _GraphState) -> _GraphState:
        state = gs["conversation"]
        tool_calls = self._pending_tool_calls(state)
        max_failures = self._config.max_tool_failures

        try:
            for position, call in enumerate(tool_calls):
                if state.tool_failures >= max_failures:
                    for skipped in tool_calls[position:]:
                        state.conversation_history.append(
                            ConversationMessage(
                                role=MessageRole.tool,
                                content=TOOL_LIMIT_SKIP_MESSAGE,
                                tool_call_id=skipped.id,
                                tool_name=skipped.name,
                            )
                        )
                    break
                await self._execute_tool_call(state, call, gs["tools"])
        except Exception as e:
            self._apply_error_policy(state, e, ConversationStep.tool_execution)
            await self._save_state(state)
            return gs

        if state.tool_failures >= max_failures:
            logger.warning(
                f"Conversation {state.conversation_id} reached {state.tool_failures} tool failures, completing"
            )
            state.last_error = ConversationError(
                type="tool_failure_limit",
                message=f"tool failure limit of {max_failures} reached",
                round=state.round,
                step=ConversationStep.tool_execution,
                recoverable=False,
            )
            state.current_step = ConversationStep.completed
        else:
            state.round += 1
            if state.round >= self._config.max_rounds:
                logger.warning(f"Conversation {state.conversation_id} reached max rounds ({self._config.max_rounds})")
                state.current_step = ConversationStep.completed
            else:
                state.current_step = ConversationStep.llm_call
        state.touch()
        await self._save_state(state)
        return gs

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _call_llm(
        self, state: ConversationState, request: ConversationRequest, tools: List[ToolDefinition]
    ) -> LLMResponse:
        tcm = self._deps.tool_call_manager
        peekable_data = await tcm.get_peekable_data(tools)
        system_prompt = build_system_prompt(tools, peekable_data, request.system_prompt)
        system_prompt = await self._memory.enhance_system_prompt(system_prompt, state.workspace_id)

        llm_request = LLMRequest(
            messages=[m.model_copy(deep=True) for m in state.conversation_history],
            tools=tcm.llm_tools(tools),
            system_prompt=system_prompt,
            temperature=request.temperature if request.temperature is not None else self._config.temperature,
            max_tokens=request.max_tokens or self._config.max_tokens,
            model=request.model,
        )
        inputs = {
            LLM_INPUT_ID: [
                NodeItem(
                    data={
                        "messages": len(llm_request.messages),
                        "system_prompt": system_prompt,
                        "temperature": llm_request.temperature,
                        "max_tokens": llm_request.max_tokens,
                        "model": llm_request.model,
                        "tool_count": len(llm_request.tools),
                    },
                    from_node=request.agent_node_id or None,
                )
            ]
        }

        self._llm_calls += 1
        await self._emitter.node_started(request.llm_node_id)
        timeout = self._config.llm_timeout_seconds
        try:
            with span("llm call {round}", round=state.round, model=llm_request.model):
                response = await asyncio.wait_for(self._generate(llm_request), timeout=timeout)
        except asyncio.TimeoutError as e:
            error = LLMTimeoutError(timeout)
            await self._emitter.node_failed(request.llm_node_id, str(error), items_by_input=inputs)
            raise error from e
        except LLMProviderError as e:
            await self._emitter.node_failed(request.llm_node_id, str(e), items_by_input=inputs)
            raise
        except Exception as e:
            await self._emitter.node_failed(request.llm_node_id, str(e), items_by_input=inputs)
            raise LLMProviderError(f"LLM call failed in round {state.round}: {e}") from e

        await self._emitter.node_executed(
            request.llm_node_id,
            items_by_input=inputs,
            items_by_output={
                output_port(request.llm_node_id, 0): [
                    NodeItem(
                        data={
                            "content": response.content,
                            "tool_calls": len(response.tool_calls),
                            "finish_reason": response.finish_reason,
                        }
                    )
                ]
            },
        )
        return response

    async def _generate(self, llm_request: LLMRequest) -> LLMResponse:
        llm = self._deps.llm
        if not isinstance(llm, StreamingLLMProvider):
            return await llm.generate(llm_request)

        content: List[str] = []
        tool_calls: List[ToolCall] = []
        finish_reason: Optional[str] = None

        async def collect(chunk: LLMStreamChunk) -> None:
            nonlocal finish_reason
            content.append(chunk.content_delta)
            tool_calls.extend(chunk.tool_calls)
            if chunk.finish_reason:
                finish_reason = chunk.finish_reason
            if self._deps.stream_observer is not None:
                await self._deps.stream_observer(chunk)

        await StreamRelay().run(llm.stream(llm_request), collect)
        return LLMResponse(content="".join(content), tool_calls=tool_calls, finish_reason=finish_reason)

    async def _execute_tool_call(self, state: ConversationState, call: ToolCall, tools: List[ToolDefinition]) -> None:
        result = await self._deps.tool_call_manager.execute_tool_call(call, tools)
        if not result.success:
            state.tool_failures += 1
            logger.warning(f"Tool {call.name} failed in round {state.round}: {result.error}")

        tool = next((t for t in tools if t.name == result.tool_name), None)
        state.tool_executions.append(
            FunctionCallExecution(
                round=state.round,
                tool_call_id=call.id,
                tool_name=result.tool_name,
                parameters=dict(call.arguments),
                start_time=result.start_time,
                end_time=result.end_time,
                success=result.success,
                result=result.result,
                error=result.error,
                duration_seconds=result.duration_seconds,
                node_id=result.node_id or None,
                integration_type=tool.tool_executor.integration_type if tool else None,
                action_type=result.action_type or None,
            )
        )
        state.conversation_history.append(
            ConversationMessage(
                role=MessageRole.tool,
                content=format_tool_result(result),
                tool_call_id=call.id,
                tool_name=call.name,
            )
        )

    @staticmethod
    def _pending_tool_calls(state: ConversationState) -> List[ToolCall]:
        """Tool calls of the last assistant message that have no tool message yet."""
        answered = set()
        for message in reversed(state.conversation_history):
            if message.role == MessageRole.tool and message.tool_call_id:
                answered.add(message.tool_call_id)
            elif message.role == MessageRole.assistant:
                return [c for c in message.tool_calls if c.id not in answered]
        return []

    # ------------------------------------------------------------------
    # Failure handling and persistence
    # ------------------------------------------------------------------

    def _apply_error_policy(self, state: ConversationState, error: Exception, step: ConversationStep) -> None:
        """Complete with the partial result while under the failure budget, otherwise raise."""
        recoverable = getattr(error, "recoverable", True)
        under_budget = state.tool_failures < self._config.max_tool_failures
        state.last_error = ConversationError(
            type=type(error).__name__,
            message=str(error),
            round=state.round,
            step=step,
            recoverable=recoverable and under_budget,
        )
        if recoverable and under_budget:
            logger.warning(
                f"Conversation {state.conversation_id} round {state.round} {step.value} failed, "
                f"completing with partial result: {error}"
            )
            state.current_step = ConversationStep.completed
            state.touch()
            return
        raise ConversationExecutionError(
            state.conversation_id, str(error), round=state.round, step=step.value
        ) from error

    @staticmethod
    def _mark_failed(state: ConversationState, error_type: str, message: str) -> None:
        state.status = ConversationStatus.failed
        state.last_error = ConversationError(
            type=error_type,
            message=message,
            round=state.round,
            step=state.current_step,
            recoverable=False,
        )
        state.touch()

    async def _save_state(self, state: ConversationState) -> None:
        try:
            await self._deps.state_manager.save(state)
        except Exception as e:
            logger.warning(f"Failed to save state of conversation {state.conversation_id}: {e}")

    async def _save_final_state(self, state: ConversationState) -> None:
        attempts = self._config.state_save_retries
        for attempt in range(1, attempts + 1):
            try:
                await self._deps.state_manager.save(state)
                return
            except Exception as e:
                logger.warning(
                    f"Final state save attempt {attempt}/{attempts} for conversation "
                    f"{state.conversation_id} failed: {e}"
                )
                if attempt < attempts:
                    await asyncio.sleep(self._config.state_save_retry_delay_seconds)
        logger.error(f"Could not persist final state of conversation {state.conversation_id} after {attempts} attempts")

    def _build_result(self, state: ConversationState, duration: float) -> ConversationResult:
        return ConversationResult(
            conversation_id=state.conversation_id,
            final_response=self._final_response(state),
            rounds=state.round,
            tool_executions=[e.model_copy(deep=True) for e in state.tool_executions],
            tool_failures=state.tool_failures,
            status=state.status,
            total_duration_seconds=duration,
            conversation_history=[m.model_copy(deep=True) for m in state.conversation_history],
            metadata={
                "llm_calls": self._llm_calls,
                "last_error": state.last_error.model_dump(mode="json") if state.last_error else None,
                "completed_at": utc_now().isoformat(),
            },
        )

    @staticmethod
    def _final_response(state: ConversationState) -> str:
        for message in reversed(state.conversation_history):
            if message.role == MessageRole.assistant and message.content.strip():
                return message.content
        if state.tool_executions:
            successful = sum(1 for e in state.tool_executions if e.success)
            return f"Executed {successful} tools successfully ({len(state.tool_executions)} total executions)"
        return DEFAULT_FINAL_RESPONSE
