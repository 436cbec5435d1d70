from __future__ import annotations

import asyncio
from typing import AsyncIterator, Dict, List, Optional, Sequence, Union

import pytest

from flowmesh_ai.agent_core.errors import (
    ConversationExecutionError,
    LLMProviderError,
    ToolExecutionError,
)
from flowmesh_ai.agent_core.events import EventEmitter, WorkflowExecutionContext
from flowmesh_ai.agent_core.memory import DefaultMemoryManager
from flowmesh_ai.agent_core.runtime import ConversationDeps, FunctionCallingConversationManager
from flowmesh_ai.agent_core.runtime.engine import TOOL_LIMIT_SKIP_MESSAGE
from flowmesh_ai.agent_core.schemas import (
    AgentConversation,
    ConversationFilter,
    ConversationMemoryConfig,
    ConversationMessage,
    ConversationRequest,
    ConversationState,
    ConversationStatus,
    ConversationStep,
    Integration,
    IntegrationAction,
    IntegrationInput,
    IntegrationOutput,
    LLMRequest,
    LLMResponse,
    LLMStreamChunk,
    MessageRole,
    NodeEvent,
    NodeEventType,
    NodeProperty,
    StoreConversationRequest,
    ToolCall,
    WorkflowNode,
)
from flowmesh_ai.agent_core.state import InMemoryStateManager
from flowmesh_ai.agent_core.tools import ToolCallManager, ToolExecutor
from flowmesh_ai.core.config import FunctionCallingConfig

Step = Union[LLMResponse, Exception]


class _ScriptedLLM:
    """Returns scripted responses in order; repeats the last one when exhausted."""

    def __init__(self, script: Sequence[Step], *, delay: float = 0.0) -> None:
        self._script = list(script)
        self._delay = delay
        self.requests: List[LLMRequest] = []

    async def generate(self, request: LLMRequest) -> LLMResponse:
        self.requests.append(request)
        if self._delay:
            await asyncio.sleep(self._delay)
        step = self._script[min(len(self.requests) - 1, len(self._script) - 1)]
        if isinstance(step, Exception):
            raise step
        return step


class _StreamingLLM:
    def __init__(self, chunks: List[LLMStreamChunk]) -> None:
        self._chunks = chunks
        self.requests: List[LLMRequest] = []

    async def stream(self, request: LLMRequest) -> AsyncIterator[LLMStreamChunk]:
        self.requests.append(request)
        for chunk in self._chunks:
            yield chunk


class _Catalog:
    def __init__(self, integrations: Optional[Dict[str, Integration]] = None) -> None:
        self._integrations = integrations if integrations is not None else {"http": _http_integration()}

    async def get_integration(self, integration_type: str) -> Integration:
        if integration_type not in self._integrations:
            raise KeyError(integration_type)
        return self._integrations[integration_type]


class _HttpExecutor:
    def __init__(self, *, fail: bool = False) -> None:
        self._fail = fail
        self.inputs: List[IntegrationInput] = []

    async def execute(self, integration_input: IntegrationInput) -> IntegrationOutput:
        self.inputs.append(integration_input)
        if self._fail:
            raise ToolExecutionError("http_get", "connection reset by peer")
        return IntegrationOutput(result_payloads_by_output_index=['{"status": 200, "body": "ok"}'])


class _HangingExecutor:
    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def execute(self, integration_input: IntegrationInput) -> IntegrationOutput:
        self.started.set()
        await asyncio.sleep(3600)
        return IntegrationOutput()


class _FlakyStateManager(InMemoryStateManager):
    """Fails ``failures`` saves once ``arm`` is called."""

    def __init__(self) -> None:
        super().__init__()
        self.failures = 0
        self.save_calls = 0

    async def save(self, state: ConversationState) -> None:
        self.save_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("database unavailable")
        await super().save(state)


class _Publisher:
    def __init__(self) -> None:
        self.events: List[NodeEvent] = []

    async def publish(self, event: NodeEvent) -> None:
        self.events.append(event)


class _MemoryStore:
    def __init__(self) -> None:
        self.stored: List[StoreConversationRequest] = []

    async def retrieve_conversations(self, conversation_filter: ConversationFilter) -> List[AgentConversation]:
        return [
            AgentConversation(
                conversation_id="previous",
                user_prompt="What is the status page?",
                final_response="It is https://status.example.com",
                status="completed",
            )
        ]

    async def store_conversation(self, request: StoreConversationRequest) -> None:
        self.stored.append(request)


def _http_integration() -> Integration:
    return Integration(
        integration_type="http",
        actions=[
            IntegrationAction(
                action_type="get",
                name="GET request",
                description="Fetch a URL",
                properties=[NodeProperty(key="url", required=True), NodeProperty(key="method")],
            )
        ],
    )


def _tool_executor(executor) -> ToolExecutor:
    return ToolExecutor(
        executor=executor,
        integration_type="http",
        node_id="http-node",
        workflow_node=WorkflowNode(
            id="http-node",
            integration_type="http",
            integration_settings={"url": "https://old", "method": "GET"},
            provided_by_agent=["url"],
        ),
        workspace_id="ws-1",
    )


def _tool_call(call_id: str = "call-1", name: str = "http_get") -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments={"url": "https://example.com"})


def _request(**kwargs) -> ConversationRequest:
    defaults = dict(
        conversation_id="conv-1",
        workspace_id="ws-1",
        initial_prompt="Fetch https://example.com",
        agent_node_id="agent-node",
        llm_node_id="llm-node",
    )
    defaults.update(kwargs)
    return ConversationRequest(**defaults)


def _manager(
    llm,
    executor=None,
    *,
    state_manager=None,
    catalog=None,
    emitter=None,
    memory=None,
    stream_observer=None,
    **config,
) -> FunctionCallingConversationManager:
    config.setdefault("state_save_retry_delay_seconds", 0.0)
    emitter = emitter or EventEmitter()
    return FunctionCallingConversationManager(
        ConversationDeps(
            llm=llm,
            tool_call_manager=ToolCallManager(catalog or _Catalog(), emitter=emitter, agent_node_id="agent-node"),
            state_manager=state_manager or InMemoryStateManager(),
            tool_executors=(_tool_executor(executor or _HttpExecutor()),),
            memory=memory,
            emitter=emitter,
            config=FunctionCallingConfig(**config),
            stream_observer=stream_observer,
        )
    )


def test_manager_requires_core_dependencies() -> None:
    with pytest.raises(ValueError):
        FunctionCallingConversationManager(
            ConversationDeps(llm=None, tool_call_manager=None, state_manager=None)  # type: ignore[arg-type]
        )


@pytest.mark.asyncio
async def test_failed_tool_then_final_answer() -> None:
    llm = _ScriptedLLM([LLMResponse(tool_calls=[_tool_call()]), LLMResponse(content="Done")])
    manager = _manager(llm, _HttpExecutor(fail=True))

    result = await manager.execute(_request())

    assert result.final_response == "Done"
    assert result.status == ConversationStatus.completed
    assert result.rounds == 1
    assert result.tool_failures == 1
    assert len(result.tool_executions) == 1
    execution = result.tool_executions[0]
    assert execution.success is False
    assert execution.round == 0
    assert execution.node_id == "http-node"
    assert execution.integration_type == "http"
    assert "connection reset by peer" in execution.error

    roles = [m.role for m in result.conversation_history]
    assert roles == [MessageRole.user, MessageRole.assistant, MessageRole.tool, MessageRole.assistant]
    tool_message = result.conversation_history[2]
    assert tool_message.tool_call_id == "call-1"
    assert tool_message.content.startswith("Error executing tool: ")

    second_request = llm.requests[1]
    assert second_request.messages[-1].role == MessageRole.tool
    assert manager.llm_calls == 2


@pytest.mark.asyncio
async def test_plain_answer_completes_without_tools() -> None:
    executor = _HttpExecutor()
    llm = _ScriptedLLM([LLMResponse(content="Hello there")])
    manager = _manager(llm, executor)

    result = await manager.execute(_request())

    assert result.final_response == "Hello there"
    assert result.rounds == 0
    assert result.tool_executions == []
    assert executor.inputs == []
    assert result.metadata["llm_calls"] == 1


@pytest.mark.asyncio
async def test_successful_tool_call_uses_resolved_settings() -> None:
    executor = _HttpExecutor()
    llm = _ScriptedLLM(
        [
            LLMResponse(tool_calls=[ToolCall(id="c", name="functions.http_get", arguments='{"url": "https://x"}')]),
            LLMResponse(content="Fetched"),
        ]
    )

    result = await _manager(llm, executor).execute(_request())

    assert executor.inputs[0].settings == {"url": "https://x", "method": "GET"}
    assert result.tool_executions[0].success is True
    assert result.tool_executions[0].result == {"status": 200, "body": "ok"}
    assert result.conversation_history[2].content == '{"status": 200, "body": "ok"}'


@pytest.mark.asyncio
async def test_system_prompt_lists_tools_and_presets() -> None:
    llm = _ScriptedLLM([LLMResponse(content="ok")])

    await _manager(llm, temperature=0.2, max_tokens=100).execute(_request(model="test-model"))

    request = llm.requests[0]
    assert "- http_get: GET request: Fetch a URL" in request.system_prompt
    assert "Pre-configured: method=GET" in request.system_prompt
    assert "Pre-configured: url=" not in request.system_prompt
    assert [t.name for t in request.tools] == ["http_get"]
    assert request.temperature == 0.2
    assert request.max_tokens == 100
    assert request.model == "test-model"


@pytest.mark.asyncio
async def test_custom_system_prompt_is_enriched() -> None:
    llm = _ScriptedLLM([LLMResponse(content="ok")])

    await _manager(llm).execute(_request(system_prompt="You are a release bot.", temperature=0.0))

    prompt = llm.requests[0].system_prompt
    assert prompt.startswith("You are a release bot.")
    assert "- http_get:" in prompt
    assert llm.requests[0].temperature == 0.0


@pytest.mark.asyncio
async def test_round_cap_completes_with_partial_result() -> None:
    llm = _ScriptedLLM([LLMResponse(content="", tool_calls=[_tool_call()])])

    result = await _manager(llm, max_rounds=3).execute(_request())

    assert result.status == ConversationStatus.completed
    assert result.rounds == 3
    assert len(result.tool_executions) == 3
    assert len(llm.requests) == 3
    assert result.final_response == "Executed 3 tools successfully (3 total executions)"


@pytest.mark.asyncio
async def test_tool_failure_limit_skips_remaining_calls() -> None:
    calls = [_tool_call(f"call-{i}") for i in range(3)]
    llm = _ScriptedLLM([LLMResponse(tool_calls=calls), LLMResponse(content="never")])

    result = await _manager(llm, _HttpExecutor(fail=True), max_tool_failures=2).execute(_request())

    assert result.status == ConversationStatus.completed
    assert result.tool_failures == 2
    assert len(result.tool_executions) == 2
    assert len(llm.requests) == 1
    skipped = result.conversation_history[-1]
    assert skipped.role == MessageRole.tool
    assert skipped.tool_call_id == "call-2"
    assert skipped.content == TOOL_LIMIT_SKIP_MESSAGE
    assert result.metadata["last_error"]["type"] == "tool_failure_limit"
    assert result.final_response == "Executed 0 tools successfully (2 total executions)"


@pytest.mark.asyncio
async def test_recoverable_llm_error_completes_with_partial_result() -> None:
    llm = _ScriptedLLM([RuntimeError("rate limited")])

    result = await _manager(llm).execute(_request())

    assert result.status == ConversationStatus.completed
    assert result.final_response == "Task completed"
    assert result.metadata["last_error"]["type"] == "LLMProviderError"


@pytest.mark.asyncio
async def test_llm_timeout_is_recoverable() -> None:
    llm = _ScriptedLLM([LLMResponse(content="too late")], delay=1.0)
    state_manager = InMemoryStateManager()

    result = await _manager(llm, state_manager=state_manager, llm_timeout_seconds=0.05).execute(_request())

    assert result.status == ConversationStatus.completed
    stored = await state_manager.load("conv-1")
    assert stored.last_error.type == "LLMTimeoutError"
    assert stored.last_error.step == ConversationStep.llm_call


@pytest.mark.asyncio
async def test_non_recoverable_llm_error_fails_the_run() -> None:
    llm = _ScriptedLLM([LLMProviderError("provider unreachable", recoverable=False)])
    state_manager = InMemoryStateManager()

    with pytest.raises(ConversationExecutionError) as exc_info:
        await _manager(llm, state_manager=state_manager).execute(_request())

    assert isinstance(exc_info.value.__cause__, LLMProviderError)
    stored = await state_manager.load("conv-1")
    assert stored.status == ConversationStatus.failed
    assert stored.last_error.type == "execution_error"


@pytest.mark.asyncio
async def test_llm_error_at_failure_budget_fails_the_run() -> None:
    state_manager = InMemoryStateManager()
    await state_manager.save(
        ConversationState(
            conversation_id="conv-1",
            workspace_id="ws-1",
            round=2,
            tool_failures=3,
            status=ConversationStatus.paused,
            conversation_history=[ConversationMessage(role=MessageRole.user, content="hi")],
        )
    )
    llm = _ScriptedLLM([RuntimeError("rate limited")])

    with pytest.raises(ConversationExecutionError):
        await _manager(llm, state_manager=state_manager).execute(_request())


@pytest.mark.asyncio
async def test_tool_discovery_failure_fails_the_run() -> None:
    state_manager = InMemoryStateManager()
    llm = _ScriptedLLM([LLMResponse(content="unused")])

    with pytest.raises(ConversationExecutionError) as exc_info:
        await _manager(llm, state_manager=state_manager, catalog=_Catalog({})).execute(_request())

    assert "failed to discover tools" in str(exc_info.value)
    assert llm.requests == []
    stored = await state_manager.load("conv-1")
    assert stored.status == ConversationStatus.failed


@pytest.mark.asyncio
async def test_final_state_save_is_retried() -> None:
    state_manager = _FlakyStateManager()
    llm = _ScriptedLLM([LLMResponse(content="hi")])
    manager = _manager(llm, state_manager=state_manager)

    original_generate = llm.generate

    async def generate_and_break_saves(request: LLMRequest) -> LLMResponse:
        state_manager.failures = 2
        return await original_generate(request)

    llm.generate = generate_and_break_saves  # type: ignore[method-assign]

    result = await manager.execute(_request())

    assert result.final_response == "hi"
    # init save, failed step save, failed final attempt, successful final attempt
    assert state_manager.save_calls == 4
    stored = await state_manager.load("conv-1")
    assert stored.status == ConversationStatus.completed


@pytest.mark.asyncio
async def test_final_state_save_exhaustion_does_not_raise() -> None:
    state_manager = _FlakyStateManager()
    llm = _ScriptedLLM([LLMResponse(content="hi")])
    manager = _manager(llm, state_manager=state_manager)

    original_generate = llm.generate

    async def generate_and_break_saves(request: LLMRequest) -> LLMResponse:
        state_manager.failures = 100
        return await original_generate(request)

    llm.generate = generate_and_break_saves  # type: ignore[method-assign]

    result = await manager.execute(_request())

    assert result.final_response == "hi"
    assert state_manager.save_calls == 1 + 1 + 3


@pytest.mark.asyncio
async def test_state_initialization_failure() -> None:
    state_manager = _FlakyStateManager()
    state_manager.failures = 1

    with pytest.raises(ConversationExecutionError):
        await _manager(_ScriptedLLM([LLMResponse(content="x")]), state_manager=state_manager).execute(_request())


@pytest.mark.asyncio
async def test_completed_conversation_is_not_rerun() -> None:
    state_manager = InMemoryStateManager()
    await state_manager.save(
        ConversationState(
            conversation_id="conv-1",
            workspace_id="ws-1",
            status=ConversationStatus.completed,
            current_step=ConversationStep.completed,
            round=1,
            conversation_history=[
                ConversationMessage(role=MessageRole.user, content="hi"),
                ConversationMessage(role=MessageRole.assistant, content="stored answer"),
            ],
        )
    )
    llm = _ScriptedLLM([LLMResponse(content="new answer")])

    result = await _manager(llm, state_manager=state_manager).execute(_request())

    assert result.final_response == "stored answer"
    assert llm.requests == []


@pytest.mark.asyncio
async def test_resume_runs_pending_tool_calls() -> None:
    state_manager = InMemoryStateManager()
    await state_manager.save(
        ConversationState(
            conversation_id="conv-1",
            workspace_id="ws-1",
            status=ConversationStatus.paused,
            current_step=ConversationStep.tool_execution,
            conversation_history=[
                ConversationMessage(role=MessageRole.user, content="fetch"),
                ConversationMessage(role=MessageRole.assistant, tool_calls=[_tool_call("a"), _tool_call("b")]),
                ConversationMessage(role=MessageRole.tool, content="{}", tool_call_id="a", tool_name="http_get"),
            ],
        )
    )
    executor = _HttpExecutor()
    llm = _ScriptedLLM([LLMResponse(content="resumed")])

    result = await _manager(llm, executor, state_manager=state_manager).execute(_request())

    assert len(executor.inputs) == 1
    assert result.tool_executions[0].tool_call_id == "b"
    assert result.final_response == "resumed"
    assert result.rounds == 1


@pytest.mark.asyncio
async def test_llm_node_events() -> None:
    publisher = _Publisher()
    emitter = EventEmitter(publisher, WorkflowExecutionContext(workflow_id="wf", execution_id="ex"))
    llm = _ScriptedLLM([LLMResponse(tool_calls=[_tool_call()]), LLMResponse(content="Done")])

    await _manager(llm, emitter=emitter).execute(_request())

    llm_events = [e for e in publisher.events if e.node_id == "llm-node"]
    assert [e.type for e in llm_events] == [
        NodeEventType.node_execution_started,
        NodeEventType.node_executed,
        NodeEventType.node_execution_started,
        NodeEventType.node_executed,
    ]
    executed = llm_events[-1]
    assert executed.items_by_input["llm_input"][0].from_node == "agent-node"
    assert executed.items_by_output["output-llm-node-0"][0].data["content"] == "Done"
    tool_events = [e for e in publisher.events if e.node_id == "http-node"]
    assert [e.type for e in tool_events] == [NodeEventType.node_execution_started, NodeEventType.node_executed]
    assert emitter.context.tool_executions[0]["tool_name"] == "http_get"


@pytest.mark.asyncio
async def test_failed_llm_call_emits_failed_event() -> None:
    publisher = _Publisher()
    llm = _ScriptedLLM([RuntimeError("rate limited")])

    await _manager(llm, emitter=EventEmitter(publisher)).execute(_request())

    assert [e.type for e in publisher.events if e.node_id == "llm-node"] == [
        NodeEventType.node_execution_started,
        NodeEventType.node_failed,
    ]


@pytest.mark.asyncio
async def test_streaming_provider_and_observer() -> None:
    observed: List[LLMStreamChunk] = []

    async def observer(chunk: LLMStreamChunk) -> None:
        observed.append(chunk)

    llm = _StreamingLLM(
        [
            LLMStreamChunk(content_delta="Hel"),
            LLMStreamChunk(content_delta="lo"),
            LLMStreamChunk(finish_reason="stop"),
        ]
    )

    result = await _manager(llm, stream_observer=observer).execute(_request())

    assert result.final_response == "Hello"
    assert len(observed) == 3


@pytest.mark.asyncio
async def test_memory_enriches_prompt_and_records_conversation() -> None:
    store = _MemoryStore()
    memory = DefaultMemoryManager(
        store, ConversationMemoryConfig(session_id="s", memory_node_id="memory-node"), agent_node_id="agent-node"
    )
    llm = _ScriptedLLM([LLMResponse(content="Done")])

    await _manager(llm, memory=memory).execute(_request())

    assert "Previous Conversation Context" in llm.requests[0].system_prompt
    assert "What is the status page?" in llm.requests[0].system_prompt
    assert [r.conversation.status for r in store.stored] == ["started", "completed"]
    assert store.stored[-1].conversation.final_response == "Done"


@pytest.mark.asyncio
async def test_counters_reset_between_runs() -> None:
    llm = _ScriptedLLM([LLMResponse(content="ok")])
    manager = _manager(llm)

    await manager.execute(_request(conversation_id="a"))
    second = await manager.execute(_request(conversation_id="b"))

    assert manager.llm_calls == 1
    assert second.metadata["llm_calls"] == 1


@pytest.mark.asyncio
async def test_cancellation_during_tool_execution_propagates() -> None:
    store = _MemoryStore()
    memory = DefaultMemoryManager(store, ConversationMemoryConfig(session_id="s", memory_node_id="memory-node"))
    state_manager = InMemoryStateManager()
    executor = _HangingExecutor()
    llm = _ScriptedLLM([LLMResponse(tool_calls=[_tool_call()])])
    manager = _manager(llm, executor, state_manager=state_manager, memory=memory)

    task = asyncio.create_task(manager.execute(_request()))
    await asyncio.wait_for(executor.started.wait(), timeout=5)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    stored = await state_manager.load("conv-1")
    assert stored.status == ConversationStatus.failed
    assert stored.last_error.type == "cancelled"
    assert [r.conversation.status for r in store.stored] == ["started"]


@pytest.mark.asyncio
async def test_round_loop_reads_function_calling_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FLOWMESH_AI_FUNCTION_CALLING__MAX_ROUNDS", "2")
    monkeypatch.setenv("FLOWMESH_AI_FUNCTION_CALLING__TOOL_CALL_PREFIX", "tools.")
    llm = _ScriptedLLM([LLMResponse(tool_calls=[_tool_call(name="tools.http_get")])])
    manager = FunctionCallingConversationManager(
        ConversationDeps(
            llm=llm,
            tool_call_manager=ToolCallManager(_Catalog()),
            state_manager=InMemoryStateManager(),
            tool_executors=(_tool_executor(_HttpExecutor()),),
        )
    )

    result = await manager.execute(_request())

    assert len(llm.requests) == 2
    assert result.rounds == 2
    assert [e.success for e in result.tool_executions] == [True, True]
