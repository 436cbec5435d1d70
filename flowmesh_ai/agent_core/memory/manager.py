"""Conversation memory for function-calling agents.

``DefaultMemoryManager`` wraps a ``ConversationStore``: it retrieves recent
conversations of the configured session to enrich the system prompt and records
the conversation when it starts and when it completes. A memory outage never
fails a run: every store error is logged and swallowed.

``NoOpMemoryManager`` is used when no memory node is bound; every operation
returns its input unchanged so callers never special-case missing memory.

Every attempt is mirrored as node events attributed to the memory node.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

from ..events import EventEmitter
from ..schemas.domain import ConversationResult, ConversationState
from ..schemas.events import NodeItem, output_port
from ..schemas.memory import (
    AgentConversation,
    ConversationFilter,
    ConversationMemoryConfig,
    StoreConversationRequest,
)
from .context_builder import MemoryContextBuilder
from .interfaces import ConversationStore
from .record_builder import ConversationRecordBuilder

logger = logging.getLogger(__name__)

MEMORY_INPUT_ID = "memory_input"


class MemoryManager(Protocol):
    @property
    def enabled(self) -> bool: ...

    async def retrieve_context(self, workspace_id: str) -> str: ...

    async def enhance_system_prompt(self, base_prompt: str, workspace_id: str) -> str: ...

    async def store_start(self, state: ConversationState) -> None: ...

    async def store_complete(self, state: ConversationState, result: Optional[ConversationResult]) -> None: ...


class NoOpMemoryManager:
    """Memory manager used when memory is disabled."""

    @property
    def enabled(self) -> bool:
        return False

    async def retrieve_context(self, workspace_id: str) -> str:
        return ""

    async def enhance_system_prompt(self, base_prompt: str, workspace_id: str) -> str:
        return base_prompt

    async def store_start(self, state: ConversationState) -> None:
        return None

    async def store_complete(self, state: ConversationState, result: Optional[ConversationResult]) -> None:
        return None


class DefaultMemoryManager:
    def __init__(
        self,
        store: ConversationStore,
        config: ConversationMemoryConfig,
        *,
        agent_node_id: str = "",
        emitter: Optional[EventEmitter] = None,
        context_builder: Optional[MemoryContextBuilder] = None,
        record_builder: Optional[ConversationRecordBuilder] = None,
    ) -> None:
        if store is None:
            raise ValueError("conversation store is required")
        self._store = store
        self._config = config
        self._emitter = emitter or EventEmitter()
        self._context_builder = context_builder or MemoryContextBuilder(
            max_context_length=config.max_context_length,
            include_tools=config.include_tool_usage,
            response_preview_length=config.response_preview_length,
            conversation_limit=config.conversation_count,
        )
        self._record_builder = record_builder or ConversationRecordBuilder(
            agent_node_id=agent_node_id, session_id=config.session_id
        )

    @property
    def enabled(self) -> bool:
        return True

    @property
    def config(self) -> ConversationMemoryConfig:
        return self._config

    async def retrieve_context(self, workspace_id: str) -> str:
        """Return formatted context of recent conversations, or "" on any failure."""
        return await self._retrieve("memory_retrieval", workspace_id) or ""

    async def enhance_system_prompt(self, base_prompt: str, workspace_id: str) -> str:
        context = await self._retrieve("memory_enhancement", workspace_id)
        if not context:
            return base_prompt
        return self._context_builder.enhance_system_prompt(base_prompt, context)

    async def store_start(self, state: ConversationState) -> None:
        record = self._record_builder.build_from_state(
            state, status="started", extra_metadata={"phase": "initialization"}
        )
        await self._store_record(record)

    async def store_complete(self, state: ConversationState, result: Optional[ConversationResult]) -> None:
        if result is not None:
            record = self._record_builder.build_from_state_and_result(state, result)
        else:
            record = self._record_builder.build_from_state(state)
        await self._store_record(record)

    async def _store_record(self, record: AgentConversation) -> None:
        inputs = self._input_items(
            "memory_storage",
            workspace_id=record.workspace_id,
            conversation_id=record.conversation_id,
            status=record.status,
        )
        await self._emitter.node_started(self._config.memory_node_id)
        try:
            await self._store.store_conversation(
                StoreConversationRequest(conversation=record, partition_key=record.workspace_id, ttl_seconds=0)
            )
        except Exception as e:
            logger.warning(f"Failed to store conversation {record.conversation_id} ({record.status}): {e}")
            await self._emitter.node_failed(self._config.memory_node_id, str(e), items_by_input=inputs)
            return
        await self._emitter.node_executed(
            self._config.memory_node_id,
            items_by_input=inputs,
            items_by_output=self._output_items({"stored": True, "conversation_id": record.conversation_id}),
        )

    async def _retrieve(self, operation: str, workspace_id: str) -> Optional[str]:
        inputs = self._input_items(operation, workspace_id=workspace_id)
        await self._emitter.node_started(self._config.memory_node_id)
        try:
            conversations = await self._store.retrieve_conversations(self._filter(workspace_id))
        except Exception as e:
            logger.warning(f"Memory retrieval failed for workspace {workspace_id}: {e}")
            await self._emitter.node_failed(self._config.memory_node_id, str(e), items_by_input=inputs)
            return None

        context = self._context_builder.build_context(conversations)
        await self._emitter.node_executed(
            self._config.memory_node_id,
            items_by_input=inputs,
            items_by_output=self._output_items(
                {"conversation_count": len(conversations), "context_length": len(context)}
            ),
        )
        logger.debug(f"Retrieved {len(conversations)} conversations for {operation}")
        return context

    def _filter(self, workspace_id: str) -> ConversationFilter:
        return ConversationFilter(
            session_id=self._config.session_id,
            workspace_id=workspace_id,
            limit=self._config.conversation_count,
            status="completed",
            include_tools=self._config.include_tool_usage,
        )

    def _input_items(self, operation: str, **data: Any) -> Dict[str, list]:
        payload = {"operation": operation, "session_id": self._config.session_id, **data}
        return {MEMORY_INPUT_ID: [NodeItem(data=payload, from_node=self._record_builder.agent_node_id or None)]}

    def _output_items(self, data: Dict[str, Any]) -> Dict[str, list]:
        return {output_port(self._config.memory_node_id, 0): [NodeItem(data=data)]}


def create_memory_manager(
    store: Optional[ConversationStore],
    config: Optional[ConversationMemoryConfig],
    *,
    agent_node_id: str = "",
    emitter: Optional[EventEmitter] = None,
) -> MemoryManager:
    """Return a ``DefaultMemoryManager``, or a ``NoOpMemoryManager`` when memory is not bound or disabled."""
    if store is None or config is None or not config.enabled:
        return NoOpMemoryManager()
    return DefaultMemoryManager(store, config, agent_node_id=agent_node_id, emitter=emitter)
