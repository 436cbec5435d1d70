"""Producer/consumer relay for streamed LLM output.

The producer task drains an async iterator (a streaming model call) into a
bounded queue; the consumer task forwards every chunk to a sink. ``run``
returns once both sides are done. If either side fails or the caller is
cancelled, both tasks are cancelled and the queue is drained before the error
propagates.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DONE = object()


class StreamRelay(Generic[T]):
    def __init__(self, maxsize: int = 64) -> None:
        self._maxsize = maxsize

    async def run(self, source: AsyncIterator[T], sink: Callable[[T], Awaitable[None]]) -> int:
        """
        Forward every item of ``source`` to ``sink`` in order.

        Returns:
            Number of items forwarded.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        forwarded = 0

        async def produce() -> None:
            async for item in source:
                await queue.put(item)
            await queue.put(_DONE)

        async def consume() -> None:
            nonlocal forwarded
            while True:
                item = await queue.get()
                if item is _DONE:
                    return
                await sink(item)
                forwarded += 1

        producer = asyncio.create_task(produce())
        consumer = asyncio.create_task(consume())
        try:
            await asyncio.gather(producer, consumer)
        except BaseException:
            for task in (producer, consumer):
                task.cancel()
            await asyncio.gather(producer, consumer, return_exceptions=True)
            while not queue.empty():
                queue.get_nowait()
            raise
        return forwarded
