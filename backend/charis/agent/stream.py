"""Bounded, ordered event channel between an agent run and its SSE response."""

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import structlog

from charis.agent.events import DONE_FRAME, AgentEvent, EventType

logger = structlog.get_logger(__name__)


class EventStream:
    """Single-producer, single-consumer queue of SSE frames.

    ``emit`` awaits queue space, so a slow client applies backpressure to the
    run. Once the consumer calls ``detach`` (client went away) every later emit
    is dropped and counted instead, so the run can never block on a reader
    that is gone. ``close`` enqueues ``DONE_FRAME`` once; emits after close are
    ignored.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._detached = False
        self.emitted = 0
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def detached(self) -> bool:
        return self._detached

    async def emit(self, event: AgentEvent) -> None:
        if self._closed:
            logger.debug("event_after_close_ignored", event_type=str(event.type))
            return
        if self._detached:
            self.dropped += 1
            return
        await self._queue.put(event.to_sse())
        self.emitted += 1

    async def send(
        self,
        event_type: EventType,
        data: dict[str, Any] | None = None,
        node: str = "agent",
        step: str | None = None,
    ) -> None:
        await self.emit(AgentEvent.build(event_type, data, node=node, step=step))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self._detached:
            await self._queue.put(DONE_FRAME)

    def detach(self) -> None:
        """Mark the consumer as gone and release any producer blocked on a full queue."""
        if self._detached:
            return
        self._detached = True
        while not self._queue.empty():
            self._queue.get_nowait()
            self.dropped += 1

    async def next_frame(self, timeout: float | None = None) -> str | None:
        """Return the next frame, or None if *timeout* seconds pass first."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except TimeoutError:
            return None

    async def frames(self) -> AsyncIterator[str]:
        """Yield SSE frames in emit order, ending after ``DONE_FRAME``."""
        while True:
            frame = await self._queue.get()
            yield frame
            if frame == DONE_FRAME:
                return
