"""Event emitter and transports for SSE delivery.

The emitter serializes events to SSE frames and writes them immediately.
It sends keep-alive comments while a turn is running and closes its
transport exactly once, however the turn ends.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional, Protocol

from chatgateway.orchestrator.events import KEEPALIVE_FRAME, StreamEvent, encode_sse

logger = logging.getLogger(__name__)

DEFAULT_KEEPALIVE_INTERVAL = 15.0

_CLOSE = object()


class Transport(Protocol):
    """Destination for serialized frames."""

    async def write(self, frame: str) -> None:
        ...

    async def close(self) -> None:
        ...


class QueueTransport:
    """Bounded queue between a producing turn and an HTTP response.

    ``write`` suspends while the queue is full, so a slow consumer slows the
    producer instead of growing a buffer. Once the consumer detaches, frames
    are dropped.
    """

    def __init__(self, maxsize: int = 64):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.detached = False

    async def write(self, frame: str) -> None:
        if self.detached:
            return
        if self.closed:
            raise RuntimeError("Transport is closed")
        await self._queue.put(frame)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if not self._queue.full():
            self._queue.put_nowait(_CLOSE)

    def detach(self) -> None:
        """The consumer went away: discard queued frames and drop later ones."""
        self.detached = True
        while not self._queue.empty():
            self._queue.get_nowait()

    async def frames(self) -> AsyncIterator[str]:
        """Yield frames until the producer closes the transport."""
        while True:
            if self.closed and self._queue.empty():
                return
            frame = await self._queue.get()
            if frame is _CLOSE:
                return
            yield frame


class EventEmitter:
    """Writes stream events to a transport for the lifetime of one turn.

    Example:
        >>> async with EventEmitter(transport) as emitter:
        ...     await emitter.emit(TokenEvent("Hello"))
    """

    def __init__(
        self,
        transport: Transport,
        keepalive_interval: Optional[float] = DEFAULT_KEEPALIVE_INTERVAL,
    ):
        self.transport = transport
        self.keepalive_interval = keepalive_interval
        self._closed = False
        self._keepalive_task: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> "EventEmitter":
        if self.keepalive_interval:
            self._keepalive_task = asyncio.create_task(self._keepalive())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        await self.close()
        return False

    async def emit(self, event: StreamEvent) -> None:
        """Serialize and write one event.

        Raises:
            TypeError: If ``event`` is not a stream event.
        """
        frame = encode_sse(event)
        if self._closed:
            logger.debug(f"Dropping {type(event).__name__} emitted after close")
            return
        await self.transport.write(frame)

    async def _keepalive(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.keepalive_interval)
            if self._closed:
                return
            try:
                await self.transport.write(KEEPALIVE_FRAME)
            except Exception as e:
                logger.debug(f"Keep-alive stopped: {e}")
                return

    async def close(self) -> None:
        """Stop keep-alive and close the transport. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True

        if self._keepalive_task is not None:
            self._keepalive_task.cancel()
            await asyncio.gather(self._keepalive_task, return_exceptions=True)
            self._keepalive_task = None

        await self.transport.close()
