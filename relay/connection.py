from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Optional

from .config import OverflowPolicy
from .errors import CloseReason, QueueOverflow, RelayError, WriteFailure
from .schemas import Message
from .transport import Connection

logger = logging.getLogger(__name__)


class ConnectionHandle:
    """One live connection: a bounded outbound queue drained by its own writer task.

    ``enqueue_send`` never waits, so a slow reader on this connection only ever
    fills its own queue; what happens when that queue is full is decided by the
    overflow policy.
    """

    def __init__(
        self,
        connection: Connection,
        capacity: int = 256,
        policy: OverflowPolicy = OverflowPolicy.DROP_OLDEST,
        connection_id: Optional[str] = None,
    ) -> None:
        self.id = connection_id or uuid.uuid4().hex
        self.connection = connection
        self.capacity = capacity
        self.policy = policy
        self.close_reason: Optional[CloseReason] = None
        self.last_error: Optional[RelayError] = None
        self.dropped = 0
        self._queue: asyncio.Queue[Message] = asyncio.Queue(maxsize=capacity)
        self._closed = False
        self._writer: Optional[asyncio.Task[None]] = None
        self._releaser: Optional[asyncio.Future[None]] = None
        self._released = asyncio.Event()
        self._release_started = False
        self._closed_event = asyncio.Event()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<ConnectionHandle {self.id[:8]} {state} queued={self._queue.qsize()}>"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._writer is not None or self._closed:
            return
        self._writer = asyncio.create_task(self._drain(), name=f"relay-writer-{self.id[:8]}")

    def enqueue_send(self, message: Message) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(message)
            return
        except asyncio.QueueFull:
            pass

        self.dropped += 1
        if self.policy is OverflowPolicy.DROP_OLDEST:
            self._queue.get_nowait()
            self._queue.put_nowait(message)
            logger.debug("Queue full for %s, dropped oldest message", self.id)
        elif self.policy is OverflowPolicy.DROP_NEWEST:
            logger.debug("Queue full for %s, dropped newest message", self.id)
        else:
            self.last_error = QueueOverflow(f"outbound queue full ({self.capacity} messages)")
            logger.warning("Disconnecting %s: %s", self.id, self.last_error)
            self.close(CloseReason.QUEUE_OVERFLOW)

    def close(self, reason: CloseReason = CloseReason.NORMAL) -> None:
        """Mark closed, discard queued messages and stop the writer. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self.close_reason = reason
        self._closed_event.set()
        while not self._queue.empty():
            self._queue.get_nowait()

        if self._writer is None:
            self._releaser = asyncio.ensure_future(self._release())
        elif self._writer is not asyncio.current_task():
            self._writer.cancel()

    async def wait_closed(self) -> None:
        """Wait until the underlying transport has been released."""
        writer = self._writer
        if writer is not None and writer is not asyncio.current_task():
            await asyncio.wait({writer})
        await self._release()
        await self._released.wait()

    async def closing(self) -> None:
        """Wait until ``close`` has been called."""
        await self._closed_event.wait()

    async def _drain(self) -> None:
        try:
            while True:
                message = await self._queue.get()
                try:
                    await self.connection.send(message)
                except Exception as exc:
                    self.last_error = WriteFailure(f"send to {self.connection.remote} failed: {exc!r}")
                    logger.warning("Write failed for %s: %s", self.id, self.last_error)
                    self.close(CloseReason.WRITE_FAILURE)
                    return
        except asyncio.CancelledError:
            pass
        finally:
            self.close(self.close_reason or CloseReason.SHUTDOWN)
            await self._release()

    async def _release(self) -> None:
        if self._release_started:
            return
        self._release_started = True
        try:
            await self.connection.close(self.close_reason or CloseReason.NORMAL)
        except Exception:
            logger.debug("Releasing transport for %s raised", self.id, exc_info=True)
        finally:
            self._released.set()
