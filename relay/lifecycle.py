from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

from .broadcast import Dispatcher
from .config import RelaySettings
from .connection import ConnectionHandle
from .errors import CapacityExceeded, CloseReason, ConnectionClosed, MalformedFrame
from .state import ConnectionRegistry
from .transport import Connection

logger = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


_TRANSITIONS = {
    LifecycleState.CONNECTING: {LifecycleState.ACTIVE, LifecycleState.CLOSING},
    LifecycleState.ACTIVE: {LifecycleState.CLOSING},
    LifecycleState.CLOSING: {LifecycleState.CLOSED},
    LifecycleState.CLOSED: set(),
}


class ConnectionLifecycle:
    """Supervises one connection from registration until it is closed and unregistered.

    ``run`` registers the connection, completes the handshake, then relays every
    inbound message through the dispatcher until the peer leaves, sends a bad
    frame, or the handle closes on its own (write failure, overflow, shutdown).
    Whatever ends the connection, it is always unregistered before ``run`` returns,
    and nothing raised here reaches other connections.
    """

    def __init__(
        self,
        connection: Connection,
        registry: ConnectionRegistry,
        dispatcher: Dispatcher,
        settings: Optional[RelaySettings] = None,
    ) -> None:
        settings = settings or RelaySettings()
        self.connection = connection
        self.handle = ConnectionHandle(
            connection,
            capacity=settings.queue_capacity,
            policy=settings.overflow_policy,
        )
        self.state = LifecycleState.CONNECTING
        self.messages_received = 0
        self._registry = registry
        self._dispatcher = dispatcher

    async def run(self) -> CloseReason:
        reason = CloseReason.SHUTDOWN
        try:
            rejected = await self._open()
            reason = rejected or await self._serve()
        finally:
            reason = await self._shutdown(reason)
        return reason

    def _transition(self, target: LifecycleState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"illegal transition {self.state.value} -> {target.value}")
        self.state = target

    async def _open(self) -> Optional[CloseReason]:
        try:
            await self._registry.register(self.handle)
        except CapacityExceeded as exc:
            logger.warning("Rejecting %s: %s", self.connection.remote, exc)
            return exc.reason

        try:
            await self.connection.accept()
        except Exception:
            logger.warning("Handshake with %s failed", self.connection.remote, exc_info=True)
            return CloseReason.PEER_DISCONNECTED

        self._transition(LifecycleState.ACTIVE)
        self.handle.start()
        logger.info(
            "Connected %s as %s (%d active)",
            self.connection.remote,
            self.handle.id,
            len(self._registry),
        )
        return None

    async def _serve(self) -> CloseReason:
        reader = asyncio.create_task(self._read_loop())
        closing = asyncio.create_task(self.handle.closing())
        try:
            await asyncio.wait({reader, closing}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            reader.cancel()
            closing.cancel()
            await asyncio.gather(reader, closing, return_exceptions=True)

        if reader.done() and not reader.cancelled():
            return reader.result()
        return self.handle.close_reason or CloseReason.NORMAL

    async def _read_loop(self) -> CloseReason:
        while True:
            try:
                message = await self.connection.receive()
            except ConnectionClosed:
                return CloseReason.PEER_DISCONNECTED
            except MalformedFrame as exc:
                logger.warning("Malformed frame from %s: %s", self.handle.id, exc)
                return exc.reason
            except Exception:
                logger.warning("Reading from %s failed", self.handle.id, exc_info=True)
                return CloseReason.INTERNAL_ERROR

            self.messages_received += 1
            try:
                await self._dispatcher.broadcast(self.handle.id, message)
            except Exception:
                logger.exception("Broadcast from %s failed", self.handle.id)
                return CloseReason.INTERNAL_ERROR

    async def _shutdown(self, reason: CloseReason) -> CloseReason:
        if self.state is LifecycleState.CLOSED:
            return self.handle.close_reason or reason
        if self.state is not LifecycleState.CLOSING:
            self._transition(LifecycleState.CLOSING)

        await self._registry.unregister(self.handle.id)
        self.handle.close(reason)
        await self.handle.wait_closed()
        self._transition(LifecycleState.CLOSED)

        final = self.handle.close_reason or reason
        if final is not CloseReason.CAPACITY_EXCEEDED:
            logger.info(
                "Disconnected %s (%s, %d received, %d dropped, %d active)",
                self.handle.id,
                final.value,
                self.messages_received,
                self.handle.dropped,
                len(self._registry),
            )
        return final
