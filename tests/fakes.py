"""In-memory stand-ins for a transport connection."""
from __future__ import annotations

import asyncio
from typing import List, Optional

from relay.errors import CloseReason, ConnectionClosed
from relay.schemas import Message


class FakeConnection:
    def __init__(self, remote: str = "test:0", fail_send: bool = False) -> None:
        self.remote = remote
        self.fail_send = fail_send
        self.accepted = False
        self.sent: List[Message] = []
        self.closed_with: List[CloseReason] = []
        self.send_gate: Optional[asyncio.Event] = None
        self._inbound: asyncio.Queue = asyncio.Queue()

    async def accept(self) -> None:
        self.accepted = True

    async def receive(self) -> Message:
        item = await self._inbound.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def send(self, message: Message) -> None:
        if self.send_gate is not None:
            await self.send_gate.wait()
        if self.fail_send:
            raise ConnectionResetError("connection reset by peer")
        self.sent.append(message)

    async def close(self, reason: CloseReason) -> None:
        self.closed_with.append(reason)

    def push(self, item) -> None:
        self._inbound.put_nowait(item)

    def hang_up(self) -> None:
        self._inbound.put_nowait(ConnectionClosed("peer went away"))


async def eventually(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)
