"""Adapts a FastAPI/Starlette ``WebSocket`` to the connection interface the relay drives."""
from __future__ import annotations

import logging
from typing import Optional, Protocol

from fastapi import WebSocket
from fastapi.websockets import WebSocketState

from .errors import CloseReason, ConnectionClosed, MalformedFrame
from .schemas import Message

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """What the relay needs from one live, message-capable endpoint."""

    @property
    def remote(self) -> str: ...

    async def accept(self) -> None: ...

    async def receive(self) -> Message: ...

    async def send(self, message: Message) -> None: ...

    async def close(self, reason: CloseReason) -> None: ...


class WebSocketConnection:
    def __init__(self, websocket: WebSocket, max_message_bytes: Optional[int] = None) -> None:
        self._websocket = websocket
        self._max_message_bytes = max_message_bytes

    @property
    def remote(self) -> str:
        client = self._websocket.client
        if client is None:
            return "unknown"
        return f"{client.host}:{client.port}"

    async def accept(self) -> None:
        await self._websocket.accept()

    async def receive(self) -> Message:
        """Wait for the next frame; raises ``ConnectionClosed`` once the peer is gone."""
        if self._websocket.client_state == WebSocketState.DISCONNECTED:
            raise ConnectionClosed("peer already disconnected")
        event = await self._websocket.receive()
        if event["type"] == "websocket.disconnect":
            raise ConnectionClosed(f"peer disconnected with code {event.get('code', 1000)}")

        text = event.get("text")
        data = event.get("bytes")
        if text is not None:
            message = Message.text(text)
        elif data is not None:
            message = Message.binary(data)
        else:
            raise MalformedFrame(f"unexpected event without payload: {event['type']}")

        if self._max_message_bytes is not None and message.size > self._max_message_bytes:
            raise MalformedFrame(
                f"frame of {message.size} bytes exceeds limit of {self._max_message_bytes}",
                reason=CloseReason.MESSAGE_TOO_BIG,
            )
        return message

    async def send(self, message: Message) -> None:
        if message.is_binary:
            await self._websocket.send_bytes(message.payload)
        else:
            await self._websocket.send_text(message.as_text())

    async def close(self, reason: CloseReason) -> None:
        if self._websocket.application_state == WebSocketState.DISCONNECTED:
            return
        if self._websocket.client_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self._websocket.close(code=reason.code)
        except Exception:
            logger.debug("Closing %s raised", self.remote, exc_info=True)
