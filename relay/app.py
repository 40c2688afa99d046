from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from .broadcast import Dispatcher
from .config import RelaySettings
from .errors import CloseReason
from .lifecycle import ConnectionLifecycle
from .schemas import RelayStats
from .state import ConnectionRegistry
from .transport import WebSocketConnection

logger = logging.getLogger(__name__)


def create_app(settings: Optional[RelaySettings] = None) -> FastAPI:
    settings = settings or RelaySettings.from_env()
    registry = ConnectionRegistry(max_connections=settings.max_connections)
    dispatcher = Dispatcher(registry)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Relay ready (max %d connections, queue %d, %s)",
            settings.max_connections,
            settings.queue_capacity,
            settings.overflow_policy.value,
        )
        try:
            yield
        finally:
            await registry.close_all(CloseReason.SHUTDOWN)

    app = FastAPI(title="Message Relay", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/stats", response_model=RelayStats)
    async def stats() -> RelayStats:
        handles = await registry.snapshot()
        return RelayStats(
            active_connections=len(handles),
            max_connections=registry.capacity,
            accepted_total=registry.accepted_total,
            rejected_total=registry.rejected_total,
            broadcasts_total=dispatcher.broadcasts_total,
            enqueue_attempts=dispatcher.enqueue_attempts,
            messages_dropped=sum(handle.dropped for handle in handles),
        )

    @app.websocket("/ws")
    async def relay_stream(websocket: WebSocket) -> None:
        connection = WebSocketConnection(websocket, max_message_bytes=settings.max_message_bytes)
        lifecycle = ConnectionLifecycle(connection, registry, dispatcher, settings)
        await lifecycle.run()

    return app
