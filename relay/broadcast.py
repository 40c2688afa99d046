from __future__ import annotations

import logging

from .schemas import Message
from .state import ConnectionRegistry

logger = logging.getLogger(__name__)


class Dispatcher:
    """Fans a message from one connection out to every other registered connection."""

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry
        self.broadcasts_total = 0
        self.enqueue_attempts = 0

    async def broadcast(self, origin_id: str, message: Message) -> None:
        targets = await self._registry.snapshot()
        # No awaits past this point: the fan-out of one broadcast is never
        # interleaved with another's.
        attempts = 0
        for handle in targets:
            if handle.id == origin_id:
                continue
            handle.enqueue_send(message)
            attempts += 1
        self.broadcasts_total += 1
        self.enqueue_attempts += attempts
        logger.debug(
            "Relayed %s message of %d bytes from %s to %d connections",
            message.kind.value,
            message.size,
            origin_id,
            attempts,
        )
