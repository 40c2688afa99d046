from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from .connection import ConnectionHandle
from .errors import CapacityExceeded, CloseReason

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Lock-protected map of connection id to handle for every active connection.

    The lock is only held for dict operations, never across connection I/O, so
    connects and disconnects are not held up by broadcasts.
    """

    def __init__(self, max_connections: int = 1024) -> None:
        if max_connections < 1:
            raise ValueError("max_connections must be at least 1")
        self._lock = asyncio.Lock()
        self._handles: Dict[str, ConnectionHandle] = {}
        self._max_connections = max_connections
        self.accepted_total = 0
        self.rejected_total = 0

    @property
    def capacity(self) -> int:
        return self._max_connections

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._handles

    def get(self, connection_id: str) -> Optional[ConnectionHandle]:
        return self._handles.get(connection_id)

    async def register(self, handle: ConnectionHandle) -> str:
        async with self._lock:
            if handle.id in self._handles:
                raise ValueError(f"connection {handle.id} is already registered")
            if len(self._handles) >= self._max_connections:
                self.rejected_total += 1
                raise CapacityExceeded(self._max_connections)
            self._handles[handle.id] = handle
            self.accepted_total += 1
        return handle.id

    async def unregister(self, connection_id: str) -> Optional[ConnectionHandle]:
        async with self._lock:
            return self._handles.pop(connection_id, None)

    async def snapshot(self) -> List[ConnectionHandle]:
        async with self._lock:
            return list(self._handles.values())

    async def close_all(self, reason: CloseReason = CloseReason.SHUTDOWN) -> None:
        async with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        if handles:
            logger.info("Closing %d connections (%s)", len(handles), reason.value)
        for handle in handles:
            handle.close(reason)
        await asyncio.gather(*(handle.wait_closed() for handle in handles))
