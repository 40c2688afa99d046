from __future__ import annotations

from enum import Enum


class CloseReason(str, Enum):
    """Why a connection was closed, paired with the WebSocket close code sent."""

    NORMAL = "normal"
    PEER_DISCONNECTED = "peer_disconnected"
    SHUTDOWN = "shutdown"
    MALFORMED_FRAME = "malformed_frame"
    MESSAGE_TOO_BIG = "message_too_big"
    WRITE_FAILURE = "write_failure"
    QUEUE_OVERFLOW = "queue_overflow"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    INTERNAL_ERROR = "internal_error"

    @property
    def code(self) -> int:
        return _CLOSE_CODES[self]


_CLOSE_CODES = {
    CloseReason.NORMAL: 1000,
    CloseReason.PEER_DISCONNECTED: 1000,
    CloseReason.SHUTDOWN: 1001,
    CloseReason.MALFORMED_FRAME: 1003,
    CloseReason.QUEUE_OVERFLOW: 1008,
    CloseReason.MESSAGE_TOO_BIG: 1009,
    CloseReason.WRITE_FAILURE: 1011,
    CloseReason.INTERNAL_ERROR: 1011,
    CloseReason.CAPACITY_EXCEEDED: 1013,
}


class RelayError(Exception):
    """Base class for errors raised by the relay."""

    reason: CloseReason = CloseReason.NORMAL


class CapacityExceeded(RelayError):
    reason = CloseReason.CAPACITY_EXCEEDED

    def __init__(self, capacity: int) -> None:
        super().__init__(f"registry is full ({capacity} connections)")
        self.capacity = capacity


class WriteFailure(RelayError):
    reason = CloseReason.WRITE_FAILURE


class MalformedFrame(RelayError):
    reason = CloseReason.MALFORMED_FRAME

    def __init__(self, detail: str, reason: CloseReason = CloseReason.MALFORMED_FRAME) -> None:
        super().__init__(detail)
        self.reason = reason


class QueueOverflow(RelayError):
    reason = CloseReason.QUEUE_OVERFLOW


class ConnectionClosed(RelayError):
    """The peer went away; raised by the transport when no more frames will arrive."""

    reason = CloseReason.PEER_DISCONNECTED
