from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MessageKind(str, Enum):
    TEXT = "text"
    BINARY = "binary"


class Message(BaseModel):
    """A relayed frame. Shared read-only by every recipient of one broadcast."""

    model_config = ConfigDict(frozen=True)

    kind: MessageKind
    payload: bytes = Field(description="Raw frame bytes; UTF-8 encoded for text frames.")

    @classmethod
    def text(cls, data: str) -> "Message":
        return cls(kind=MessageKind.TEXT, payload=data.encode("utf-8"))

    @classmethod
    def binary(cls, data: bytes) -> "Message":
        return cls(kind=MessageKind.BINARY, payload=bytes(data))

    @property
    def is_binary(self) -> bool:
        return self.kind is MessageKind.BINARY

    def as_text(self) -> str:
        return self.payload.decode("utf-8")

    @property
    def size(self) -> int:
        return len(self.payload)


class RelayStats(BaseModel):
    active_connections: int = Field(ge=0)
    max_connections: int = Field(ge=1)
    accepted_total: int = Field(default=0, ge=0)
    rejected_total: int = Field(default=0, ge=0)
    broadcasts_total: int = Field(default=0, ge=0)
    enqueue_attempts: int = Field(default=0, ge=0)
    messages_dropped: int = Field(
        default=0,
        ge=0,
        description="Messages discarded by overflow policies on currently connected clients.",
    )
