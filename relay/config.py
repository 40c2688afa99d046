from __future__ import annotations

import os
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class OverflowPolicy(str, Enum):
    DROP_OLDEST = "drop-oldest"
    DROP_NEWEST = "drop-newest"
    DISCONNECT = "disconnect"


class RelaySettings(BaseModel):
    """Process configuration, read from ``RELAY_*`` environment variables."""

    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=0, le=65535)
    max_connections: int = Field(default=1024, ge=1)
    queue_capacity: int = Field(default=256, ge=1)
    overflow_policy: OverflowPolicy = OverflowPolicy.DROP_OLDEST
    max_message_bytes: int = Field(default=1024 * 1024, ge=1)
    log_level: str = "INFO"

    @field_validator("overflow_policy", mode="before")
    @classmethod
    def _normalize_policy(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower().replace("_", "-")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"unknown log level {value!r}")
        return level

    @classmethod
    def from_env(cls) -> "RelaySettings":
        values = {
            "host": os.getenv("RELAY_HOST"),
            "port": os.getenv("RELAY_PORT"),
            "max_connections": os.getenv("RELAY_MAX_CONNECTIONS"),
            "queue_capacity": os.getenv("RELAY_QUEUE_CAPACITY"),
            "overflow_policy": os.getenv("RELAY_OVERFLOW_POLICY"),
            "max_message_bytes": os.getenv("RELAY_MAX_MESSAGE_BYTES"),
            "log_level": os.getenv("RELAY_LOG_LEVEL"),
        }
        return cls(**{key: value for key, value in values.items() if value is not None})
