"""Typed models for the client connection state."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ConnectionState(str, Enum):
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    OPEN = "Open"
    GAVE_UP = "GaveUp"


@dataclass
class ClientStatus:
    connected: bool = False
    state: ConnectionState = ConnectionState.DISCONNECTED
    url: str | None = None
    retry_count: int = 0
    attempts: int = 0
    updates_received: int = 0
    last_update: str | None = None
    last_error: str | None = None
