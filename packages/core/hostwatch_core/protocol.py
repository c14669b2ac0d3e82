"""JSON frames exchanged over the subscriber channel."""

from __future__ import annotations

import json
import time
from enum import Enum
from typing import Any


class ClientMessage(str, Enum):
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    REQUEST_UPDATE = "requestUpdate"


class ServerMessage(str, Enum):
    CONNECTED = "connected"
    SYSTEM_UPDATE = "systemUpdate"


class ProtocolError(ValueError):
    """A client frame could not be decoded into a known message."""


def parse_client_message(raw: str | bytes) -> ClientMessage:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"invalid JSON frame: {exc}") from exc
    if not isinstance(data, dict) or "type" not in data:
        raise ProtocolError("frame has no 'type' field")
    try:
        return ClientMessage(data["type"])
    except ValueError:
        raise ProtocolError(f"unknown message type: {data['type']!r}") from None


def encode(message: dict[str, Any]) -> str:
    return json.dumps(message, separators=(",", ":"))


def intent(kind: ClientMessage) -> str:
    return encode({"type": kind.value})


def connected_message(now_ms: int | None = None) -> str:
    stamp = int(time.time() * 1000) if now_ms is None else now_ms
    return encode({"type": ServerMessage.CONNECTED.value, "timestamp": stamp})
