"""Subscriber client for the hostwatch channel endpoint."""

from .manager import ReconnectionManager
from .models import ClientStatus, ConnectionState
from .transport import WebSocketChannel, open_channel

__all__ = [
    "ClientStatus",
    "ConnectionState",
    "ReconnectionManager",
    "WebSocketChannel",
    "open_channel",
]
