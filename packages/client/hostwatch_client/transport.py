"""WebSocket channel used by the reconnection manager."""

from __future__ import annotations

from websockets.sync.client import ClientConnection, connect


class WebSocketChannel:
    """Thin blocking wrapper over a websockets client connection."""

    def __init__(self, connection: ClientConnection) -> None:
        self._connection = connection
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed

    def send(self, text: str) -> None:
        if self._closed:
            raise RuntimeError("channel is closed")
        self._connection.send(text)

    def recv(self) -> str:
        data = self._connection.recv()
        if isinstance(data, bytes):
            return data.decode("utf-8")
        return data

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._connection.close()


def open_channel(url: str, timeout_s: float = 5.0) -> WebSocketChannel:
    return WebSocketChannel(connect(url, open_timeout=timeout_s))
