"""Client-side connection manager with bounded fixed-delay reconnects."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable

from hostwatch_core.protocol import ClientMessage, ServerMessage, intent

from .models import ClientStatus, ConnectionState
from .transport import open_channel


logger = logging.getLogger("hostwatch.client")


def _spawn_reader(target: Callable[[], None]) -> None:
    threading.Thread(target=target, name="hostwatch-client-reader", daemon=True).start()


class ReconnectionManager:
    """Keeps one logical subscription alive across connection losses.

    `connector(url)` must return a channel with blocking `send(str)`, `recv() -> str`
    and `close()`. A failed open counts as a lost connection. After `max_retries`
    consecutive losses the manager stops in ``GaveUp`` until `connect()` is called again.
    """

    def __init__(
        self,
        url: str,
        connector: Callable[[str], Any] = open_channel,
        max_retries: int = 5,
        retry_delay_s: float = 3.0,
        on_update: Callable[[dict[str, Any]], None] | None = None,
        timer_factory: Callable[[float, Callable[[], None]], Any] = threading.Timer,
        spawn: Callable[[Callable[[], None]], None] = _spawn_reader,
    ) -> None:
        self.url = url
        self.max_retries = max_retries
        self.retry_delay_s = retry_delay_s
        self.on_update = on_update

        self._connector = connector
        self._timer_factory = timer_factory
        self._spawn = spawn
        self._lock = threading.RLock()
        self._status = ClientStatus(url=url)
        self._channel: Any | None = None
        self._timer: Any | None = None
        self._closing = False
        self._data: dict[str, Any] | None = None
        self._gave_up = threading.Event()
        self._events: list[dict[str, Any]] = []

    @property
    def status(self) -> ClientStatus:
        return self._status

    @property
    def state(self) -> ConnectionState:
        return self._status.state

    @property
    def connected(self) -> bool:
        return self._status.connected

    @property
    def retry_count(self) -> int:
        return self._status.retry_count

    @property
    def last_update(self) -> str | None:
        return self._status.last_update

    @property
    def data(self) -> dict[str, Any] | None:
        return self._data

    def recent_events(self, limit: int = 200) -> list[dict[str, Any]]:
        return self._events[-limit:]

    def _log_event(self, event: str, **fields: Any) -> None:
        row = {
            "ts_utc": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "state": self._status.state.value,
        }
        row.update(fields)
        self._events.append(row)
        if len(self._events) > 1000:
            self._events = self._events[-1000:]

    def connect(self) -> bool:
        with self._lock:
            self._cancel_timer()
            self._closing = False
            self._gave_up.clear()
            channel = self._open()
        if channel is None:
            return False
        self._spawn(lambda: self._read_loop(channel))
        return True

    def _open(self) -> Any | None:
        """One connection attempt; the caller holds the lock and spawns the reader."""
        self._status.state = ConnectionState.CONNECTING
        self._status.attempts += 1
        self._log_event("connect_start", attempt=self._status.attempts)

        try:
            channel = self._connector(self.url)
        except Exception as exc:
            self._status.last_error = str(exc)
            self._log_event("connect_error", error=str(exc))
            logger.warning("failed to open channel to %s: %s", self.url, exc)
            self._schedule_retry()
            return None

        if self._closing:
            # disconnect() ran while the connector was blocked.
            self._log_event("connect_abandoned")
            self._close_quietly(channel)
            return None

        self._channel = channel
        self._status.state = ConnectionState.OPEN
        self._status.connected = True
        self._status.retry_count = 0
        self._status.last_error = None
        self._log_event("connect_ok")
        logger.info("connected to %s", self.url, extra={"event": "client_connected"})

        try:
            channel.send(intent(ClientMessage.SUBSCRIBE))
        except Exception as exc:
            # The reader observes the broken channel and drives the retry.
            logger.warning("subscribe intent not sent: %s", exc)
        return channel

    def disconnect(self) -> None:
        with self._lock:
            self._closing = True
            self._cancel_timer()
            channel, self._channel = self._channel, None
            self._status.connected = False
            self._status.state = ConnectionState.DISCONNECTED
            self._log_event("disconnect")

        if channel is None:
            return
        try:
            channel.send(intent(ClientMessage.UNSUBSCRIBE))
        except Exception as exc:
            logger.debug("unsubscribe intent not sent: %s", exc)
        self._close_quietly(channel)

    def request_update(self) -> bool:
        with self._lock:
            channel = self._channel
            if channel is None or not self._status.connected:
                return False
            try:
                channel.send(intent(ClientMessage.REQUEST_UPDATE))
            except Exception as exc:
                logger.warning("update request not sent: %s", exc)
                return False
            return True

    def wait_until_gave_up(self, timeout: float | None = None) -> bool:
        return self._gave_up.wait(timeout)

    def _read_loop(self, channel: Any) -> None:
        while True:
            try:
                raw = channel.recv()
            except Exception as exc:
                self._handle_lost(channel, exc)
                return
            self._handle_message(raw)

    def _handle_message(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except ValueError as exc:
            logger.warning("failed to parse channel message: %s", exc)
            return
        if not isinstance(message, dict) or message.get("type") != ServerMessage.SYSTEM_UPDATE.value:
            return

        with self._lock:
            self._data = message
            self._status.last_update = message.get("timestamp")
            self._status.updates_received += 1

        if self.on_update is not None:
            try:
                self.on_update(message)
            except Exception:
                logger.exception("update callback failed")

    def _handle_lost(self, channel: Any, exc: BaseException) -> None:
        with self._lock:
            if channel is not self._channel:
                return
            self._channel = None
            self._status.last_error = str(exc) or type(exc).__name__
            self._log_event("connection_lost", error=self._status.last_error)
            logger.info("channel to %s closed: %s", self.url, self._status.last_error)
            self._schedule_retry()

    def _schedule_retry(self) -> None:
        self._status.connected = False
        self._status.state = ConnectionState.DISCONNECTED
        if self._closing:
            return
        if self._status.retry_count >= self.max_retries:
            self._status.state = ConnectionState.GAVE_UP
            self._log_event("gave_up", retries=self._status.retry_count)
            logger.warning(
                "max reconnection attempts reached (%d)", self.max_retries, extra={"event": "client_gave_up"}
            )
            self._gave_up.set()
            return

        self._status.retry_count += 1
        self._log_event("retry_scheduled", retry=self._status.retry_count, wait_s=self.retry_delay_s)
        logger.info("attempting to reconnect (%d/%d)", self._status.retry_count, self.max_retries)
        timer = self._timer_factory(self.retry_delay_s, self._retry)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _retry(self) -> None:
        with self._lock:
            if self._closing:
                return
            self._timer = None
            channel = self._open()
        if channel is not None:
            self._spawn(lambda: self._read_loop(channel))

    def _close_quietly(self, channel: Any) -> None:
        try:
            channel.close()
        except Exception as exc:
            logger.debug("channel close failed: %s", exc)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
