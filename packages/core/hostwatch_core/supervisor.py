"""Broadcast scheduler that pushes periodic snapshots to subscribed channels."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .logging_setup import get_logger
from .protocol import ClientMessage, parse_client_message
from .registry import SubscriberChannel, SubscriptionRegistry


logger = get_logger("supervisor")


@dataclass
class SupervisorStatus:
    running: bool = False
    ticks: int = 0
    idle_ticks: int = 0
    broadcasts: int = 0
    last_delivered: int = 0
    dropped_channels: int = 0
    last_broadcast_utc: str | None = None
    last_error: str | None = None


class MonitorSupervisor:
    """Owns the broadcast timer; constructed once per process and handed to the listener."""

    def __init__(
        self,
        aggregator: Any,
        period_s: float = 5.0,
        process_limit: int = 10,
        sort_key: str = "cpu",
        send_timeout_s: float = 5.0,
    ) -> None:
        self.aggregator = aggregator
        self.period_s = period_s
        self.process_limit = process_limit
        self.sort_key = sort_key
        self.send_timeout_s = send_timeout_s

        self._registry: SubscriptionRegistry | None = None
        self._task: asyncio.Task | None = None
        self._status = SupervisorStatus()
        self._events: list[dict[str, Any]] = []

    @property
    def status(self) -> SupervisorStatus:
        self._status.running = self.is_running
        return self._status

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def registry(self) -> SubscriptionRegistry | None:
        return self._registry

    def recent_events(self, limit: int = 200) -> list[dict[str, Any]]:
        return self._events[-limit:]

    def _log_event(self, event: str, **fields: Any) -> None:
        row = {"ts_utc": datetime.now(timezone.utc).isoformat(), "event": event}
        row.update(fields)
        self._events.append(row)
        if len(self._events) > 1000:
            self._events = self._events[-1000:]

    def start(self, registry: SubscriptionRegistry) -> None:
        """Start ticking against `registry`; a no-op while already running."""
        if self.is_running:
            return
        self._registry = registry
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name="hostwatch-broadcast")
        self._log_event("monitor_started", period_s=self.period_s)
        logger.info(
            "real-time monitoring started (%gs intervals)", self.period_s, extra={"event": "monitor_started"}
        )

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        if not task.done():
            task.cancel()
        self._log_event("monitor_stopped")
        logger.info("system monitoring stopped", extra={"event": "monitor_stopped"})

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.period_s)
            try:
                await self.tick()
            except Exception as exc:
                self._status.last_error = str(exc)
                logger.exception("monitoring tick failed", extra={"event": "tick_failed"})

    async def tick(self) -> int:
        """One scheduler firing; returns how many channels received the snapshot."""
        self._status.ticks += 1
        registry = self._registry
        if registry is None or registry.active_count == 0:
            self._status.idle_ticks += 1
            return 0

        snapshot = await self.aggregator.snapshot(self.process_limit, self.sort_key)
        payload = json.dumps(snapshot.to_message())

        results = await asyncio.gather(*(self._deliver(ch, payload) for ch in registry.subscribed()))
        delivered = sum(1 for ok in results if ok)

        self._status.broadcasts += 1
        self._status.last_delivered = delivered
        self._status.last_broadcast_utc = datetime.now(timezone.utc).isoformat()
        if snapshot.errors:
            self._log_event("broadcast_degraded", errors=list(snapshot.errors))
        return delivered

    async def request_update(self, channel: SubscriberChannel) -> bool:
        """Send a cpu+memory snapshot to one channel regardless of its subscription."""
        snapshot = await self.aggregator.light_snapshot()
        return await self._deliver(channel, json.dumps(snapshot.to_message()))

    async def handle_message(self, channel: SubscriberChannel, raw: str | bytes) -> ClientMessage:
        """Apply one client frame; raises ProtocolError for frames that cannot be decoded."""
        message = parse_client_message(raw)
        registry = self._registry
        if message is ClientMessage.SUBSCRIBE:
            if registry is not None:
                registry.subscribe(channel)
            logger.info("client subscribed to real-time updates", extra={"channel_id": channel.channel_id})
        elif message is ClientMessage.UNSUBSCRIBE:
            if registry is not None:
                registry.unsubscribe(channel)
            logger.info("client unsubscribed from real-time updates", extra={"channel_id": channel.channel_id})
        else:
            await self.request_update(channel)
        return message

    async def _deliver(self, channel: SubscriberChannel, payload: str) -> bool:
        try:
            await asyncio.wait_for(channel.send(payload), timeout=self.send_timeout_s)
            return True
        except asyncio.TimeoutError:
            self._drop(channel, f"send timed out after {self.send_timeout_s:g}s")
            return False
        except Exception as exc:
            self._drop(channel, str(exc) or type(exc).__name__)
            return False

    def _drop(self, channel: SubscriberChannel, reason: str) -> None:
        logger.warning(
            "failed to send update to client: %s",
            reason,
            extra={"event": "channel_dropped", "channel_id": channel.channel_id},
        )
        self._status.dropped_channels += 1
        self._log_event("channel_dropped", channel_id=channel.channel_id, error=reason)
        if self._registry is not None:
            self._registry.remove(channel)
