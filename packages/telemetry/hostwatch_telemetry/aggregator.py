"""Concurrent snapshot assembly with per-collector failure isolation."""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable

from .cpu import CpuCollector
from .errors import CollectorError
from .memory import MemoryCollector
from .models import CpuSample, MemorySample, ProcessRecord, Snapshot
from .processes import DEFAULT_TIMEOUT_S, ProcessTableCollector, fallback_records


logger = logging.getLogger("hostwatch.telemetry.aggregator")


def describe_error(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class SnapshotAggregator:
    """Runs the collectors concurrently; a failure degrades one field, never the snapshot."""

    def __init__(
        self,
        cpu: Any | None = None,
        memory: Any | None = None,
        processes: Any | None = None,
        process_timeout_s: float = DEFAULT_TIMEOUT_S,
        fallback: Callable[[], list[ProcessRecord]] = fallback_records,
    ) -> None:
        self.cpu = cpu or CpuCollector()
        self.memory = memory or MemoryCollector()
        self.processes = processes or ProcessTableCollector(timeout_s=process_timeout_s)
        self.process_timeout_s = process_timeout_s
        self._fallback = fallback
        # Kept off the default pool that cpu and memory sampling share.
        self._process_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hostwatch-ps")

    async def snapshot(self, process_limit: int = 10, sort_key: str = "cpu") -> Snapshot:
        cpu_result, memory_result, process_result = await asyncio.gather(
            asyncio.to_thread(self.cpu.sample),
            asyncio.to_thread(self.memory.sample),
            self.list_processes(process_limit, sort_key),
            return_exceptions=True,
        )

        errors: list[str] = []
        cpu = self._settle("cpu", cpu_result, errors)
        memory = self._settle("memory", memory_result, errors)
        processes = self._settle("processes", process_result, errors)
        if processes is None:
            processes = self._fallback_processes()

        return Snapshot(
            timestamp=datetime.now(timezone.utc),
            cpu=cpu,
            memory=memory,
            processes=tuple(processes),
            errors=tuple(errors),
        )

    async def light_snapshot(self) -> Snapshot:
        """CPU and memory only, for on-demand requests."""
        cpu_result, memory_result = await asyncio.gather(
            asyncio.to_thread(self.cpu.sample),
            asyncio.to_thread(self.memory.sample),
            return_exceptions=True,
        )
        errors: list[str] = []
        cpu: CpuSample | None = self._settle("cpu", cpu_result, errors)
        memory: MemorySample | None = self._settle("memory", memory_result, errors)
        return Snapshot(
            timestamp=datetime.now(timezone.utc),
            cpu=cpu,
            memory=memory,
            processes=None,
            errors=tuple(errors),
        )

    async def list_processes(self, limit: int, sort_key: str) -> list[ProcessRecord]:
        """Process listing bounded by `process_timeout_s`.

        Listings queue on a single dedicated worker, so a hung `ps` delays only other
        listings; a queued listing that times out is cancelled before it starts.
        """
        listing = self._process_executor.submit(self.processes.list, limit, sort_key)
        try:
            return await asyncio.wait_for(asyncio.wrap_future(listing), timeout=self.process_timeout_s)
        except asyncio.TimeoutError:
            raise CollectorError(f"process listing timed out after {self.process_timeout_s:g}s") from None

    def close(self) -> None:
        self._process_executor.shutdown(wait=False, cancel_futures=True)

    @staticmethod
    def _settle(field: str, result: Any, errors: list[str]) -> Any:
        if isinstance(result, BaseException):
            message = describe_error(result)
            logger.warning("%s collector failed: %s", field, message, extra={"event": "collector_failed"})
            errors.append(message)
            return None
        return result

    def _fallback_processes(self) -> list[ProcessRecord]:
        try:
            return self._fallback()
        except Exception as exc:
            logger.warning("self-describing process fallback failed: %s", exc)
            return []
