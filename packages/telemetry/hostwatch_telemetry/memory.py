"""Memory collector: aggregate counters plus the /proc/meminfo breakdown on Linux."""

from __future__ import annotations

import logging
import re
import sys
from pathlib import Path
from typing import Any, Callable

import psutil

from .models import MemorySample, bytes_to_mb, kb_to_mb


logger = logging.getLogger("hostwatch.telemetry.memory")

_FIRST_INT = re.compile(r"(\d+)")


def meminfo_value(lines: list[str], prefix: str) -> int:
    """MB value of the first line starting with `prefix`; 0 when the key is missing."""
    for line in lines:
        if line.startswith(prefix):
            match = _FIRST_INT.search(line)
            return kb_to_mb(int(match.group(1))) if match else 0
    return 0


def parse_meminfo(text: str) -> dict[str, int]:
    lines = text.splitlines()
    swap_total = meminfo_value(lines, "SwapTotal:")
    swap_free = meminfo_value(lines, "SwapFree:")
    return {
        "available": meminfo_value(lines, "MemAvailable:"),
        "buffers": meminfo_value(lines, "Buffers:"),
        "cached": meminfo_value(lines, "Cached:"),
        "swap_total": swap_total,
        "swap_free": swap_free,
        "swap_used": swap_total - swap_free,
    }


class MemoryCollector:
    def __init__(
        self,
        meminfo_path: str = "/proc/meminfo",
        virtual_memory: Callable[[], Any] = psutil.virtual_memory,
        platform_name: str | None = None,
    ) -> None:
        self.meminfo_path = meminfo_path
        self._virtual_memory = virtual_memory
        self._platform = platform_name or sys.platform

    def sample(self) -> MemorySample:
        """Never raises; without psutil counters totals come from /proc/meminfo, or are zero."""
        text = self._read_meminfo()
        try:
            vm = self._virtual_memory()
            total = bytes_to_mb(vm.total)
            free = bytes_to_mb(getattr(vm, "available", None) or vm.free)
        except Exception as exc:
            logger.warning("virtual memory counters unavailable: %s", exc, extra={"event": "memory_fallback"})
            lines = text.splitlines() if text else []
            total = meminfo_value(lines, "MemTotal:")
            free = meminfo_value(lines, "MemAvailable:") or meminfo_value(lines, "MemFree:")
        extended = parse_meminfo(text) if text is not None else {}
        return MemorySample.from_totals(total, free, **extended)

    def _read_meminfo(self) -> str | None:
        if not self._platform.startswith("linux"):
            return None
        try:
            return Path(self.meminfo_path).read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("could not read %s: %s", self.meminfo_path, exc)
            return None
