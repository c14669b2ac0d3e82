"""Typed telemetry models and their wire encoding."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


_MB = 1024 * 1024


def iso_timestamp(value: datetime) -> str:
    """Millisecond ISO-8601 in UTC with a trailing Z."""
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def bytes_to_mb(value: float) -> int:
    return int(round(value / _MB))


def kb_to_mb(value: float) -> int:
    return int(round(value / 1024))


@dataclass(frozen=True)
class CpuSample:
    model: str
    cores: int
    speed_mhz: int
    usage: int
    architecture: str = ""
    temperature_c: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "cores": self.cores,
            "speed": self.speed_mhz,
            "usage": self.usage,
            "architecture": self.architecture,
            "temperature": self.temperature_c,
        }


@dataclass(frozen=True)
class MemorySample:
    total: int
    free: int
    used: int
    percentage: int
    available: int | None = None
    buffers: int | None = None
    cached: int | None = None
    swap_total: int | None = None
    swap_free: int | None = None
    swap_used: int | None = None

    @classmethod
    def from_totals(cls, total_mb: int, free_mb: int, **extended: int | None) -> "MemorySample":
        """Build a sample whose used/percentage are derived from total and free."""
        free_mb = max(0, min(free_mb, total_mb))
        used_mb = total_mb - free_mb
        percentage = int(round(used_mb / total_mb * 100)) if total_mb > 0 else 0
        return cls(total=total_mb, free=free_mb, used=used_mb, percentage=percentage, **extended)

    @property
    def has_extended(self) -> bool:
        return self.swap_total is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "free": self.free,
            "used": self.used,
            "percentage": self.percentage,
            "available": self.available,
            "buffers": self.buffers,
            "cached": self.cached,
            "swapTotal": self.swap_total,
            "swapFree": self.swap_free,
            "swapUsed": self.swap_used,
        }


@dataclass(frozen=True)
class ProcessRecord:
    pid: int
    name: str = "unknown"
    user: str = "unknown"
    ppid: int | None = None
    cpu_percent: float = 0.0
    memory_mb: int = 0
    memory_percent: float = 0.0
    command: str = ""
    status: str = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {
            "pid": self.pid,
            "ppid": self.ppid,
            "user": self.user,
            "cpu": self.cpu_percent,
            "memory": self.memory_mb,
            "memoryPercent": self.memory_percent,
            "name": self.name,
            "command": self.command,
            "status": self.status,
        }


@dataclass(frozen=True)
class Snapshot:
    """One broadcast unit; `processes is None` marks a cpu+memory-only snapshot."""

    timestamp: datetime
    cpu: CpuSample | None
    memory: MemorySample | None
    processes: tuple[ProcessRecord, ...] | None = None
    errors: tuple[str, ...] = field(default_factory=tuple)

    @property
    def degraded(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "timestamp": iso_timestamp(self.timestamp),
            "cpu": self.cpu.to_dict() if self.cpu is not None else None,
            "memory": self.memory.to_dict() if self.memory is not None else None,
        }
        if self.processes is not None:
            payload["processes"] = [p.to_dict() for p in self.processes]
        payload["errors"] = list(self.errors)
        return payload

    def to_message(self) -> dict[str, Any]:
        return {"type": "systemUpdate", **self.to_dict()}
