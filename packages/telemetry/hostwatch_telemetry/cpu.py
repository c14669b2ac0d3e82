"""CPU collector: utilization from tick deltas, static specs, and thermal readings."""

from __future__ import annotations

import logging
import platform
import sys
import time
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Sequence

import psutil

from .models import CpuSample


logger = logging.getLogger("hostwatch.telemetry.cpu")

DEFAULT_THERMAL_PATHS: tuple[str, ...] = (
    "/sys/class/thermal/thermal_zone0/temp",
    "/sys/class/thermal/thermal_zone1/temp",
)
_PREFERRED_SENSORS = ("coretemp", "cpu_thermal", "k10temp", "acpitz")
# Already folded into user/nice by the kernel.
_EXCLUDED_TICKS = ("guest", "guest_nice")


def _tick_fields(core: Any) -> Mapping[str, float]:
    if hasattr(core, "_asdict"):
        return core._asdict()
    return dict(core)


def _idle_and_total(cores: Iterable[Any]) -> list[tuple[float, float]]:
    out: list[tuple[float, float]] = []
    for core in cores:
        fields = _tick_fields(core)
        idle = float(fields.get("idle", 0.0))
        total = float(sum(v for k, v in fields.items() if k not in _EXCLUDED_TICKS))
        out.append((idle, total))
    return out


def usage_between(first: Sequence[Any], second: Sequence[Any]) -> int:
    """Combined utilization across all cores between two tick readings, clamped to 0..100."""
    total_idle = 0.0
    total_tick = 0.0
    for (idle1, tick1), (idle2, tick2) in zip(_idle_and_total(first), _idle_and_total(second)):
        total_idle += idle2 - idle1
        total_tick += tick2 - tick1
    if total_tick <= 0:
        return 0
    usage = 100 - int(round(100 * total_idle / total_tick))
    return max(0, min(100, usage))


def read_thermal_paths(paths: Iterable[str]) -> int | None:
    """First parsable millidegree reading, in whole degrees."""
    for raw_path in paths:
        try:
            text = Path(raw_path).read_text(encoding="utf-8").strip()
            return int(round(int(text) / 1000))
        except (OSError, ValueError):
            continue
    return None


def _sensor_temperature() -> int | None:
    try:
        temps = psutil.sensors_temperatures()
    except Exception:
        return None
    if not temps:
        return None

    for name in _PREFERRED_SENSORS:
        entries = temps.get(name)
        if entries and entries[0].current is not None:
            return int(round(entries[0].current))

    for _name, entries in temps.items():
        if entries and entries[0].current is not None:
            return int(round(entries[0].current))
    return None


def _read_model_name(cpuinfo_path: str) -> str | None:
    try:
        text = Path(cpuinfo_path).read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    for line in text.splitlines():
        key, _sep, value = line.partition(":")
        value = value.strip()
        # x86 reports "model name"; older ARM kernels use "Processor".
        if key.strip().lower() in ("model name", "processor") and value and not value.isdigit():
            return value
    return None


class CpuCollector:
    """Samples utilization, specs, and temperature; never raises from `sample()`."""

    def __init__(
        self,
        sample_interval_s: float = 0.1,
        thermal_paths: Sequence[str] = DEFAULT_THERMAL_PATHS,
        cpuinfo_path: str = "/proc/cpuinfo",
        times_reader: Callable[[], Sequence[Any]] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        platform_name: str | None = None,
    ) -> None:
        self.sample_interval_s = sample_interval_s
        self.thermal_paths = tuple(thermal_paths)
        self.cpuinfo_path = cpuinfo_path
        self._read_times = times_reader or (lambda: psutil.cpu_times(percpu=True))
        self._sleep = sleep
        self._platform = platform_name or sys.platform

    def sample(self) -> CpuSample:
        model, cores, speed = self._specs()
        return CpuSample(
            model=model,
            cores=cores,
            speed_mhz=speed,
            usage=self.usage(),
            architecture=platform.machine(),
            temperature_c=self.temperature(),
        )

    def usage(self) -> int:
        try:
            first = list(self._read_times())
            self._sleep(self.sample_interval_s)
            second = list(self._read_times())
        except Exception as exc:
            logger.warning("cpu tick counters unavailable: %s", exc)
            return 0
        return usage_between(first, second)

    def temperature(self) -> int | None:
        if not self._platform.startswith("linux"):
            return None
        temp = read_thermal_paths(self.thermal_paths)
        if temp is None:
            temp = _sensor_temperature()
        return temp

    def _specs(self) -> tuple[str, int, int]:
        model = None
        if self._platform.startswith("linux"):
            model = _read_model_name(self.cpuinfo_path)
        if not model:
            model = platform.processor() or "Unknown"

        try:
            cores = int(psutil.cpu_count(logical=True) or 0)
        except Exception:
            cores = 0

        speed = 0
        try:
            freq = psutil.cpu_freq()
            if freq:
                speed = int(round(freq.current or freq.max or 0))
        except Exception as exc:
            logger.debug("cpu frequency unavailable: %s", exc)
        return model, cores, speed
