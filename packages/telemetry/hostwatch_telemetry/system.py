"""Host identity and uptime helpers."""

from __future__ import annotations

import platform
import re
import socket
import sys
import time
from pathlib import Path
from typing import Any

import psutil


_PRETTY_NAME = re.compile(r'^PRETTY_NAME="?([^"\n]+)"?', re.MULTILINE)


def format_uptime(seconds: float) -> str:
    seconds = int(max(seconds, 0))
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60
    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _os_name(os_release_path: str) -> str:
    if sys.platform.startswith("linux"):
        try:
            match = _PRETTY_NAME.search(Path(os_release_path).read_text(encoding="utf-8"))
        except OSError:
            match = None
        # Android/Termux has no os-release.
        return match.group(1) if match else "Linux"
    if sys.platform == "darwin":
        return f"macOS {platform.mac_ver()[0]}".strip()
    if sys.platform.startswith("win"):
        return f"Windows {platform.version()}".strip()
    return platform.system() or "Unknown"


def system_info(os_release_path: str = "/etc/os-release") -> dict[str, Any]:
    total = psutil.virtual_memory().total
    return {
        "hostname": socket.gethostname(),
        "platform": sys.platform,
        "architecture": platform.machine(),
        "pythonVersion": platform.python_version(),
        "osName": _os_name(os_release_path),
        "kernelVersion": platform.release() or "Unknown",
        "cpuCount": psutil.cpu_count(logical=True) or 0,
        "totalMemory": round(total / (1024**3), 2),
    }


def uptime_info() -> dict[str, Any]:
    uptime = max(time.time() - psutil.boot_time(), 0.0)
    try:
        load = psutil.getloadavg()
    except (AttributeError, OSError):
        load = (0.0, 0.0, 0.0)
    return {
        "uptime": int(uptime),
        "uptimeFormatted": format_uptime(uptime),
        "loadAverage": {"1min": load[0], "5min": load[1], "15min": load[2]},
    }
