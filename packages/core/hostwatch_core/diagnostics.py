"""Diagnostics probes and local support bundles."""

from __future__ import annotations

import json
import platform
import re
import tempfile
import urllib.error
import urllib.request
import zipfile
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from hostwatch_telemetry import ProcessTableCollector
from hostwatch_telemetry.cpu import read_thermal_paths

from .config import AppConfig, config_path
from .logging_setup import get_logger, log_dir


logger = get_logger("diagnostics")

_SECRET_RE = re.compile(r"(token|secret|password|apikey|api_key|auth)", re.IGNORECASE)


def _jsonable(value: Any) -> Any:
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, Path):
        return str(value)
    return value


def redact(value: Any) -> Any:
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if _SECRET_RE.search(k):
                out[k] = "***REDACTED***"
            else:
                out[k] = redact(v)
        return out
    if isinstance(value, list):
        return [redact(v) for v in value]
    return value


def _thermal_source(paths: list[str]) -> str | None:
    for path in paths:
        if read_thermal_paths([path]) is not None:
            return path
    return None


def build_doctor_payload(cfg: AppConfig, processes: ProcessTableCollector | None = None) -> dict[str, Any]:
    collector = processes or ProcessTableCollector(timeout_s=cfg.collectors.command_timeout_s)
    return {
        "ts_utc": datetime.now(timezone.utc).isoformat(),
        "platform": platform.platform(),
        "python": platform.python_version(),
        "config": redact(asdict(cfg)),
        "probes": {
            "process_listing": collector.probe(),
            "thermal_source": _thermal_source(cfg.collectors.thermal_paths),
            "meminfo": Path(cfg.collectors.meminfo_path).is_file(),
        },
    }


def monitor_status_url(cfg: AppConfig) -> str:
    host = cfg.server.host
    if host in ("", "0.0.0.0", "::"):
        host = "127.0.0.1"
    if ":" in host:
        host = f"[{host}]"
    return f"http://{host}:{cfg.server.port}/api/monitor/status"


def fetch_monitor_status(url: str, timeout_s: float = 2.0) -> dict[str, Any] | None:
    """Supervisor status and recent events from a running server, or None when none answers."""
    req = urllib.request.Request(url, headers={"Accept": "application/json"})
    try:
        with urllib.request.urlopen(req, timeout=timeout_s) as resp:
            payload = json.loads(resp.read().decode("utf-8"))
    except (urllib.error.URLError, OSError, ValueError) as exc:
        logger.info("monitor status unavailable at %s: %s", url, exc)
        return None
    return payload if isinstance(payload, dict) else None


class DiagnosticsExporter:
    def __init__(self, app_name: str = "hostwatch") -> None:
        self.app_name = app_name

    def bundle(
        self,
        cfg: AppConfig,
        doctor_payload: dict[str, Any],
        recent_events: list[dict[str, Any]] | None = None,
        output_dir: Path | None = None,
    ) -> Path:
        output_base = output_dir or Path(tempfile.gettempdir())
        output_base.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        zip_path = output_base / f"hostwatch-diagnostics-{stamp}.zip"

        logs = sorted(log_dir().glob("*.log*"))

        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            manifest = {
                "app": self.app_name,
                "created_utc": datetime.now(timezone.utc).isoformat(),
                "host": platform.platform(),
                "python": platform.python_version(),
                "config_path": str(config_path()),
                "log_dir": str(log_dir()),
            }
            zf.writestr("manifest.json", json.dumps(manifest, indent=2, sort_keys=True))
            zf.writestr("doctor.json", json.dumps(redact(doctor_payload), indent=2, sort_keys=True, default=_jsonable))
            zf.writestr("config.redacted.json", json.dumps(redact(asdict(cfg)), indent=2, sort_keys=True))
            zf.writestr(
                "monitor_events.json",
                json.dumps(redact(recent_events or []), indent=2, sort_keys=True, default=_jsonable),
            )

            for item in logs:
                zf.write(item, arcname=f"logs/{item.name}")

        return zip_path
