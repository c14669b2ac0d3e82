"""Persistent settings schema and load/save helpers."""

from __future__ import annotations

import json
import os
import platform
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


CONFIG_VERSION = 1


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 5000
    ws_path: str = "/ws"
    allowed_origins: list[str] = field(default_factory=lambda: ["http://localhost:5173"])


@dataclass
class BroadcastConfig:
    period_ms: int = 5000
    process_limit: int = 10
    sort_key: str = "cpu"
    send_timeout_ms: int = 5000


@dataclass
class CollectorsConfig:
    cpu_sample_ms: int = 100
    command_timeout_s: float = 10.0
    thermal_paths: list[str] = field(
        default_factory=lambda: [
            "/sys/class/thermal/thermal_zone0/temp",
            "/sys/class/thermal/thermal_zone1/temp",
        ]
    )
    meminfo_path: str = "/proc/meminfo"
    default_process_limit: int = 20


@dataclass
class ClientConfig:
    url: str = "ws://127.0.0.1:5000/ws"
    max_retries: int = 5
    retry_delay_ms: int = 3000


@dataclass
class DiagnosticsConfig:
    keep_log_files: int = 7


@dataclass
class AppConfig:
    config_version: int = CONFIG_VERSION
    server: ServerConfig = field(default_factory=ServerConfig)
    broadcast: BroadcastConfig = field(default_factory=BroadcastConfig)
    collectors: CollectorsConfig = field(default_factory=CollectorsConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)


def config_root() -> Path:
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "HostWatch"
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "HostWatch"
    return Path.home() / ".config" / "hostwatch"


def config_path() -> Path:
    return config_root() / "config.json"


def _merge(dataclass_type, raw: dict[str, Any]):
    defaults = dataclass_type()  # type: ignore[misc]
    if not isinstance(raw, dict):
        return defaults
    for k, v in raw.items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _clamp_int(value: Any, low: int, high: int, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = default
    return max(low, min(high, number))


def _normalize_server(cfg: AppConfig) -> None:
    cfg.server.port = _clamp_int(cfg.server.port, 1, 65535, 5000)
    if not str(cfg.server.ws_path).startswith("/"):
        cfg.server.ws_path = "/" + str(cfg.server.ws_path)
    if any(o == "*" for o in cfg.server.allowed_origins):
        cfg.server.allowed_origins = [o for o in cfg.server.allowed_origins if o != "*"]


def _normalize_broadcast(cfg: AppConfig) -> None:
    cfg.broadcast.period_ms = _clamp_int(cfg.broadcast.period_ms, 500, 60000, 5000)
    cfg.broadcast.process_limit = _clamp_int(cfg.broadcast.process_limit, 1, 500, 10)
    cfg.broadcast.send_timeout_ms = _clamp_int(cfg.broadcast.send_timeout_ms, 100, 60000, 5000)
    if cfg.broadcast.sort_key not in ("cpu", "memory", "name", "pid"):
        cfg.broadcast.sort_key = "cpu"


def _normalize_collectors(cfg: AppConfig) -> None:
    cfg.collectors.cpu_sample_ms = _clamp_int(cfg.collectors.cpu_sample_ms, 10, 2000, 100)
    try:
        timeout = float(cfg.collectors.command_timeout_s)
    except (TypeError, ValueError):
        timeout = 10.0
    cfg.collectors.command_timeout_s = max(1.0, min(60.0, timeout))
    cfg.collectors.default_process_limit = _clamp_int(cfg.collectors.default_process_limit, 1, 1000, 20)


def _normalize_client(cfg: AppConfig) -> None:
    cfg.client.max_retries = _clamp_int(cfg.client.max_retries, 0, 100, 5)
    cfg.client.retry_delay_ms = _clamp_int(cfg.client.retry_delay_ms, 100, 600000, 3000)


def load_config(path: Path | None = None) -> AppConfig:
    path = path or config_path()
    if not path.exists():
        return AppConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return AppConfig()
    if not isinstance(raw, dict):
        return AppConfig()

    cfg = AppConfig(
        server=_merge(ServerConfig, raw.get("server", {})),
        broadcast=_merge(BroadcastConfig, raw.get("broadcast", {})),
        collectors=_merge(CollectorsConfig, raw.get("collectors", {})),
        client=_merge(ClientConfig, raw.get("client", {})),
        diagnostics=_merge(DiagnosticsConfig, raw.get("diagnostics", {})),
    )

    _normalize_server(cfg)
    _normalize_broadcast(cfg)
    _normalize_collectors(cfg)
    _normalize_client(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path
