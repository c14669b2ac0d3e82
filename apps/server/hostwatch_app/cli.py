"""CLI entrypoints for the hostwatch server, one-shot collectors, diagnostics, and the watch client."""

from __future__ import annotations

import argparse
import asyncio
import json
import threading
from dataclasses import asdict
from pathlib import Path

from hostwatch_client import ReconnectionManager
from hostwatch_core import (
    DiagnosticsExporter,
    build_doctor_payload,
    fetch_monitor_status,
    load_config,
    monitor_status_url,
)
from hostwatch_core.logging_setup import configure_logging, install_crash_hooks
from hostwatch_telemetry import SORT_KEYS, ProcessListingError, ProcessTableCollector, fallback_records

from .api import build_aggregator, create_app


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    cfg = load_config()
    if args.host:
        cfg.server.host = args.host
    if args.port:
        cfg.server.port = args.port
    if args.period_ms:
        cfg.broadcast.period_ms = max(500, min(60000, args.period_ms))

    install_crash_hooks()
    app = create_app(cfg)
    uvicorn.run(app, host=cfg.server.host, port=cfg.server.port, log_config=None)
    return 0


def cmd_snapshot(args: argparse.Namespace) -> int:
    cfg = load_config()
    aggregator = build_aggregator(cfg)
    try:
        snapshot = asyncio.run(aggregator.snapshot(args.limit or cfg.broadcast.process_limit, args.sort))
    finally:
        aggregator.close()
    _print_json(snapshot.to_dict())
    return 0 if not snapshot.degraded else 1


def cmd_processes(args: argparse.Namespace) -> int:
    cfg = load_config()
    collector = ProcessTableCollector(timeout_s=cfg.collectors.command_timeout_s)
    limit = args.limit or cfg.collectors.default_process_limit
    try:
        records = collector.list(limit, args.sort)
        payload: dict[str, object] = {"processes": [r.to_dict() for r in records]}
    except ProcessListingError as exc:
        payload = {
            "processes": [r.to_dict() for r in fallback_records()],
            "error": str(exc),
            "fallback": True,
        }
    payload["count"] = len(payload["processes"])  # type: ignore[arg-type]
    _print_json(payload)
    return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    cfg = load_config()
    payload = build_doctor_payload(cfg)
    # Events live in the serving process; a doctor run without a server has none to export.
    status = fetch_monitor_status(monitor_status_url(cfg))
    payload["monitor"] = {k: v for k, v in status.items() if k != "events"} if status else None
    events = list(status.get("events") or []) if status else []

    if args.export:
        exporter = DiagnosticsExporter()
        out_dir = Path(args.out_dir).expanduser().resolve() if args.out_dir else None
        bundle = exporter.bundle(cfg=cfg, doctor_payload=payload, recent_events=events, output_dir=out_dir)
        payload["diagnostics_bundle"] = str(bundle)

    _print_json(payload)
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    cfg = load_config()
    done = threading.Event()
    received = 0

    def on_update(message: dict) -> None:
        nonlocal received
        received += 1
        _print_json(message)
        if args.count and received >= args.count:
            done.set()

    manager = ReconnectionManager(
        args.url or cfg.client.url,
        max_retries=cfg.client.max_retries,
        retry_delay_s=cfg.client.retry_delay_ms / 1000,
        on_update=on_update,
    )
    manager.connect()
    try:
        while not done.is_set():
            if manager.wait_until_gave_up(timeout=0.5):
                _print_json(
                    {
                        "error": "max reconnection attempts reached",
                        "status": asdict(manager.status),
                        "events": manager.recent_events(50),
                    }
                )
                return 2
            done.wait(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        manager.disconnect()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hostwatch", description="Local host telemetry dashboard backend")
    sub = parser.add_subparsers(dest="command", required=True)

    serve_cmd = sub.add_parser("serve", help="Run the HTTP and WebSocket server")
    serve_cmd.add_argument("--host", default=None)
    serve_cmd.add_argument("--port", type=int, default=None)
    serve_cmd.add_argument("--period-ms", type=int, default=None, help="Broadcast period override")
    serve_cmd.set_defaults(func=cmd_serve)

    snap_cmd = sub.add_parser("snapshot", help="Collect one snapshot and print it")
    snap_cmd.add_argument("--limit", type=int, default=None)
    snap_cmd.add_argument("--sort", choices=list(SORT_KEYS), default="cpu")
    snap_cmd.set_defaults(func=cmd_snapshot)

    proc_cmd = sub.add_parser("processes", help="Print the process table")
    proc_cmd.add_argument("--limit", type=int, default=None)
    proc_cmd.add_argument("--sort", choices=list(SORT_KEYS), default="cpu")
    proc_cmd.set_defaults(func=cmd_processes)

    doctor_cmd = sub.add_parser("doctor", help="Print diagnostics and collector probes")
    doctor_cmd.add_argument("--export", action="store_true", help="Export offline diagnostics bundle")
    doctor_cmd.add_argument("--out-dir", default=None, help="Optional output directory for diagnostics bundle")
    doctor_cmd.set_defaults(func=cmd_doctor)

    watch_cmd = sub.add_parser("watch", help="Subscribe to a running server and print updates")
    watch_cmd.add_argument("--url", default=None)
    watch_cmd.add_argument("--count", type=int, default=0, help="Stop after N updates (0 = run until interrupted)")
    watch_cmd.set_defaults(func=cmd_watch)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    cfg = load_config()
    configure_logging(keep_files=cfg.diagnostics.keep_log_files, console=args.command == "serve")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
