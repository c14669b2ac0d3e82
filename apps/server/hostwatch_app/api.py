"""HTTP routes and the subscriber WebSocket endpoint."""

from __future__ import annotations

import asyncio
import os
import platform
import sys
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

import psutil
from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from hostwatch_core import AppConfig, MonitorSupervisor, ProtocolError, SubscriptionRegistry
from hostwatch_core.logging_setup import get_logger
from hostwatch_core.protocol import connected_message
from hostwatch_telemetry import (
    SORT_KEYS,
    CollectorError,
    CpuCollector,
    MemoryCollector,
    ProcessTableCollector,
    SnapshotAggregator,
    fallback_records,
)
from hostwatch_telemetry.models import ProcessRecord, iso_timestamp
from hostwatch_telemetry.processes import describe_process
from hostwatch_telemetry.system import system_info, uptime_info

from .version import app_version


logger = get_logger("api")


def _now() -> str:
    return iso_timestamp(datetime.now(timezone.utc))


def build_aggregator(cfg: AppConfig) -> SnapshotAggregator:
    collectors = cfg.collectors
    return SnapshotAggregator(
        cpu=CpuCollector(
            sample_interval_s=collectors.cpu_sample_ms / 1000,
            thermal_paths=collectors.thermal_paths,
        ),
        memory=MemoryCollector(meminfo_path=collectors.meminfo_path),
        processes=ProcessTableCollector(timeout_s=collectors.command_timeout_s),
        process_timeout_s=collectors.command_timeout_s,
    )


def _basic_cpu(error: str) -> dict[str, Any]:
    return {
        "model": platform.processor() or "Unknown",
        "cores": psutil.cpu_count(logical=True) or 0,
        "speed": 0,
        "usage": 0,
        "architecture": platform.machine(),
        "error": "Limited CPU info available",
        "detail": error,
        "fallback": True,
    }


def create_app(
    cfg: AppConfig | None = None,
    aggregator: SnapshotAggregator | None = None,
    supervisor: MonitorSupervisor | None = None,
) -> FastAPI:
    cfg = cfg or AppConfig()
    aggregator = aggregator or build_aggregator(cfg)
    registry = SubscriptionRegistry()
    supervisor = supervisor or MonitorSupervisor(
        aggregator,
        period_s=cfg.broadcast.period_ms / 1000,
        process_limit=cfg.broadcast.process_limit,
        sort_key=cfg.broadcast.sort_key,
        send_timeout_s=cfg.broadcast.send_timeout_ms / 1000,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        supervisor.start(registry)
        try:
            yield
        finally:
            supervisor.stop()
            aggregator.close()

    app = FastAPI(title="hostwatch", version=app_version(), lifespan=lifespan)
    app.state.config = cfg
    app.state.aggregator = aggregator
    app.state.registry = registry
    app.state.supervisor = supervisor

    if cfg.server.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cfg.server.allowed_origins,
            allow_credentials=True,
            allow_methods=["GET"],
            allow_headers=["*"],
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(_request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            return JSONResponse(status_code=404, content={"error": "Route not found"})
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(_request: Request, exc: Exception):
        logger.exception("server error", extra={"event": "server_error"})
        return JSONResponse(status_code=500, content={"error": "Internal server error", "message": str(exc)})

    async def _list_processes(limit: int, sort: str) -> tuple[list[ProcessRecord], str | None]:
        try:
            return await aggregator.list_processes(limit, sort), None
        except CollectorError as exc:
            logger.warning("process list unavailable: %s", exc)
            return await asyncio.to_thread(fallback_records), "Limited process info available"

    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "healthy",
            "timestamp": _now(),
            "platform": sys.platform,
            "python": platform.python_version(),
        }

    @app.get("/api/system/overview")
    async def overview() -> dict[str, Any]:
        snapshot = await aggregator.snapshot(cfg.broadcast.process_limit, "cpu")
        payload = snapshot.to_dict()
        try:
            payload["system"] = await asyncio.to_thread(system_info)
        except Exception as exc:
            payload["system"] = None
            payload["errors"].append(str(exc) or type(exc).__name__)
        return payload

    @app.get("/api/system/cpu")
    async def cpu() -> dict[str, Any]:
        try:
            sample = await asyncio.to_thread(aggregator.cpu.sample)
        except Exception as exc:
            logger.warning("cpu info error: %s", exc)
            return {"timestamp": _now(), **_basic_cpu(str(exc))}
        return {"timestamp": _now(), **sample.to_dict()}

    @app.get("/api/system/memory")
    async def memory() -> dict[str, Any]:
        sample = await asyncio.to_thread(aggregator.memory.sample)
        return {"timestamp": _now(), **sample.to_dict()}

    @app.get("/api/monitor/status")
    async def monitor_status(limit: int = Query(default=200, ge=0, le=1000)) -> dict[str, Any]:
        return {
            "timestamp": _now(),
            "supervisor": asdict(supervisor.status),
            "channels": {"open": len(registry), "subscribed": registry.active_count},
            "events": supervisor.recent_events(limit) if limit else [],
        }

    @app.get("/api/system/uptime")
    async def uptime() -> dict[str, Any]:
        return {"timestamp": _now(), **uptime_info()}

    @app.get("/api/system/info")
    async def info() -> dict[str, Any]:
        return {"timestamp": _now(), **await asyncio.to_thread(system_info)}

    @app.get("/api/processes")
    async def processes(
        limit: int = Query(default=cfg.collectors.default_process_limit, ge=1, le=1000),
        sort: str = "cpu",
    ) -> dict[str, Any]:
        if sort not in SORT_KEYS:
            raise HTTPException(status_code=400, detail=f"Invalid sort key, expected one of {', '.join(SORT_KEYS)}")
        records, error = await _list_processes(limit, sort)
        payload: dict[str, Any] = {
            "timestamp": _now(),
            "count": len(records),
            "processes": [r.to_dict() for r in records],
        }
        if error:
            payload["error"] = error
            payload["fallback"] = True
        return payload

    @app.get("/api/processes/tree/view")
    async def process_tree() -> dict[str, Any]:
        records, _error = await _list_processes(50, "cpu")
        tree: dict[str, list[dict[str, Any]]] = {}
        for record in records:
            tree.setdefault(str(record.ppid or 0), []).append(record.to_dict())
        return {
            "timestamp": _now(),
            "tree": tree,
            "note": "Simplified process tree built from the top 50 processes",
        }

    @app.get("/api/processes/{pid}")
    async def process_detail(pid: int) -> dict[str, Any]:
        if pid <= 0:
            raise HTTPException(status_code=400, detail="Invalid PID")
        try:
            return await asyncio.to_thread(describe_process, pid)
        except psutil.NoSuchProcess:
            raise HTTPException(status_code=404, detail="Process not found") from None
        except psutil.AccessDenied:
            if pid == os.getpid():
                record = (await asyncio.to_thread(fallback_records))[0]
                return {**record.to_dict(), "fallback": True}
            raise HTTPException(status_code=404, detail="Process not found or insufficient permissions") from None

    @app.websocket(cfg.server.ws_path)
    async def channel_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        channel = registry.add(websocket)
        logger.info("client connected", extra={"event": "channel_open", "channel_id": channel.channel_id})
        try:
            await websocket.send_text(connected_message())
            while True:
                raw = await websocket.receive_text()
                try:
                    await supervisor.handle_message(channel, raw)
                except ProtocolError as exc:
                    logger.warning("invalid channel message: %s", exc, extra={"channel_id": channel.channel_id})
        except WebSocketDisconnect:
            logger.info("client disconnected", extra={"event": "channel_closed", "channel_id": channel.channel_id})
        except Exception:
            logger.exception("channel error", extra={"event": "channel_error", "channel_id": channel.channel_id})
        finally:
            registry.remove(channel)

    return app
