"""Process table collector built on the platform's process-listing utility.

POSIX hosts try an ordered list of ``ps`` variants, most capable first, and
parse the output of whichever succeeds first with that variant's own parser,
since each variant prints a different column layout. Windows hosts parse the
quoted CSV printed by ``tasklist``.
"""

from __future__ import annotations

import csv
import logging
import os
import re
import subprocess
import sys
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Sequence

import psutil

from .errors import ProcessListingError
from .models import ProcessRecord, bytes_to_mb, kb_to_mb


logger = logging.getLogger("hostwatch.telemetry.processes")

SORT_KEYS = ("cpu", "memory", "name", "pid")
DEFAULT_TIMEOUT_S = 10.0

_NON_DIGITS = re.compile(r"[^\d]")

Runner = Callable[[Sequence[str], float], str]


def parse_pid(token: str) -> int | None:
    try:
        pid = int(token)
    except (TypeError, ValueError):
        return None
    return pid if pid > 0 else None


def _float(token: str) -> float:
    try:
        return float(token)
    except (TypeError, ValueError):
        return 0.0


def _int(token: str) -> int:
    try:
        return int(token)
    except (TypeError, ValueError):
        return 0


def _body_lines(stdout: str) -> Iterator[str]:
    lines = stdout.strip().splitlines()
    for line in lines[1:]:
        line = line.strip()
        if line:
            yield line


def _args_name(args: str) -> str:
    # "nginx: worker process" style titles end the name with a colon.
    tokens = args.split()
    return tokens[0].rstrip(":") or tokens[0] if tokens else "unknown"


def parse_ps_aux(stdout: str) -> list[ProcessRecord]:
    """USER PID %CPU %MEM VSZ RSS TTY STAT START TIME COMMAND"""
    records: list[ProcessRecord] = []
    for line in _body_lines(stdout):
        parts = line.split(None, 10)
        if len(parts) < 11:
            continue
        pid = parse_pid(parts[1])
        if pid is None:
            continue
        command = parts[10]
        records.append(
            ProcessRecord(
                pid=pid,
                name=_args_name(command),
                user=parts[0] or "unknown",
                cpu_percent=_float(parts[2]),
                memory_percent=_float(parts[3]),
                memory_mb=kb_to_mb(_int(parts[5])),
                command=command,
                status=parts[7] or "unknown",
            )
        )
    return records


def parse_ps_columns(stdout: str) -> list[ProcessRecord]:
    """PID PPID USER %CPU %MEM RSS STAT ARGS

    The argument vector is the last column so a name with spaces cannot shift the others.
    """
    records: list[ProcessRecord] = []
    for line in _body_lines(stdout):
        parts = line.split(None, 7)
        if len(parts) < 8:
            continue
        pid = parse_pid(parts[0])
        if pid is None:
            continue
        records.append(
            ProcessRecord(
                pid=pid,
                ppid=_int(parts[1]),
                user=parts[2] or "unknown",
                cpu_percent=_float(parts[3]),
                memory_percent=_float(parts[4]),
                memory_mb=kb_to_mb(_int(parts[5])),
                status=parts[6] or "unknown",
                name=_args_name(parts[7]),
                command=parts[7],
            )
        )
    return records


def parse_ps_minimal(stdout: str) -> list[ProcessRecord]:
    """PID TTY TIME CMD"""
    records: list[ProcessRecord] = []
    for line in _body_lines(stdout):
        parts = line.split(None, 3)
        if len(parts) < 4:
            continue
        pid = parse_pid(parts[0])
        if pid is None:
            continue
        records.append(ProcessRecord(pid=pid, name=parts[3], command=parts[3]))
    return records


def parse_tasklist_csv(stdout: str, total_memory_kb: int | None = None) -> list[ProcessRecord]:
    """Columns "Image Name","PID","Session Name","Session#","Mem Usage" after a header row."""
    records: list[ProcessRecord] = []
    rows = csv.reader(line for line in stdout.strip().splitlines()[1:] if line.strip())
    for row in rows:
        if len(row) < 5:
            continue
        pid = parse_pid(_NON_DIGITS.sub("", row[1]))
        if pid is None:
            continue
        memory_kb = _int(_NON_DIGITS.sub("", row[4]))
        percent = round(memory_kb / total_memory_kb * 100, 1) if total_memory_kb else 0.0
        records.append(
            ProcessRecord(
                pid=pid,
                name=row[0] or "unknown",
                memory_mb=kb_to_mb(memory_kb),
                memory_percent=percent,
                command=row[0],
            )
        )
    return records


def _parse_tasklist_for_host(stdout: str) -> list[ProcessRecord]:
    try:
        total_kb = int(psutil.virtual_memory().total // 1024)
    except Exception:
        total_kb = None
    return parse_tasklist_csv(stdout, total_kb)


@dataclass(frozen=True)
class ListingCommand:
    argv: tuple[str, ...]
    parser: Callable[[str], list[ProcessRecord]]
    reports_cpu: bool = True

    @property
    def label(self) -> str:
        return " ".join(self.argv)


POSIX_COMMANDS: tuple[ListingCommand, ...] = (
    ListingCommand(("ps", "aux", "--sort=-%cpu"), parse_ps_aux),
    ListingCommand(("ps", "aux"), parse_ps_aux),
    ListingCommand(("ps", "-eo", "pid,ppid,user,pcpu,pmem,rss,stat,args"), parse_ps_columns),
    ListingCommand(("ps", "-A"), parse_ps_minimal, reports_cpu=False),
)
WINDOWS_COMMANDS: tuple[ListingCommand, ...] = (
    ListingCommand(("tasklist", "/FO", "CSV"), _parse_tasklist_for_host, reports_cpu=False),
)


def commands_for_platform(platform_name: str | None = None) -> tuple[ListingCommand, ...]:
    name = platform_name or sys.platform
    return WINDOWS_COMMANDS if name.startswith("win") else POSIX_COMMANDS


def run_command(argv: Sequence[str], timeout_s: float) -> str:
    result = subprocess.run(
        list(argv),
        capture_output=True,
        text=True,
        timeout=timeout_s,
        check=True,
    )
    return result.stdout


def unique_by_pid(records: Iterable[ProcessRecord]) -> list[ProcessRecord]:
    seen: set[int] = set()
    out: list[ProcessRecord] = []
    for record in records:
        if record.pid in seen:
            continue
        seen.add(record.pid)
        out.append(record)
    return out


def sort_records(records: Iterable[ProcessRecord], sort_key: str = "cpu") -> list[ProcessRecord]:
    if sort_key == "memory":
        return sorted(records, key=lambda r: r.memory_mb, reverse=True)
    if sort_key == "name":
        return sorted(records, key=lambda r: r.name.casefold())
    if sort_key == "pid":
        return sorted(records, key=lambda r: r.pid)
    return sorted(records, key=lambda r: r.cpu_percent, reverse=True)


def fallback_records() -> list[ProcessRecord]:
    """A single record describing the monitoring process itself."""
    proc = psutil.Process()
    with proc.oneshot():
        try:
            user = proc.username()
        except Exception:
            user = os.environ.get("USER") or os.environ.get("USERNAME") or "unknown"
        try:
            command = " ".join(proc.cmdline())
        except Exception:
            command = " ".join(sys.argv)
        try:
            memory_mb = bytes_to_mb(proc.memory_info().rss)
        except Exception:
            memory_mb = 0
        return [
            ProcessRecord(
                pid=proc.pid,
                ppid=proc.ppid() or 0,
                name=proc.name() or "python",
                user=user,
                memory_mb=memory_mb,
                command=command,
                status="running",
            )
        ]


class ProcessTableCollector:
    """Lists processes via the first listing command that succeeds on this host."""

    def __init__(
        self,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        commands: Sequence[ListingCommand] | None = None,
        runner: Runner = run_command,
        platform_name: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout_s = timeout_s
        self._clock = clock
        self.commands = tuple(commands) if commands is not None else commands_for_platform(platform_name)
        self._run = runner

    def list(self, limit: int = 20, sort_key: str = "cpu") -> list[ProcessRecord]:
        if sort_key not in SORT_KEYS:
            raise ValueError(f"unsupported sort key: {sort_key!r}")
        command, records = self.run_listing()
        if sort_key == "cpu" and not command.reports_cpu:
            sort_key = "memory"
        return sort_records(records, sort_key)[: max(0, int(limit))]

    def run_listing(self) -> tuple[ListingCommand, list[ProcessRecord]]:
        """First variant that succeeds; `timeout_s` bounds the whole chain, not each variant."""
        attempts: list[str] = []
        deadline = self._clock() + self.timeout_s
        for command in self.commands:
            remaining = deadline - self._clock()
            if remaining <= 0:
                attempts.append(f"{command.label}: skipped, {self.timeout_s:g}s listing deadline passed")
                break
            try:
                stdout = self._run(command.argv, remaining)
            except (OSError, subprocess.SubprocessError) as exc:
                attempts.append(f"{command.label}: {exc}")
                logger.debug("process listing variant failed: %s (%s)", command.label, exc)
                continue
            if not stdout or not stdout.strip():
                attempts.append(f"{command.label}: empty output")
                continue
            return command, unique_by_pid(command.parser(stdout))

        logger.warning("no process listing command succeeded", extra={"event": "process_listing_failed"})
        raise ProcessListingError("No process listing command succeeded", attempts)

    def probe(self) -> str | None:
        """Label of the first working listing command, or None."""
        try:
            command, _records = self.run_listing()
        except ProcessListingError:
            return None
        return command.label


def describe_process(pid: int) -> dict[str, Any]:
    """Read-only detail for one pid; psutil.NoSuchProcess / AccessDenied propagate."""
    proc = psutil.Process(pid)
    with proc.oneshot():
        cmdline = proc.cmdline()
        return {
            "pid": proc.pid,
            "ppid": proc.ppid(),
            "name": proc.name(),
            "user": proc.username(),
            "cpu": proc.cpu_percent(interval=None),
            "memory": bytes_to_mb(proc.memory_info().rss),
            "memoryPercent": round(proc.memory_percent(), 1),
            "status": proc.status(),
            "runtime": int(max(time.time() - proc.create_time(), 0)),
            "command": " ".join(cmdline) if cmdline else proc.name(),
        }
