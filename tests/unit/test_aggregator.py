import asyncio
import sys
import threading
import time
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))

from hostwatch_telemetry.aggregator import SnapshotAggregator
from hostwatch_telemetry.errors import ProcessListingError
from hostwatch_telemetry.models import CpuSample, MemorySample, ProcessRecord


class FakeCpu:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    def sample(self):
        self.calls += 1
        if self.error:
            raise self.error
        return CpuSample(model="Fake CPU", cores=8, speed_mhz=3000, usage=12)


class FakeMemory:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    def sample(self):
        self.calls += 1
        if self.error:
            raise self.error
        return MemorySample.from_totals(8192, 4096)


class FakeProcesses:
    def __init__(self, error=None, delay_s=0.0):
        self.error = error
        self.delay_s = delay_s
        self.calls = []

    def list(self, limit, sort_key):
        self.calls.append((limit, sort_key))
        if self.delay_s:
            time.sleep(self.delay_s)
        if self.error:
            raise self.error
        return [ProcessRecord(pid=10, name="worker", cpu_percent=5.0)][:limit]


SELF = [ProcessRecord(pid=99, name="hostwatch", status="running")]


class GatedProcesses:
    def __init__(self):
        self.gate = threading.Event()
        self.calls = 0

    def list(self, limit, sort_key):
        self.calls += 1
        self.gate.wait(5.0)
        return []


class SnapshotAggregatorTests(unittest.IsolatedAsyncioTestCase):
    async def test_full_snapshot(self):
        processes = FakeProcesses()
        agg = SnapshotAggregator(cpu=FakeCpu(), memory=FakeMemory(), processes=processes)
        snap = await agg.snapshot(process_limit=5, sort_key="memory")
        self.assertEqual(snap.cpu.usage, 12)
        self.assertEqual(snap.memory.percentage, 50)
        self.assertEqual([p.pid for p in snap.processes], [10])
        self.assertEqual(snap.errors, ())
        self.assertEqual(processes.calls, [(5, "memory")])

    async def test_cpu_failure_is_isolated(self):
        agg = SnapshotAggregator(
            cpu=FakeCpu(RuntimeError("cpu counters unavailable")),
            memory=FakeMemory(),
            processes=FakeProcesses(),
        )
        snap = await agg.snapshot()
        self.assertIsNone(snap.cpu)
        self.assertIsNotNone(snap.memory)
        self.assertEqual(len(snap.processes), 1)
        self.assertEqual(list(snap.errors), ["cpu counters unavailable"])
        self.assertIsNone(snap.to_dict()["cpu"])

    async def test_process_failure_uses_fallback(self):
        agg = SnapshotAggregator(
            cpu=FakeCpu(),
            memory=FakeMemory(),
            processes=FakeProcesses(ProcessListingError("No process listing command succeeded")),
            fallback=lambda: list(SELF),
        )
        snap = await agg.snapshot()
        self.assertEqual(list(snap.processes), SELF)
        self.assertEqual(list(snap.errors), ["No process listing command succeeded"])

    async def test_every_collector_failing_still_yields_snapshot(self):
        def broken_fallback():
            raise OSError("no psutil access")

        agg = SnapshotAggregator(
            cpu=FakeCpu(RuntimeError("a")),
            memory=FakeMemory(RuntimeError("b")),
            processes=FakeProcesses(ProcessListingError("c")),
            fallback=broken_fallback,
        )
        snap = await agg.snapshot()
        self.assertIsNone(snap.cpu)
        self.assertIsNone(snap.memory)
        self.assertEqual(snap.processes, ())
        self.assertEqual(list(snap.errors), ["a", "b", "c"])

    async def test_process_timeout(self):
        agg = SnapshotAggregator(
            cpu=FakeCpu(),
            memory=FakeMemory(),
            processes=FakeProcesses(delay_s=0.3),
            process_timeout_s=0.05,
            fallback=lambda: list(SELF),
        )
        snap = await agg.snapshot()
        self.assertEqual(list(snap.processes), SELF)
        self.assertEqual(len(snap.errors), 1)
        self.assertIn("timed out", snap.errors[0])

    async def test_light_snapshot_skips_processes(self):
        processes = FakeProcesses()
        agg = SnapshotAggregator(cpu=FakeCpu(), memory=FakeMemory(), processes=processes)
        snap = await agg.light_snapshot()
        self.assertIsNone(snap.processes)
        self.assertEqual(processes.calls, [])
        self.assertNotIn("processes", snap.to_message())

    async def test_hung_listing_does_not_starve_cpu_or_memory(self):
        cpu, memory, processes = FakeCpu(), FakeMemory(), GatedProcesses()
        agg = SnapshotAggregator(
            cpu=cpu,
            memory=memory,
            processes=processes,
            process_timeout_s=0.05,
            fallback=lambda: list(SELF),
        )
        self.addCleanup(agg.close)
        self.addCleanup(processes.gate.set)

        for _ in range(3):
            snap = await asyncio.wait_for(agg.snapshot(), timeout=1.0)
            self.assertIsNotNone(snap.cpu)
            self.assertIsNotNone(snap.memory)
            self.assertEqual(list(snap.processes), SELF)
        self.assertEqual(cpu.calls, 3)
        self.assertEqual(memory.calls, 3)
        # Listings queued behind the hung one were cancelled before they started.
        self.assertEqual(processes.calls, 1)


if __name__ == "__main__":
    unittest.main()
