import asyncio
import os
import shutil
import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))

from hostwatch_telemetry import CpuCollector, MemoryCollector, ProcessTableCollector, SnapshotAggregator


class LiveCollectorTests(unittest.TestCase):
    def test_cpu_sample(self):
        sample = CpuCollector(sample_interval_s=0.05).sample()
        self.assertGreater(sample.cores, 0)
        self.assertGreaterEqual(sample.usage, 0)
        self.assertLessEqual(sample.usage, 100)

    def test_memory_sample(self):
        sample = MemoryCollector().sample()
        self.assertGreater(sample.total, 0)
        self.assertEqual(sample.used, sample.total - sample.free)

    @unittest.skipIf(shutil.which("ps") is None and shutil.which("tasklist") is None, "no process listing tool")
    def test_process_listing_includes_self(self):
        collector = ProcessTableCollector(timeout_s=10.0)
        records = collector.list(limit=100000, sort_key="pid")
        self.assertTrue(records)
        self.assertIn(os.getpid(), {r.pid for r in records})
        self.assertEqual([r.pid for r in records], sorted(r.pid for r in records))

    def test_aggregator_snapshot(self):
        aggregator = SnapshotAggregator(cpu=CpuCollector(sample_interval_s=0.05))
        snap = asyncio.run(aggregator.snapshot(process_limit=5))
        self.assertIsNotNone(snap.memory)
        self.assertLessEqual(len(snap.processes), 5)
        self.assertTrue(snap.processes)


if __name__ == "__main__":
    unittest.main()
