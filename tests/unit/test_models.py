import sys
import unittest
from datetime import datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))

from hostwatch_telemetry.models import (
    CpuSample,
    MemorySample,
    ProcessRecord,
    Snapshot,
    bytes_to_mb,
    iso_timestamp,
    kb_to_mb,
)


class ModelTests(unittest.TestCase):
    def test_iso_timestamp_has_millis_and_z(self):
        stamp = iso_timestamp(datetime(2024, 3, 1, 12, 30, 5, 123456, tzinfo=timezone.utc))
        self.assertEqual(stamp, "2024-03-01T12:30:05.123Z")

    def test_unit_conversions_round(self):
        self.assertEqual(bytes_to_mb(1536 * 1024), 2)
        self.assertEqual(kb_to_mb(1024), 1)
        self.assertEqual(kb_to_mb(0), 0)

    def test_memory_from_totals_derives_used_and_percentage(self):
        sample = MemorySample.from_totals(8192, 2048)
        self.assertEqual(sample.used, 6144)
        self.assertEqual(sample.percentage, 75)
        self.assertEqual(sample.used, sample.total - sample.free)
        self.assertFalse(sample.has_extended)

    def test_memory_from_totals_zero_total(self):
        sample = MemorySample.from_totals(0, 0)
        self.assertEqual(sample.percentage, 0)
        self.assertEqual(sample.used, 0)

    def test_memory_free_is_clamped_to_total(self):
        sample = MemorySample.from_totals(1000, 1500)
        self.assertEqual(sample.free, 1000)
        self.assertEqual(sample.used, 0)

    def test_memory_wire_keys(self):
        sample = MemorySample.from_totals(1000, 250, swap_total=512, swap_free=500, swap_used=12)
        data = sample.to_dict()
        self.assertEqual(data["swapTotal"], 512)
        self.assertEqual(data["swapUsed"], 12)
        self.assertIsNone(data["available"])
        self.assertTrue(sample.has_extended)

    def test_process_record_wire_keys(self):
        record = ProcessRecord(pid=42, name="nginx", cpu_percent=1.5, memory_mb=12, memory_percent=0.3)
        data = record.to_dict()
        self.assertEqual(data["cpu"], 1.5)
        self.assertEqual(data["memory"], 12)
        self.assertEqual(data["memoryPercent"], 0.3)
        self.assertEqual(data["user"], "unknown")

    def test_snapshot_without_processes_omits_key(self):
        snap = Snapshot(
            timestamp=datetime.now(timezone.utc),
            cpu=CpuSample(model="x", cores=4, speed_mhz=2000, usage=12),
            memory=None,
            errors=("memory unavailable",),
        )
        data = snap.to_dict()
        self.assertNotIn("processes", data)
        self.assertIsNone(data["memory"])
        self.assertEqual(data["errors"], ["memory unavailable"])
        self.assertTrue(snap.degraded)
        self.assertEqual(data["cpu"]["speed"], 2000)

    def test_snapshot_message_type(self):
        snap = Snapshot(timestamp=datetime.now(timezone.utc), cpu=None, memory=None, processes=())
        message = snap.to_message()
        self.assertEqual(message["type"], "systemUpdate")
        self.assertEqual(message["processes"], [])
        self.assertFalse(snap.degraded)


if __name__ == "__main__":
    unittest.main()
