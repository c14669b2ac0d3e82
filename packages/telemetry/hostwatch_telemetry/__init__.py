"""Host telemetry collectors and snapshot aggregation for hostwatch."""

from .aggregator import SnapshotAggregator
from .cpu import CpuCollector
from .errors import CollectorError, ProcessListingError
from .memory import MemoryCollector
from .models import CpuSample, MemorySample, ProcessRecord, Snapshot
from .processes import SORT_KEYS, ProcessTableCollector, fallback_records

__all__ = [
    "CollectorError",
    "CpuCollector",
    "CpuSample",
    "MemoryCollector",
    "MemorySample",
    "ProcessListingError",
    "ProcessRecord",
    "ProcessTableCollector",
    "SORT_KEYS",
    "Snapshot",
    "SnapshotAggregator",
    "fallback_records",
]
