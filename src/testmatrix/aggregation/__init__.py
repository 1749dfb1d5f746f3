"""Deduplicating aggregation and snapshot persistence."""

from .storage import MemorySnapshotStore, SnapshotStorage, SnapshotStore
from .aggregator import Aggregator, MergeStats, ingest_batch, merge_records, rebuild_snapshot

__all__ = [
    "MemorySnapshotStore",
    "SnapshotStorage",
    "SnapshotStore",
    "Aggregator",
    "MergeStats",
    "ingest_batch",
    "merge_records",
    "rebuild_snapshot",
]
