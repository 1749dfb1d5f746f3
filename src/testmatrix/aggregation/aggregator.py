"""
Deduplicating aggregation.

Records are keyed by ``test_id``. Under the default ``last_write`` policy a
record already in the snapshot is replaced by the incoming one, so a test
that failed in an earlier run and passes now is shown as passing. Under
``latest_run`` the stored record is kept when the incoming record belongs to
a strictly older run.

The coverage matrix, summary, defects and metrics are never edited in place:
they are recomputed from the merged ``records_by_id`` on every ingestion.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from loguru import logger

from ..config import EngineConfig, MergePolicy
from ..coverage import build_coverage_matrix
from ..defects import synthesize_defects
from ..exceptions import AggregationError
from ..metrics import calculate_quality_metrics
from ..models import AggregatedSnapshot, Identification, RunSummary, TestRecord, utc_now
from .storage import SnapshotStorage


@dataclass
class MergeStats:
    """Outcome counts for one merge."""

    inserted: int = 0
    replaced: int = 0
    kept: int = 0
    failed: int = 0
    failed_ids: List[str] = field(default_factory=list)

    @property
    def merged(self) -> int:
        return self.inserted + self.replaced

    def as_dict(self) -> Dict[str, int]:
        return {
            "inserted": self.inserted,
            "replaced": self.replaced,
            "kept": self.kept,
            "failed": self.failed,
        }


def _should_replace(stored: TestRecord, incoming: TestRecord, policy: MergePolicy) -> bool:
    if policy is MergePolicy.LATEST_RUN:
        if stored.run_id is not None and incoming.run_id is not None:
            return incoming.run_id >= stored.run_id
    return True


def merge_records(
    existing: Dict[str, TestRecord],
    batch: Iterable[TestRecord],
    policy: MergePolicy = MergePolicy.LAST_WRITE
) -> Tuple[Dict[str, TestRecord], MergeStats]:
    """
    Merge ``batch`` into a copy of ``existing``.

    A record that cannot be merged is logged and skipped; the rest of the
    batch still merges.

    Returns:
        ``(records_by_id, stats)``

    Raises:
        AggregationError: If ``batch`` is not iterable
    """
    try:
        items = list(batch)
    except TypeError as e:
        raise AggregationError(
            f"Batch must be an iterable of records, got {type(batch).__name__}",
            error_code="AGGREGATE_001",
            context={"actual_type": type(batch).__name__},
        ) from e

    merged = dict(existing)
    stats = MergeStats()
    for record in items:
        try:
            if not isinstance(record, TestRecord):
                raise TypeError(f"expected TestRecord, got {type(record).__name__}")
            stored = merged.get(record.test_id)
            if stored is None:
                merged[record.test_id] = record
                stats.inserted += 1
            elif _should_replace(stored, record, policy):
                merged[record.test_id] = record
                stats.replaced += 1
                logger.debug(
                    f"Replaced {record.test_id}: {stored.status.value} -> {record.status.value}"
                )
            else:
                stats.kept += 1
                logger.debug(
                    f"Kept {record.test_id} from run {stored.run_id}; incoming run {record.run_id} is older"
                )
        except Exception as e:
            stats.failed += 1
            stats.failed_ids.append(str(getattr(record, "test_id", record)))
            logger.error(f"Failed to merge record {getattr(record, 'test_id', record)!r}: {e}")
    return merged, stats


def rebuild_snapshot(
    records_by_id: Dict[str, TestRecord],
    config: Optional[EngineConfig] = None,
    base: Optional[AggregatedSnapshot] = None,
    identification: Optional[Identification] = None,
    run_ids: Optional[List[int]] = None,
    now: Optional[datetime] = None
) -> AggregatedSnapshot:
    """
    Build a snapshot whose derived views all come from ``records_by_id``.

    Raises:
        AggregationError: If a derived view cannot be computed
    """
    config = config or EngineConfig()
    records = list(records_by_id.values())
    try:
        matrix = build_coverage_matrix(records)
        defects = synthesize_defects(records, config.extraction, config.quality)
        metrics = calculate_quality_metrics(records, defects, config.quality, config.extraction)
        summary = RunSummary.from_records(records)
    except Exception as e:
        raise AggregationError(
            f"Failed to recompute snapshot views: {e}",
            error_code="AGGREGATE_002",
            context={"record_count": len(records)},
        ) from e

    return AggregatedSnapshot(
        revision=base.revision if base is not None else 0,
        timestamp=now or utc_now(),
        identification=identification or (base.identification if base is not None else Identification()),
        run_ids=list(run_ids if run_ids is not None else (base.run_ids if base is not None else [])),
        summary=summary,
        records_by_id=dict(records_by_id),
        coverage_matrix=matrix,
        quality_metrics=metrics,
        defect_list=defects,
    )


def ingest_batch(
    snapshot: Optional[AggregatedSnapshot],
    batch: Iterable[TestRecord],
    config: Optional[EngineConfig] = None,
    run_id: Optional[int] = None,
    now: Optional[datetime] = None
) -> Tuple[AggregatedSnapshot, MergeStats]:
    """
    Merge one batch into ``snapshot`` and recompute its derived views.

    Pure: nothing is read or written. Ingesting the same batch twice yields
    the same snapshot content as ingesting it once.
    """
    config = config or EngineConfig()
    base = snapshot if snapshot is not None else AggregatedSnapshot.empty(config.identification())

    merged, stats = merge_records(base.records_by_id, batch, config.storage.merge_policy)

    run_ids = list(base.run_ids)
    if run_id is not None and run_id not in run_ids:
        run_ids.append(run_id)

    updated = rebuild_snapshot(
        merged,
        config=config,
        base=base,
        identification=config.identification(),
        run_ids=run_ids,
        now=now,
    )
    logger.info(
        f"Merged batch: {stats.inserted} inserted, {stats.replaced} replaced, "
        f"{stats.kept} kept, {stats.failed} failed; snapshot holds {updated.summary.total} records"
    )
    return updated, stats


class Aggregator:
    """
    Read-merge-write against one store.

    The store lock is held across the whole cycle, and the write checks that
    the stored revision is still the one that was read.
    """

    def __init__(self, store: SnapshotStorage, config: Optional[EngineConfig] = None):
        self.store = store
        self.config = config or EngineConfig()

    def ingest(
        self,
        batch: Iterable[TestRecord],
        run_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Tuple[AggregatedSnapshot, MergeStats]:
        """
        Raises:
            SnapshotError: If the stored snapshot is corrupt or cannot be replaced
            SnapshotConflictError: If another writer replaced the snapshot meanwhile
        """
        with self.store.lock():
            previous = self.store.read()
            updated, stats = ingest_batch(previous, batch, self.config, run_id=run_id, now=now)
            stored = self.store.write(updated, expected_revision=updated.revision)
        return stored, stats


__all__ = [
    "MergeStats",
    "merge_records",
    "rebuild_snapshot",
    "ingest_batch",
    "Aggregator",
]
