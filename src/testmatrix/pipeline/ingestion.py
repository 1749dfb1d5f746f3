"""
Ingestion pipeline: raw run export -> records -> merged, persisted snapshot.

Stages return ``(result, metadata)`` tuples. Extraction problems downgrade to
an empty batch so that a snapshot is always produced; snapshot read and write
failures are the only errors that propagate to the caller.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from loguru import logger

from ..aggregation import SnapshotStorage, SnapshotStore, ingest_batch
from ..config import EngineConfig, load_config
from ..core.utils import PathLike
from ..exceptions import TestMatrixError
from ..extraction import RecordExtractor, load_run_export, resolve_run_id
from ..models import AggregatedSnapshot, TestRecord


def _create_metadata(success: bool = False, **kwargs) -> Dict[str, Any]:
    """
    Create a standardized metadata dictionary.

    Args:
        success: Whether the operation was successful
        **kwargs: Additional metadata fields to include
    """
    metadata = {
        "timestamp": datetime.now().isoformat(),
        "success": success,
    }
    metadata.update(kwargs)
    return metadata


def _create_error_metadata(error: Exception) -> Dict[str, Any]:
    metadata = _create_metadata(
        success=False,
        error=str(error),
        error_type=type(error).__name__,
    )
    if isinstance(error, TestMatrixError):
        metadata["error_code"] = error.error_code
    return metadata


def _extract_stage(
    raw: Any,
    config: EngineConfig,
    now: Optional[datetime]
) -> Tuple[List[TestRecord], Dict[str, Any]]:
    """Extract records; any failure yields an empty batch."""
    try:
        records = RecordExtractor(config.extraction).extract(raw, now=now)
        return records, _create_metadata(success=True, records_extracted=len(records))
    except TestMatrixError as e:
        logger.warning(f"Extraction failed, continuing with an empty batch: {e}")
        return [], _create_error_metadata(e)


def resolve_store(config: EngineConfig, store: Optional[SnapshotStorage] = None) -> SnapshotStorage:
    if store is not None:
        return store
    return SnapshotStore(config.storage.snapshot_path, indent=config.storage.indent)


def ingest_run(
    raw: Any,
    config: Optional[EngineConfig] = None,
    store: Optional[SnapshotStorage] = None,
    now: Optional[datetime] = None
) -> Tuple[AggregatedSnapshot, Dict[str, Any]]:
    """
    Ingest one raw run export into the snapshot store.

    Args:
        raw: Parsed run export
        config: Engine configuration; loaded from the environment when None
        store: Snapshot backend; defaults to the configured JSON file
        now: Clock override for records without timestamps and for the snapshot

    Returns:
        ``(stored_snapshot, metadata)``

    Raises:
        SnapshotError: If the previous snapshot is unreadable or the new one
            cannot be written; the prior snapshot is left untouched
    """
    config = config if config is not None else load_config()
    store = resolve_store(config, store)

    records, extract_meta = _extract_stage(raw, config, now)
    run_id = resolve_run_id(raw) if isinstance(raw, Mapping) else None

    with store.lock():
        previous = store.read()
        snapshot, stats = ingest_batch(previous, records, config, run_id=run_id, now=now)
        stored = store.write(snapshot, expected_revision=snapshot.revision)

    metadata = _create_metadata(
        success=extract_meta["success"] and stats.failed == 0,
        run_id=run_id,
        records_extracted=len(records),
        merge=stats.as_dict(),
        revision=stored.revision,
        total_records=stored.summary.total,
        store=repr(store),
    )
    if not extract_meta["success"]:
        metadata["extraction_error"] = extract_meta.get("error")
        metadata["error_type"] = extract_meta.get("error_type")
    if stats.failed_ids:
        metadata["failed_ids"] = list(stats.failed_ids)

    logger.info(
        f"Ingested run {run_id if run_id is not None else '(no runId)'}: "
        f"{len(records)} records, snapshot revision {stored.revision}"
    )
    return stored, metadata


def ingest_run_file(
    path: PathLike,
    config: Optional[EngineConfig] = None,
    store: Optional[SnapshotStorage] = None,
    now: Optional[datetime] = None
) -> Tuple[AggregatedSnapshot, Dict[str, Any]]:
    """
    Ingest a runner JSON export from disk.

    A missing or unreadable file is ingested as an empty batch.
    """
    raw = load_run_export(path)
    snapshot, metadata = ingest_run(raw, config=config, store=store, now=now)
    metadata["source"] = str(Path(path))
    metadata["source_found"] = bool(raw)
    return snapshot, metadata


def load_snapshot(
    config: Optional[EngineConfig] = None,
    store: Optional[SnapshotStorage] = None
) -> AggregatedSnapshot:
    """Stored snapshot, or an empty one carrying the configured identification."""
    config = config if config is not None else load_config()
    snapshot = resolve_store(config, store).read()
    return snapshot if snapshot is not None else AggregatedSnapshot.empty(config.identification())


__all__ = ["ingest_run", "ingest_run_file", "load_snapshot", "resolve_store"]
