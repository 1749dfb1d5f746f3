"""
Snapshot persistence.

Available backends:
- SnapshotStore: JSON file, replaced atomically on every write
- MemorySnapshotStore: in-process store for dry runs and tests

Both backends track a monotonically increasing ``revision``. ``write`` takes
the revision the caller read and refuses to replace a snapshot that moved in
the meantime, raising :class:`SnapshotConflictError` instead of silently
losing the other writer's update.
"""

import threading
import weakref
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import ValidationError

from ..config.versioning import CURRENT_SNAPSHOT_VERSION, is_supported_version
from ..core.utils import PathLike, atomic_write_text, ensure_path, safe_load_json
from ..exceptions import SnapshotConflictError, SnapshotError
from ..models import AggregatedSnapshot


class _PathLockRegistry:
    """
    Process-wide registry of re-entrant locks keyed by resolved path.

    Entries are weak: a path's lock lives as long as some store or holder
    references it, so the registry does not grow with every path ever used.
    """

    _lock = threading.Lock()
    _locks: "weakref.WeakValueDictionary[str, threading.RLock]" = weakref.WeakValueDictionary()

    @classmethod
    def get(cls, path: Path) -> threading.RLock:
        key = str(path.resolve())
        with cls._lock:
            lock = cls._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                cls._locks[key] = lock
            return lock


class SnapshotStorage(ABC):
    """Interface shared by the snapshot backends."""

    @abstractmethod
    def lock(self) -> threading.RLock:
        """Lock serializing read-merge-write cycles against this store."""

    @abstractmethod
    def read(self) -> Optional[AggregatedSnapshot]:
        """
        Return the stored snapshot, or None if nothing has been written yet.

        Raises:
            SnapshotError: If the stored snapshot is corrupt or unsupported
        """

    @abstractmethod
    def stored_revision(self) -> int:
        """Revision currently stored; 0 when nothing has been written."""

    @abstractmethod
    def _persist(self, snapshot: AggregatedSnapshot) -> None:
        """Replace the stored snapshot in one step."""

    def write(self, snapshot: AggregatedSnapshot, expected_revision: Optional[int] = None) -> AggregatedSnapshot:
        """
        Persist ``snapshot`` as the next revision.

        Args:
            snapshot: Snapshot to store
            expected_revision: Revision the caller based its changes on;
                defaults to ``snapshot.revision``

        Returns:
            The stored snapshot with its new revision

        Raises:
            SnapshotConflictError: If the stored revision is not ``expected_revision``
            SnapshotError: If the snapshot cannot be written
        """
        expected = snapshot.revision if expected_revision is None else expected_revision
        with self.lock():
            current = self.stored_revision()
            if current != expected:
                raise SnapshotConflictError(
                    f"Snapshot changed since it was read (expected revision {expected}, found {current})",
                    context={"expected_revision": expected, "stored_revision": current},
                )
            stored = snapshot.model_copy(update={"revision": current + 1})
            self._persist(stored)
        logger.info(f"Snapshot revision {stored.revision} written ({stored.summary.total} records)")
        return stored


class SnapshotStore(SnapshotStorage):
    """
    JSON snapshot file.

    The file is rewritten through a temporary file in the same directory and
    ``os.replace``, so readers see either the previous or the new snapshot.

    Args:
        path: Snapshot file location
        indent: JSON indentation, None for compact output
    """

    def __init__(self, path: PathLike, indent: Optional[int] = 2):
        self.path = ensure_path(path)
        self.indent = indent
        self._lock = _PathLockRegistry.get(self.path)

    def __repr__(self) -> str:
        return f"SnapshotStore({str(self.path)!r})"

    def lock(self) -> threading.RLock:
        return self._lock

    def _load_raw(self) -> Optional[dict]:
        if not self.path.exists():
            return None
        try:
            data = safe_load_json(self.path)
        except (ValueError, OSError) as e:
            raise SnapshotError(
                f"Snapshot file is corrupt: {self.path}",
                error_code="SNAPSHOT_002",
                context={"snapshot_path": str(self.path), "error": str(e)},
            ) from e
        if not isinstance(data, dict):
            raise SnapshotError(
                f"Snapshot file does not contain an object: {self.path}",
                error_code="SNAPSHOT_002",
                context={"snapshot_path": str(self.path), "actual_type": type(data).__name__},
            )
        return data

    def stored_revision(self) -> int:
        data = self._load_raw()
        if data is None:
            return 0
        revision = data.get("revision", 0)
        if isinstance(revision, bool) or not isinstance(revision, int) or revision < 0:
            raise SnapshotError(
                f"Snapshot revision is invalid: {revision!r}",
                error_code="SNAPSHOT_002",
                context={"snapshot_path": str(self.path)},
            )
        return revision

    def read(self) -> Optional[AggregatedSnapshot]:
        data = self._load_raw()
        if data is None:
            logger.debug(f"No snapshot at {self.path}; starting empty")
            return None

        version = str(data.get("schemaVersion", CURRENT_SNAPSHOT_VERSION))
        try:
            supported = is_supported_version(version)
        except ValueError as e:
            raise SnapshotError(
                f"Snapshot schema version is not a version: {version!r}",
                error_code="SNAPSHOT_002",
                context={"snapshot_path": str(self.path), "schema_version": version},
            ) from e
        if not supported:
            raise SnapshotError(
                f"Unsupported snapshot schema version {version}",
                error_code="SNAPSHOT_003",
                context={"snapshot_path": str(self.path), "schema_version": version},
            )

        try:
            snapshot = AggregatedSnapshot.model_validate(data)
        except ValidationError as e:
            raise SnapshotError(
                f"Snapshot file failed validation: {self.path}",
                error_code="SNAPSHOT_002",
                context={"snapshot_path": str(self.path), "error_count": e.error_count()},
            ) from e

        logger.debug(f"Read snapshot revision {snapshot.revision} from {self.path}")
        return snapshot

    def _persist(self, snapshot: AggregatedSnapshot) -> None:
        text = snapshot.model_dump_json(by_alias=True, indent=self.indent)
        try:
            atomic_write_text(self.path, text + "\n")
        except (OSError, ValueError) as e:
            raise SnapshotError(
                f"Failed to write snapshot: {self.path}",
                error_code="SNAPSHOT_001",
                context={"snapshot_path": str(self.path), "error": str(e)},
            ) from e


class MemorySnapshotStore(SnapshotStorage):
    """Keeps the snapshot in memory; same revision semantics as the file store."""

    def __init__(self, snapshot: Optional[AggregatedSnapshot] = None):
        self._snapshot = snapshot
        self._lock = threading.RLock()

    def lock(self) -> threading.RLock:
        return self._lock

    def read(self) -> Optional[AggregatedSnapshot]:
        return self._snapshot.model_copy(deep=True) if self._snapshot is not None else None

    def stored_revision(self) -> int:
        return self._snapshot.revision if self._snapshot is not None else 0

    def _persist(self, snapshot: AggregatedSnapshot) -> None:
        self._snapshot = snapshot.model_copy(deep=True)


__all__ = ["SnapshotStorage", "SnapshotStore", "MemorySnapshotStore"]
