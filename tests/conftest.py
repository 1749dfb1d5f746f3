"""
Shared fixtures for the testmatrix test suite.

- ``capture_loguru_logs_globally`` routes Loguru records into ``caplog``
- ``engine_config`` points the snapshot at a per-test temporary file
- ``clean_env`` removes ``TESTMATRIX_*`` variables from the process environment
"""

import contextlib
import json
import logging
import os

import pytest
from loguru import logger

from testmatrix.aggregation import MemorySnapshotStore, SnapshotStore
from testmatrix.config import EngineConfig

from tests.utils import FIXED_NOW, scenario_mixed_export


@pytest.fixture(autouse=True, scope="function")
def capture_loguru_logs_globally(caplog):
    """Propagate Loguru records to the standard logging tree so ``caplog`` sees them."""

    class PropagateHandler(logging.Handler):
        def emit(self, record):
            logging.getLogger(record.name or "testmatrix").handle(record)

    caplog.set_level(logging.DEBUG)
    handler_id = logger.add(PropagateHandler(), format="{message}", level="DEBUG", enqueue=False)

    yield

    with contextlib.suppress(ValueError, KeyError):
        logger.remove(handler_id)


@pytest.fixture
def clean_env(monkeypatch):
    """Process environment without any ``TESTMATRIX_*`` variables."""
    for name in list(os.environ):
        if name.startswith("TESTMATRIX_"):
            monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def snapshot_path(tmp_path):
    return tmp_path / "reports" / "coverage-snapshot.json"


@pytest.fixture
def engine_config(snapshot_path):
    """Default configuration with the snapshot under ``tmp_path``."""
    return EngineConfig.model_validate({
        "project": {"name": "Storefront", "version": "4.2.0", "environment": "staging"},
        "storage": {"snapshot_path": str(snapshot_path)},
    })


@pytest.fixture
def file_store(snapshot_path):
    return SnapshotStore(snapshot_path)


@pytest.fixture
def memory_store():
    return MemorySnapshotStore()


@pytest.fixture
def mixed_export():
    return scenario_mixed_export()


@pytest.fixture
def export_file(tmp_path, mixed_export):
    """The mixed export written to disk as a runner JSON report."""
    path = tmp_path / "results.json"
    path.write_text(json.dumps(mixed_export), encoding="utf-8")
    return path
