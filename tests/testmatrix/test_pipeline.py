"""
End-to-end tests for the ingestion pipeline against a snapshot file.
"""

import json

import pytest

from testmatrix.aggregation import SnapshotStore
from testmatrix.exceptions import SnapshotError
from testmatrix.models import TestStatus
from testmatrix.pipeline import ingest_run, ingest_run_file, load_snapshot

from tests.utils import FIXED_NOW, create_export, create_result, create_spec, create_suite, scenario_mixed_export


class TestIngestRun:

    def test_first_ingestion(self, mixed_export, engine_config, snapshot_path):
        snapshot, metadata = ingest_run(mixed_export, engine_config, now=FIXED_NOW)

        assert metadata["success"] is True
        assert metadata["revision"] == 1
        assert metadata["run_id"] == 1
        assert metadata["merge"] == {"inserted": 4, "replaced": 0, "kept": 0, "failed": 0}
        assert snapshot.summary.model_dump() == {
            "total": 4, "passed": 2, "failed": 1, "skipped": 1, "flaky": 1,
        }
        assert snapshot.identification.project_name == "Storefront"
        assert snapshot_path.exists()

    def test_mixed_export_views(self, mixed_export, engine_config):
        snapshot, _ = ingest_run(mixed_export, engine_config, now=FIXED_NOW)

        assert snapshot.coverage_matrix[("Search & Discovery", "Standard")].flaky == 1
        assert snapshot.coverage_matrix[("Shopping Cart", "Mobile")].skipped == 1
        assert [d.test_id for d in snapshot.defect_list] == ["TC-3", "TC-2"]
        assert snapshot.quality_metrics.revenue_risk == 10
        assert snapshot.quality_metrics.business_critical_total == 2

    def test_reingestion_is_idempotent(self, mixed_export, engine_config):
        first, _ = ingest_run(mixed_export, engine_config, now=FIXED_NOW)
        second, metadata = ingest_run(mixed_export, engine_config, now=FIXED_NOW)

        assert second.summary.total == 4
        assert second.revision == 2
        assert second.content_dict() == first.content_dict()
        assert second.run_ids == [1]
        assert metadata["merge"]["replaced"] == 4

    def test_later_run_replaces_status(self, engine_config):
        failing = create_export([create_suite("a.spec.ts", specs=[
            create_spec("TC-1 login", [create_result("failed")]),
        ])], run_id=1)
        passing = create_export([create_suite("a.spec.ts", specs=[
            create_spec("TC-1 login", [create_result("passed")]),
        ])], run_id=2)

        ingest_run(failing, engine_config, now=FIXED_NOW)
        snapshot, _ = ingest_run(passing, engine_config, now=FIXED_NOW)

        assert snapshot.records_by_id["TC-1"].status is TestStatus.PASSED
        assert snapshot.summary.failed == 0
        assert snapshot.run_ids == [1, 2]

    def test_runs_accumulate_distinct_tests(self, engine_config):
        ingest_run(scenario_mixed_export(run_id=1), engine_config, now=FIXED_NOW)
        extra = create_export([create_suite("b.spec.ts", specs=[
            create_spec("TC-99 homepage loads", [create_result("passed")]),
        ])], run_id=2)

        snapshot, _ = ingest_run(extra, engine_config, now=FIXED_NOW)

        assert snapshot.summary.total == 5
        assert ("Homepage", "Standard") in snapshot.coverage_matrix

    def test_malformed_leaf_is_excluded(self, engine_config):
        export = create_export([create_suite("a.spec.ts", specs=[
            create_spec("", []),
            create_spec("TC-1 search", [create_result("passed")]),
        ])])

        snapshot, metadata = ingest_run(export, engine_config, now=FIXED_NOW)

        assert snapshot.summary.total == 1
        assert metadata["records_extracted"] == 1

    def test_non_mapping_export_gives_empty_batch(self, engine_config):
        snapshot, metadata = ingest_run(["not", "an", "export"], engine_config, now=FIXED_NOW)

        assert metadata["success"] is False
        assert metadata["error_type"] == "ExtractionError"
        assert metadata["run_id"] is None
        assert snapshot.summary.total == 0
        assert snapshot.revision == 1

    def test_corrupt_snapshot_is_fatal_and_untouched(self, mixed_export, engine_config, snapshot_path):
        snapshot_path.parent.mkdir(parents=True)
        snapshot_path.write_text("{corrupt", encoding="utf-8")

        with pytest.raises(SnapshotError) as exc_info:
            ingest_run(mixed_export, engine_config, now=FIXED_NOW)

        assert exc_info.value.error_code == "SNAPSHOT_002"
        assert snapshot_path.read_text(encoding="utf-8") == "{corrupt"

    def test_explicit_store(self, mixed_export, engine_config, memory_store, snapshot_path):
        snapshot, metadata = ingest_run(mixed_export, engine_config, store=memory_store, now=FIXED_NOW)

        assert memory_store.read().summary.total == 4
        assert not snapshot_path.exists()
        assert "MemorySnapshotStore" in metadata["store"]

    def test_config_loaded_from_environment(self, mixed_export, clean_env, tmp_path):
        path = tmp_path / "env-snapshot.json"
        clean_env.setenv("TESTMATRIX_SNAPSHOT_PATH", str(path))
        clean_env.setenv("TESTMATRIX_PROJECT_NAME", "Env Project")

        snapshot, _ = ingest_run(mixed_export, now=FIXED_NOW)

        assert path.exists()
        assert snapshot.identification.project_name == "Env Project"


class TestIngestRunFile:

    def test_reads_export_from_disk(self, export_file, engine_config):
        snapshot, metadata = ingest_run_file(export_file, engine_config, now=FIXED_NOW)

        assert snapshot.summary.total == 4
        assert metadata["source"] == str(export_file)
        assert metadata["source_found"] is True

    def test_missing_file_is_empty_batch(self, tmp_path, engine_config, snapshot_path):
        snapshot, metadata = ingest_run_file(tmp_path / "absent.json", engine_config, now=FIXED_NOW)

        assert metadata["source_found"] is False
        assert metadata["success"] is True
        assert snapshot.summary.total == 0
        assert json.loads(snapshot_path.read_text(encoding="utf-8"))["revision"] == 1

    def test_missing_file_keeps_existing_records(self, export_file, tmp_path, engine_config):
        ingest_run_file(export_file, engine_config, now=FIXED_NOW)

        snapshot, _ = ingest_run_file(tmp_path / "absent.json", engine_config, now=FIXED_NOW)

        assert snapshot.summary.total == 4
        assert snapshot.revision == 2


class TestLoadSnapshot:

    def test_empty_when_nothing_stored(self, engine_config):
        snapshot = load_snapshot(engine_config)

        assert snapshot.summary.total == 0
        assert snapshot.revision == 0
        assert snapshot.identification.project_name == "Storefront"

    def test_reads_stored_snapshot(self, mixed_export, engine_config, snapshot_path):
        ingest_run(mixed_export, engine_config, now=FIXED_NOW)

        snapshot = load_snapshot(engine_config)

        assert snapshot == SnapshotStore(snapshot_path).read()
        assert snapshot.summary.total == 4
