"""Tests for the ``testmatrix`` command line."""

import json

import pytest

from testmatrix import reset_logging
from testmatrix.cli import EXIT_ERROR, EXIT_GATE_FAILED, EXIT_OK, main

from tests.utils import create_export, create_result, create_spec, create_suite


@pytest.fixture(autouse=True)
def _isolated_cli(clean_env):
    """The CLI installs its own console sink; drop it after each test."""
    yield
    reset_logging()


@pytest.fixture
def passing_export(tmp_path):
    export = create_export([create_suite("a.spec.ts", specs=[
        create_spec(f"TC-{i} smoke check", [create_result("passed")]) for i in range(1, 5)
    ])], run_id=3)
    path = tmp_path / "passing.json"
    path.write_text(json.dumps(export), encoding="utf-8")
    return path


def _run(snapshot_path, *args):
    return main(["--snapshot", str(snapshot_path), "--log-level", "warning", *args])


class TestIngest:

    def test_ingest_prints_summary(self, export_file, snapshot_path, capsys):
        code = _run(snapshot_path, "ingest", str(export_file))

        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert "Tests:         4 (passed 2, failed 1, skipped 1, flaky 1)" in out
        assert "Revision:      1" in out
        assert snapshot_path.exists()

    def test_ingest_several_exports(self, export_file, passing_export, snapshot_path, capsys):
        code = _run(snapshot_path, "ingest", str(export_file), str(passing_export))

        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert "Revision:      2" in out

    def test_ingest_writes_reports(self, export_file, snapshot_path, tmp_path):
        report_dir = tmp_path / "report"

        _run(snapshot_path, "ingest", str(export_file), "--report-dir", str(report_dir))

        assert sorted(p.name for p in report_dir.iterdir()) == [
            "coverage.csv", "defects.csv", "records.csv", "snapshot.json", "summary.md",
        ]

    def test_fail_on_gate(self, export_file, snapshot_path):
        assert _run(snapshot_path, "ingest", str(export_file), "--fail-on-gate") == EXIT_GATE_FAILED

    def test_passing_run_clears_gate(self, passing_export, snapshot_path):
        assert _run(snapshot_path, "ingest", str(passing_export), "--fail-on-gate") == EXIT_OK

    def test_missing_export_still_ingests(self, tmp_path, snapshot_path, capsys):
        code = _run(snapshot_path, "ingest", str(tmp_path / "absent.json"))

        assert code == EXIT_OK
        assert "Tests:         0" in capsys.readouterr().out


class TestShowAndReport:

    def test_show_json(self, export_file, snapshot_path, capsys):
        _run(snapshot_path, "ingest", str(export_file))
        capsys.readouterr()

        code = _run(snapshot_path, "show", "--json")

        data = json.loads(capsys.readouterr().out)
        assert code == EXIT_OK
        assert data["summary"]["total"] == 4
        assert "coverageMatrix" in data

    def test_show_empty_snapshot(self, snapshot_path, capsys):
        code = _run(snapshot_path, "show")

        assert code == EXIT_OK
        assert "Tests:         0" in capsys.readouterr().out

    @pytest.mark.parametrize("fmt,name", [("markdown", "summary.md"), ("json", "snapshot.json")])
    def test_report_file_formats(self, export_file, snapshot_path, tmp_path, fmt, name):
        _run(snapshot_path, "ingest", str(export_file))
        output = tmp_path / name

        code = _run(snapshot_path, "report", "--format", fmt, "--output", str(output))

        assert code == EXIT_OK
        assert output.exists()

    def test_report_csv(self, export_file, snapshot_path, tmp_path):
        _run(snapshot_path, "ingest", str(export_file))

        _run(snapshot_path, "report", "--format", "csv", "--output", str(tmp_path / "csv"))

        assert (tmp_path / "csv" / "records.csv").exists()


class TestErrors:

    def test_corrupt_snapshot(self, snapshot_path):
        snapshot_path.parent.mkdir(parents=True)
        snapshot_path.write_text("not json", encoding="utf-8")

        assert _run(snapshot_path, "show") == EXIT_ERROR

    def test_missing_config(self, tmp_path, snapshot_path):
        code = main(["--config", str(tmp_path / "absent.yaml"), "--snapshot", str(snapshot_path), "show"])

        assert code == EXIT_ERROR

    def test_config_file(self, tmp_path, snapshot_path, capsys):
        config = tmp_path / "testmatrix.yaml"
        config.write_text("project:\n  name: Configured Shop\n", encoding="utf-8")

        main(["--config", str(config), "--snapshot", str(snapshot_path), "show"])

        assert "Project:       Configured Shop" in capsys.readouterr().out

    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            main([])
