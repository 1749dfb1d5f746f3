"""Tests for Loguru sink management."""

import io

import pytest

from testmatrix import (
    LoggingConfigError,
    configure_console_logging,
    configure_test_logging,
    get_logger_state,
    initialize_production_logging,
    is_logging_initialized,
    logger,
    reset_logging,
)
from testmatrix.extraction import load_run_export


@pytest.fixture(autouse=True)
def _reset_logging_state():
    """Ensure Loguru logger starts clean for each test."""
    reset_logging()
    yield
    reset_logging()


def test_invalid_level_is_rejected():
    with pytest.raises(LoggingConfigError):
        configure_console_logging(level="LOUD")


def test_test_logging_writes_to_destination():
    stream = io.StringIO()

    sink_ids = configure_test_logging(console_level="DEBUG", console_destination=stream)
    logger.debug("captured message")

    assert "captured message" in stream.getvalue()
    assert set(sink_ids) == {"console"}
    assert get_logger_state().is_test_mode()
    assert is_logging_initialized()


def test_console_level_filters(tmp_path):
    stream = io.StringIO()
    configure_test_logging(console_level="WARNING", console_destination=stream)

    load_run_export(tmp_path / "absent.json")
    logger.info("not shown")

    output = stream.getvalue()
    assert "Run export not found" in output
    assert "not shown" not in output


def test_production_logging_with_file_sink(tmp_path):
    sink_ids = initialize_production_logging(console_level="ERROR", log_dir=tmp_path / "logs")

    logger.debug("file only")
    reset_logging()

    assert set(sink_ids) == {"console", "file"}
    log_files = list((tmp_path / "logs").glob("testmatrix_*.log"))
    assert len(log_files) == 1
    assert "file only" in log_files[0].read_text(encoding="utf-8")


def test_reset_clears_state():
    configure_test_logging(console_destination=io.StringIO())

    reset_logging()

    assert not is_logging_initialized()
    assert get_logger_state().sink_ids == []
