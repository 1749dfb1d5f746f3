"""
testmatrix - Test execution aggregation and coverage matrix engine.

Ingests raw test runner exports, classifies every test into a
(feature, condition) coverage cell, merges repeated runs into one persisted
snapshot and derives quality metrics and defect entries from it.

This module also owns logging initialization. Sinks are tracked in a
``LoggerState`` so tests can reset and reconfigure Loguru in isolation.
"""

__version__ = "0.1.0"

import os
import sys
import warnings
from pathlib import Path
from typing import Dict, Optional, TextIO, Union

from loguru import logger


# --- Logger Configuration Classes and Types ---

class LoggingConfigError(Exception):
    """Exception raised when logging configuration fails validation or setup."""
    pass


class LoggerState:
    """Tracks logger initialization and sink ids for test isolation."""

    def __init__(self):
        self._initialized = False
        self._test_mode = False
        self._sink_ids = []

    def is_initialized(self) -> bool:
        return self._initialized

    def is_test_mode(self) -> bool:
        return self._test_mode

    def mark_initialized(self, test_mode: bool = False):
        self._initialized = True
        self._test_mode = test_mode

    def add_sink_id(self, sink_id: int):
        self._sink_ids.append(sink_id)

    @property
    def sink_ids(self):
        return list(self._sink_ids)

    def reset(self):
        self._initialized = False
        self._test_mode = False
        self._sink_ids.clear()


_logger_state = LoggerState()

log_format_console = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{module}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

log_format_file = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
    "{level: <8} | "
    "{name}:{function}:{line} - {message}"
)


# --- Configuration Validation Functions ---

def validate_log_level(level: str) -> str:
    """
    Validate a log level name.

    Args:
        level: Log level string to validate

    Returns:
        Upper-cased log level

    Raises:
        LoggingConfigError: If log level is invalid
    """
    valid_levels = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
    level_upper = str(level).upper()

    if level_upper not in valid_levels:
        raise LoggingConfigError(
            f"Invalid log level '{level}'. Must be one of: {', '.join(sorted(valid_levels))}"
        )

    return level_upper


# --- Core Logging Configuration Functions ---

def configure_console_logging(
    level: str = "INFO",
    format_template: Optional[str] = None,
    colorize: bool = True,
    destination: Optional[TextIO] = None
) -> int:
    """
    Configure a console logging sink.

    Args:
        level: Log level for console output
        format_template: Custom format template (uses default if None)
        colorize: Enable colored console output
        destination: Console destination (default: the current sys.stderr)

    Returns:
        Sink ID for tracking and cleanup

    Raises:
        LoggingConfigError: If configuration fails
    """
    try:
        validated_level = validate_log_level(level)

        sink_id = logger.add(
            destination if destination is not None else sys.stderr,
            level=validated_level,
            format=format_template or log_format_console,
            colorize=colorize
        )

        _logger_state.add_sink_id(sink_id)
        return sink_id

    except LoggingConfigError:
        raise
    except Exception as e:
        raise LoggingConfigError(f"Failed to configure console logging: {e}") from e


def configure_file_logging(
    log_file_path: Union[str, Path],
    level: str = "DEBUG",
    rotation: str = "10 MB",
    retention: str = "7 days",
    compression: str = "zip",
    format_template: Optional[str] = None,
    encoding: str = "utf-8"
) -> int:
    """
    Configure a rotating file logging sink.

    Args:
        log_file_path: Path to log file
        level: Log level for file output
        rotation: Log rotation setting
        retention: Log retention setting
        compression: Compression method for rotated logs
        format_template: Custom format template (uses default if None)
        encoding: File encoding

    Returns:
        Sink ID for tracking and cleanup

    Raises:
        LoggingConfigError: If configuration fails
    """
    try:
        validated_level = validate_log_level(level)
        path = Path(log_file_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        sink_id = logger.add(
            str(path),
            rotation=rotation,
            retention=retention,
            compression=compression,
            level=validated_level,
            format=format_template or log_format_file,
            encoding=encoding
        )

        _logger_state.add_sink_id(sink_id)
        return sink_id

    except LoggingConfigError:
        raise
    except Exception as e:
        raise LoggingConfigError(f"Failed to configure file logging: {e}") from e


def reset_logging():
    """
    Remove every Loguru sink and clear the tracked state.

    Raises:
        LoggingConfigError: If reset fails
    """
    try:
        logger.remove()
        _logger_state.reset()
    except Exception as e:
        raise LoggingConfigError(f"Failed to reset logging configuration: {e}") from e


def configure_test_logging(
    console_level: str = "DEBUG",
    console_destination: Optional[TextIO] = None,
    file_destination: Optional[Union[str, Path]] = None
) -> Dict[str, int]:
    """
    Configure logging for test scenarios: uncolored console output and an
    optional file sink.

    Returns:
        Dictionary mapping sink types to sink IDs
    """
    try:
        reset_logging()

        sink_ids = {
            'console': configure_console_logging(
                level=console_level,
                destination=console_destination,
                colorize=False
            )
        }

        if file_destination:
            sink_ids['file'] = configure_file_logging(file_destination)

        _logger_state.mark_initialized(test_mode=True)
        return sink_ids

    except LoggingConfigError:
        raise
    except Exception as e:
        raise LoggingConfigError(f"Failed to configure test logging: {e}") from e


def initialize_production_logging(
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    log_dir: Optional[Union[str, Path]] = None,
    enable_file_logging: bool = True
) -> Dict[str, int]:
    """
    Initialize console logging plus a daily file sink.

    Args:
        console_level: Console logging level
        file_level: File logging level
        log_dir: Directory for log files (defaults to ``~/.testmatrix/logs``)
        enable_file_logging: Whether to add the file sink

    Returns:
        Dictionary mapping sink types to sink IDs

    Raises:
        LoggingConfigError: If initialization fails
    """
    try:
        logger.remove()
        _logger_state.reset()

        sink_ids = {'console': configure_console_logging(level=console_level)}

        if enable_file_logging:
            log_dir = Path(log_dir) if log_dir is not None else Path.home() / ".testmatrix" / "logs"
            sink_ids['file'] = configure_file_logging(
                log_dir / "testmatrix_{time:YYYYMMDD}.log",
                level=file_level
            )

        _logger_state.mark_initialized(test_mode=False)
        logger.debug("--- testmatrix logger initialized ---")
        return sink_ids

    except LoggingConfigError:
        raise
    except Exception as e:
        raise LoggingConfigError(f"Failed to initialize production logging: {e}") from e


def get_logger_state() -> LoggerState:
    return _logger_state


def is_logging_initialized() -> bool:
    return _logger_state.is_initialized()


def _is_pytest_running() -> bool:
    return "pytest" in sys.modules or "PYTEST_CURRENT_TEST" in os.environ


def _auto_initialize_logging():
    """Console-only logging on first import, unless running under pytest."""
    if not _logger_state.is_initialized() and not _is_pytest_running():
        try:
            initialize_production_logging(enable_file_logging=False)
        except LoggingConfigError as e:
            warnings.warn(f"Failed to initialize logging: {e}. Using basic stderr logging.")
            logger.add(sys.stderr, level="INFO")
            _logger_state.mark_initialized(test_mode=False)


_auto_initialize_logging()


# --- Public API ---

from .exceptions import (  # noqa: E402
    TestMatrixError,
    ConfigError,
    ExtractionError,
    AggregationError,
    SnapshotError,
    SnapshotConflictError,
    ReportError,
)
from .models import (  # noqa: E402
    TestStatus,
    RiskLevel,
    DefectCategory,
    DefectSeverity,
    TestRecord,
    CoverageCell,
    DefectEntry,
    QualityMetrics,
    RunSummary,
    Identification,
    AggregatedSnapshot,
)
from .config import EngineConfig, load_config  # noqa: E402
from .extraction import extract_records, load_run_export  # noqa: E402
from .coverage import build_coverage_matrix  # noqa: E402
from .aggregation import SnapshotStore, merge_records, ingest_batch  # noqa: E402
from .metrics import calculate_quality_metrics, evaluate_quality_gates  # noqa: E402
from .defects import synthesize_defects  # noqa: E402
from .pipeline import ingest_run, ingest_run_file  # noqa: E402

__all__ = [
    "__version__",
    "logger",
    "LoggingConfigError",
    "configure_console_logging",
    "configure_file_logging",
    "configure_test_logging",
    "reset_logging",
    "initialize_production_logging",
    "get_logger_state",
    "is_logging_initialized",
    "TestMatrixError",
    "ConfigError",
    "ExtractionError",
    "AggregationError",
    "SnapshotError",
    "SnapshotConflictError",
    "ReportError",
    "TestStatus",
    "RiskLevel",
    "DefectCategory",
    "DefectSeverity",
    "TestRecord",
    "CoverageCell",
    "DefectEntry",
    "QualityMetrics",
    "RunSummary",
    "Identification",
    "AggregatedSnapshot",
    "EngineConfig",
    "load_config",
    "extract_records",
    "load_run_export",
    "build_coverage_matrix",
    "SnapshotStore",
    "merge_records",
    "ingest_batch",
    "calculate_quality_metrics",
    "evaluate_quality_gates",
    "synthesize_defects",
    "ingest_run",
    "ingest_run_file",
]
