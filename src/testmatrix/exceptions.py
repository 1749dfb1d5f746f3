"""
testmatrix Exception Hierarchy

This module provides the domain-specific exception hierarchy for testmatrix,
enabling granular error handling, context preservation, and consistent logging
across the ingestion pipeline.

The hierarchy follows the pipeline stages:
- TestMatrixError: Base exception for all testmatrix-specific errors
- ConfigError: Configuration validation and loading failures
- ExtractionError: Raw run export cannot be interpreted at all
- AggregationError: Merge of a batch into a snapshot failed
- SnapshotError: Snapshot persistence failures (the only fatal ingestion error)
- SnapshotConflictError: Snapshot was replaced by another writer mid-ingestion
- ReportError: Summary document or export generation failures

Each exception class provides:
- Error codes for programmatic error handling
- A context dictionary for debugging details
- ``with_context()`` for chaining context while re-raising

Usage Examples:
    Error code checking:
    >>> try:
    ...     store.write(snapshot, expected_revision=3)
    ... except SnapshotConflictError as e:
    ...     logger.warning(f"Another ingestion won the race: {e.context}")

    Context preservation:
    >>> try:
    ...     payload = json.loads(text)
    ... except ValueError as e:
    ...     raise SnapshotError("Snapshot is not valid JSON", "SNAPSHOT_002").with_context({
    ...         "original_error": str(e),
    ...     })
"""

from pathlib import Path
from typing import Any, Dict, Optional


class TestMatrixError(Exception):
    """
    Base exception class for all testmatrix-specific errors.

    Attributes:
        error_code (str): Unique identifier for programmatic error handling
        context (Dict[str, Any]): Additional context information for debugging

    Error Codes:
        TESTMATRIX_001: Generic testmatrix error
        TESTMATRIX_002: Unexpected internal error
    """

    # Keep pytest from collecting this class when imported into test modules.
    __test__ = False

    def __init__(
        self,
        message: str,
        error_code: str = "TESTMATRIX_001",
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Initialize the error with message, error code, and context.

        Args:
            message: Human-readable error description
            error_code: Unique identifier for programmatic error handling
            context: Additional context information for debugging
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = dict(context or {})

    def with_context(self, context: Dict[str, Any]) -> 'TestMatrixError':
        """
        Add additional context to the exception and return self for chaining.

        Args:
            context: Dictionary of context information to add

        Returns:
            Self for method chaining
        """
        self.context.update(context)
        return self

    def __str__(self) -> str:
        message = super().__str__()
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{message} [Error Code: {self.error_code}, Context: {context_str}]"
        return f"{message} [Error Code: {self.error_code}]"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={super().__str__()!r}, "
            f"error_code={self.error_code!r}, "
            f"context={self.context!r})"
        )


class ConfigError(TestMatrixError):
    """
    Configuration validation and loading errors.

    Error Codes:
        CONFIG_001: Configuration file not found
        CONFIG_002: YAML parsing error
        CONFIG_003: Pydantic validation failure
        CONFIG_004: Unsupported configuration source type
    """

    def __init__(
        self,
        message: str,
        error_code: str = "CONFIG_001",
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, error_code, context)

        if context:
            if 'config_path' in context and isinstance(context['config_path'], (str, Path)):
                self.context['config_path'] = str(context['config_path'])


class ExtractionError(TestMatrixError):
    """
    Raw run export errors.

    Individual malformed test entries never raise; they are skipped. This error
    is reserved for an export whose top level cannot be interpreted.

    Error Codes:
        EXTRACT_001: Run export is not a mapping
        EXTRACT_002: Keyword pattern could not be compiled
    """

    def __init__(
        self,
        message: str,
        error_code: str = "EXTRACT_001",
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, error_code, context)


class AggregationError(TestMatrixError):
    """
    Snapshot merge errors.

    Error Codes:
        AGGREGATE_001: Batch is not an iterable of records
        AGGREGATE_002: Derived views could not be recomputed
    """

    def __init__(
        self,
        message: str,
        error_code: str = "AGGREGATE_001",
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, error_code, context)

        if context and 'test_id' in context:
            self.context['test_id'] = str(context['test_id'])


class SnapshotError(TestMatrixError):
    """
    Snapshot persistence errors.

    Error Codes:
        SNAPSHOT_001: Snapshot could not be written
        SNAPSHOT_002: Existing snapshot is corrupt
        SNAPSHOT_003: Unsupported snapshot schema version
        SNAPSHOT_004: Snapshot changed on disk since it was read
    """

    def __init__(
        self,
        message: str,
        error_code: str = "SNAPSHOT_001",
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, error_code, context)

        if context and 'snapshot_path' in context and isinstance(context['snapshot_path'], (str, Path)):
            self.context['snapshot_path'] = str(context['snapshot_path'])


class SnapshotConflictError(SnapshotError):
    """Raised when another writer replaced the snapshot between read and write."""

    def __init__(
        self,
        message: str,
        error_code: str = "SNAPSHOT_004",
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, error_code, context)


class ReportError(TestMatrixError):
    """
    Summary document and export errors.

    Error Codes:
        REPORT_001: Template rendering failed
        REPORT_002: Report output could not be written
    """

    def __init__(
        self,
        message: str,
        error_code: str = "REPORT_001",
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, error_code, context)


def log_and_raise(
    exception: TestMatrixError,
    logger: Optional[Any] = None,
    level: str = "error"
) -> None:
    """
    Log an exception with context and then raise it.

    Args:
        exception: The exception to log and raise
        logger: Logger instance to use (optional)
        level: Log level ("error", "warning", "critical")

    Raises:
        The provided exception after logging
    """
    if logger is not None:
        log_method = getattr(logger, level, logger.error)
        log_method(f"{exception.__class__.__name__}: {exception}")

        if exception.context:
            for key, value in exception.context.items():
                log_method(f"  {key}: {value}")

    raise exception


__all__ = [
    'TestMatrixError',
    'ConfigError',
    'ExtractionError',
    'AggregationError',
    'SnapshotError',
    'SnapshotConflictError',
    'ReportError',
    'log_and_raise',
]
