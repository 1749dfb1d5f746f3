"""
Tabular and JSON exports of a snapshot.

DataFrames carry the snapshot's values unchanged; column names are the
camelCase names used in the JSON snapshot.
"""

import json
from pathlib import Path
from typing import Dict

import pandas as pd
from loguru import logger

from ..core.utils import PathLike, atomic_write_text, ensure_directory
from ..exceptions import ReportError
from ..models import AggregatedSnapshot

RECORD_COLUMNS = [
    "testId", "title", "feature", "condition", "status", "durationMs",
    "retryCount", "sourceFile", "timestamp", "runId", "project", "tags",
]
CELL_COLUMNS = ["feature", "condition", "total", "passed", "failed", "skipped", "flaky", "passRate"]
DEFECT_COLUMNS = [
    "id", "testId", "title", "feature", "condition", "status", "category",
    "severity", "riskLevel", "priority", "recommendation", "isEnvironmental",
]


def records_frame(snapshot: AggregatedSnapshot) -> pd.DataFrame:
    """One row per record; ``tags`` joined with commas."""
    rows = []
    for record in snapshot.records:
        row = record.model_dump(by_alias=True, mode="json", exclude={"annotations"})
        row["tags"] = ",".join(row["tags"])
        rows.append(row)
    return pd.DataFrame(rows, columns=RECORD_COLUMNS)


def coverage_frame(snapshot: AggregatedSnapshot) -> pd.DataFrame:
    """One row per coverage cell, sorted by feature then condition."""
    rows = [
        snapshot.coverage_matrix[key].model_dump(by_alias=True, mode="json", exclude={"test_ids"})
        for key in sorted(snapshot.coverage_matrix)
    ]
    return pd.DataFrame(rows, columns=CELL_COLUMNS)


def coverage_pivot(snapshot: AggregatedSnapshot, value: str = "total") -> pd.DataFrame:
    """Features as rows, conditions as columns; missing cells are 0."""
    frame = coverage_frame(snapshot)
    if frame.empty:
        return pd.DataFrame()
    return frame.pivot_table(index="feature", columns="condition", values=value, aggfunc="sum", fill_value=0)


def defects_frame(snapshot: AggregatedSnapshot) -> pd.DataFrame:
    rows = [defect.model_dump(by_alias=True, mode="json") for defect in snapshot.defect_list]
    return pd.DataFrame(rows, columns=DEFECT_COLUMNS)


def export_csv(snapshot: AggregatedSnapshot, directory: PathLike) -> Dict[str, Path]:
    """
    Write ``records.csv``, ``coverage.csv`` and ``defects.csv``.

    Raises:
        ReportError: REPORT_002 if a file cannot be written
    """
    try:
        out_dir = ensure_directory(directory)
        frames = {
            "records": records_frame(snapshot),
            "coverage": coverage_frame(snapshot),
            "defects": defects_frame(snapshot),
        }
        paths = {}
        for name, frame in frames.items():
            path = out_dir / f"{name}.csv"
            frame.to_csv(path, index=False)
            paths[name] = path
    except (OSError, ValueError) as e:
        raise ReportError(
            f"Failed to export CSV files to {directory}",
            error_code="REPORT_002",
            context={"path": str(directory), "error": str(e)},
        ) from e

    logger.info(f"CSV exports written to {out_dir}")
    return paths


def export_json(snapshot: AggregatedSnapshot, path: PathLike, indent: int = 2) -> Path:
    """
    Write the downstream report schema
    (``timestamp``, ``summary``, ``coverageMatrix``, ``qualityMetrics``, ``defectList``).

    Raises:
        ReportError: REPORT_002 if the file cannot be written
    """
    text = json.dumps(snapshot.to_output_dict(), indent=indent, ensure_ascii=False)
    try:
        written = atomic_write_text(path, text + "\n")
    except (OSError, ValueError) as e:
        raise ReportError(
            f"Failed to write JSON export: {path}",
            error_code="REPORT_002",
            context={"path": str(path), "error": str(e)},
        ) from e
    logger.info(f"JSON export written to {written}")
    return written
