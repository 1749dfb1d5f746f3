"""
Coverage matrix construction.

The matrix is a pure fold over records: it never looks at anything but the
records it is given, so the same function serves a single batch and the
merged record set of a snapshot.
"""

from typing import Any, Dict, Iterable, List, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from ..models import CellKey, CoverageCell, TestRecord, percentage


class CoverageRollup(BaseModel):
    """Totals for one feature across its conditions, or one condition across features."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    flaky: int = 0
    members: List[str] = Field(default_factory=list)

    @computed_field
    @property
    def pass_rate(self) -> int:
        return percentage(self.passed, self.total)

    def absorb(self, cell: CoverageCell, member: str) -> None:
        self.total += cell.total
        self.passed += cell.passed
        self.failed += cell.failed
        self.skipped += cell.skipped
        self.flaky += cell.flaky
        if member not in self.members:
            self.members.append(member)


def build_coverage_matrix(records: Iterable[TestRecord]) -> Dict[CellKey, CoverageCell]:
    """
    Group records into ``(feature, condition)`` cells.

    Cells are created on first reference. Flaky records count toward
    ``passed`` and the informational ``flaky`` counter.
    """
    matrix: Dict[CellKey, CoverageCell] = {}
    for record in records:
        key = record.cell_key
        cell = matrix.get(key)
        if cell is None:
            cell = CoverageCell(feature=key[0], condition=key[1])
            matrix[key] = cell
        cell.add(record)
    logger.debug(f"Built coverage matrix with {len(matrix)} cells")
    return matrix


def nest_matrix(matrix: Dict[CellKey, CoverageCell]) -> Dict[str, Dict[str, CoverageCell]]:
    """``{feature: {condition: cell}}`` with features and conditions sorted."""
    nested: Dict[str, Dict[str, CoverageCell]] = {}
    for feature, condition in sorted(matrix):
        nested.setdefault(feature, {})[condition] = matrix[(feature, condition)]
    return nested


def flatten_matrix(nested: Dict[str, Dict[str, Any]]) -> Dict[CellKey, CoverageCell]:
    """Inverse of :func:`nest_matrix`; cell payloads may be dicts or cells."""
    flat: Dict[CellKey, CoverageCell] = {}
    for feature, conditions in nested.items():
        for condition, cell in conditions.items():
            if not isinstance(cell, CoverageCell):
                cell = CoverageCell.model_validate({"feature": feature, "condition": condition, **cell})
            flat[(feature, condition)] = cell
    return flat


def matrix_total(matrix: Dict[CellKey, CoverageCell]) -> int:
    return sum(cell.total for cell in matrix.values())


def _rollup(matrix: Dict[CellKey, CoverageCell], by_feature: bool) -> Dict[str, CoverageRollup]:
    rollups: Dict[str, CoverageRollup] = {}
    for (feature, condition) in sorted(matrix):
        name, member = (feature, condition) if by_feature else (condition, feature)
        rollup = rollups.setdefault(name, CoverageRollup(name=name))
        rollup.absorb(matrix[(feature, condition)], member)
    return rollups


def rollup_by_feature(matrix: Dict[CellKey, CoverageCell]) -> Dict[str, CoverageRollup]:
    """Per-feature totals; ``members`` lists the conditions covered."""
    return _rollup(matrix, by_feature=True)


def rollup_by_condition(matrix: Dict[CellKey, CoverageCell]) -> Dict[str, CoverageRollup]:
    """Per-condition totals; ``members`` lists the features covered."""
    return _rollup(matrix, by_feature=False)


def coverage_gaps(matrix: Dict[CellKey, CoverageCell]) -> List[Tuple[str, str]]:
    """Feature/condition pairs that appear on their axes but have no cell."""
    features = sorted({feature for feature, _ in matrix})
    conditions = sorted({condition for _, condition in matrix})
    return [(f, c) for f in features for c in conditions if (f, c) not in matrix]


__all__ = [
    "CoverageRollup",
    "build_coverage_matrix",
    "nest_matrix",
    "flatten_matrix",
    "matrix_total",
    "rollup_by_feature",
    "rollup_by_condition",
    "coverage_gaps",
]
