"""Coverage matrix builder and roll-up helpers."""

from .matrix import (
    CoverageRollup,
    build_coverage_matrix,
    coverage_gaps,
    flatten_matrix,
    matrix_total,
    nest_matrix,
    rollup_by_condition,
    rollup_by_feature,
)

__all__ = [
    "CoverageRollup",
    "build_coverage_matrix",
    "coverage_gaps",
    "flatten_matrix",
    "matrix_total",
    "nest_matrix",
    "rollup_by_condition",
    "rollup_by_feature",
]
