"""Defect synthesis from failed and flaky records."""

from .synthesizer import (
    RECOMMENDATIONS,
    classify_category,
    classify_severity,
    defect_id,
    is_environmental,
    priority_label,
    synthesize_defect,
    synthesize_defects,
)

__all__ = [
    "RECOMMENDATIONS",
    "classify_category",
    "classify_severity",
    "defect_id",
    "is_environmental",
    "priority_label",
    "synthesize_defect",
    "synthesize_defects",
]
