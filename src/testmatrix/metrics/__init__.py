"""Quality metrics, risk classification and quality gates."""

from .risk import classify_risk, is_business_critical
from .gates import evaluate_quality_gates
from .calculator import (
    calculate_quality_metrics,
    defect_score,
    health_status,
    overall_health,
    efficiency_score,
)

__all__ = [
    "classify_risk",
    "is_business_critical",
    "evaluate_quality_gates",
    "calculate_quality_metrics",
    "defect_score",
    "health_status",
    "overall_health",
    "efficiency_score",
]
