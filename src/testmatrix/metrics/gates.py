"""
Quality gates.

Four checks over the computed metrics. The verdict is PASSED when every
check passes, CONDITIONAL when at least ``conditional_gate_ratio`` of them
pass, otherwise FAILED.
"""

from typing import Optional

from loguru import logger

from ..config import QualityThresholds
from ..models import GateCheck, GateVerdict, QualityGateResult, QualityMetrics


def _check(name: str, value: float, threshold: float, maximum: bool, unit: str = "") -> GateCheck:
    passed = value <= threshold if maximum else value >= threshold
    return GateCheck(name=name, value=value, threshold=threshold, maximum=maximum, unit=unit, passed=passed)


def evaluate_quality_gates(
    metrics: QualityMetrics,
    thresholds: Optional[QualityThresholds] = None
) -> QualityGateResult:
    thresholds = thresholds or QualityThresholds()
    checks = [
        _check("Pass Rate", metrics.pass_rate, thresholds.min_pass_rate, maximum=False, unit="%"),
        _check("Critical Defects", metrics.critical_defects, thresholds.max_critical_defects, maximum=True),
        _check("Defect Density", metrics.defect_density, thresholds.max_defect_density, maximum=True, unit="%"),
        _check("Test Efficiency", metrics.test_efficiency, thresholds.min_test_efficiency, maximum=False),
    ]

    passed_count = sum(1 for check in checks if check.passed)
    if passed_count == len(checks):
        verdict = GateVerdict.PASSED
    elif passed_count >= thresholds.conditional_gate_ratio * len(checks):
        verdict = GateVerdict.CONDITIONAL
    else:
        verdict = GateVerdict.FAILED

    logger.debug(f"Quality gates: {passed_count}/{len(checks)} passed, verdict {verdict.value}")
    return QualityGateResult(
        verdict=verdict,
        checks=checks,
        passed_count=passed_count,
        total_count=len(checks),
    )
