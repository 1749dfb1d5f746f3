"""
Quality metrics over a merged record set.

All percentages are rounded half-up. Every ratio is defined as 0 when its
denominator is 0, so an empty snapshot yields well-defined metrics.
"""

from typing import Dict, Iterable, Optional, Sequence

from loguru import logger

from ..config import ExtractionRules, QualityThresholds
from ..coverage import build_coverage_matrix, rollup_by_condition, rollup_by_feature
from ..models import (
    DefectEntry,
    DefectSeverity,
    HealthStatus,
    QualityMetrics,
    RiskLevel,
    RunSummary,
    TestRecord,
    TestStatus,
    percentage,
    round_half_up,
)
from .gates import evaluate_quality_gates
from .risk import classify_risk, is_business_critical

COVERAGE_TAGS = ("functional", "regression", "smoke", "integration")

HEALTH_WEIGHTS = {"pass_rate": 0.5, "defect_score": 0.3, "test_efficiency": 0.2}
DEFECT_PENALTIES = {
    DefectSeverity.CRITICAL: 20,
    DefectSeverity.MAJOR: 10,
    DefectSeverity.MINOR: 2,
}
REVENUE_RISK_PER_FAILURE = 10


def defect_score(critical: int, major: int, minor: int) -> int:
    """``max(0, 100 - 20*critical - 10*major - 2*minor)``"""
    penalty = (
        DEFECT_PENALTIES[DefectSeverity.CRITICAL] * critical
        + DEFECT_PENALTIES[DefectSeverity.MAJOR] * major
        + DEFECT_PENALTIES[DefectSeverity.MINOR] * minor
    )
    return max(0, 100 - penalty)


def efficiency_score(pass_rate: int, avg_duration_ms: float) -> int:
    """Pass rate per average second of test time; 0 when no time was recorded."""
    avg_seconds = avg_duration_ms / 1000.0
    if avg_seconds <= 0:
        return 0
    return round_half_up(pass_rate / avg_seconds)


def overall_health(pass_rate: int, score: int, efficiency: int) -> int:
    return round_half_up(
        HEALTH_WEIGHTS["pass_rate"] * pass_rate
        + HEALTH_WEIGHTS["defect_score"] * score
        + HEALTH_WEIGHTS["test_efficiency"] * min(100, efficiency)
    )


def health_status(health: int, thresholds: Optional[QualityThresholds] = None) -> HealthStatus:
    thresholds = thresholds or QualityThresholds()
    if health >= thresholds.excellent_health:
        return HealthStatus.EXCELLENT
    if health >= thresholds.good_health:
        return HealthStatus.GOOD
    return HealthStatus.CRITICAL


def _risk_breakdown(records: Sequence[TestRecord], slow_ms: int):
    counts = {level.value: 0 for level in RiskLevel}
    passing = {level.value: 0 for level in RiskLevel}
    for record in records:
        level = classify_risk(record, slow_ms).value
        counts[level] += 1
        if record.status.is_passing:
            passing[level] += 1
    total = len(records)
    distribution = {level: percentage(count, total) for level, count in counts.items()}
    pass_rates = {level: percentage(passing[level], counts[level]) for level in counts}
    return counts, distribution, pass_rates


def _severity_counts(defects: Iterable[DefectEntry], include_environmental: bool = True) -> Dict[str, int]:
    counts = {"critical": 0, "major": 0, "minor": 0}
    for defect in defects:
        if defect.is_environmental and not include_environmental:
            continue
        counts[defect.severity.value.lower()] += 1
    return counts


def calculate_quality_metrics(
    records: Iterable[TestRecord],
    defects: Iterable[DefectEntry] = (),
    thresholds: Optional[QualityThresholds] = None,
    rules: Optional[ExtractionRules] = None
) -> QualityMetrics:
    """
    Derive quality metrics from records and their synthesized defects.

    Severity counts include every defect, so an environmental critical
    failure still trips the critical-defects gate. Only the defect score
    feeding overall health leaves environmental defects out.

    Args:
        records: The merged record set
        defects: Defects synthesized from the same records
        thresholds: Risk, gate and health thresholds
        rules: Source of the business-critical feature set

    Returns:
        QualityMetrics with the quality gate result attached
    """
    thresholds = thresholds or QualityThresholds()
    rules = rules or ExtractionRules()
    records = list(records)

    summary = RunSummary.from_records(records)
    total = summary.total

    pass_rate = percentage(summary.passed, total)
    density = round(summary.failed / total * 100, 2) if total else 0.0
    total_duration = sum(record.duration_ms for record in records)
    avg_duration = total_duration / total if total else 0.0
    efficiency = efficiency_score(pass_rate, avg_duration)

    risk_counts, risk_distribution, risk_pass_rates = _risk_breakdown(
        records, thresholds.slow_test_threshold_ms
    )
    tag_coverage = {
        tag: percentage(sum(1 for r in records if r.has_tag(tag)), total)
        for tag in COVERAGE_TAGS
    }

    critical_records = [r for r in records if is_business_critical(r, rules.business_critical_features)]
    critical_passed = sum(1 for r in critical_records if r.status.is_passing)
    critical_failed = sum(1 for r in critical_records if r.status is TestStatus.FAILED)

    defects = list(defects)
    severity = _severity_counts(defects)
    scored = _severity_counts(defects, include_environmental=False)
    score = defect_score(scored["critical"], scored["major"], scored["minor"])

    failed_durations = [r.duration_ms for r in records if r.status is TestStatus.FAILED]
    mttd = round_half_up(sum(failed_durations) / len(failed_durations) / 1000) if failed_durations else 0

    health = overall_health(pass_rate, score, efficiency)

    matrix = build_coverage_matrix(records)
    by_feature = {name: rollup.pass_rate for name, rollup in rollup_by_feature(matrix).items()}
    by_condition = {name: rollup.pass_rate for name, rollup in rollup_by_condition(matrix).items()}

    metrics = QualityMetrics(
        total=total,
        passed=summary.passed,
        failed=summary.failed,
        skipped=summary.skipped,
        flaky=summary.flaky,
        pass_rate=pass_rate,
        defect_density=density,
        total_duration_ms=total_duration,
        avg_duration_ms=round(avg_duration, 2),
        test_efficiency=efficiency,
        risk_distribution=risk_distribution,
        risk_counts=risk_counts,
        risk_pass_rates=risk_pass_rates,
        tag_coverage=tag_coverage,
        business_critical_total=len(critical_records),
        business_critical_passed=critical_passed,
        business_critical_coverage=percentage(critical_passed, len(critical_records)),
        revenue_risk=REVENUE_RISK_PER_FAILURE * critical_failed,
        critical_defects=severity["critical"],
        major_defects=severity["major"],
        minor_defects=severity["minor"],
        environmental_defects=sum(1 for d in defects if d.is_environmental),
        defect_score=score,
        mean_time_to_detection=mttd,
        defect_leakage_rate=percentage(summary.failed, total),
        defect_removal_efficiency=percentage(summary.passed - summary.flaky, total),
        overall_health=health,
        health_status=health_status(health, thresholds),
        pass_rate_by_feature=by_feature,
        pass_rate_by_condition=by_condition,
    )
    metrics.quality_gate = evaluate_quality_gates(metrics, thresholds)

    logger.info(
        f"Quality metrics: total={total} passRate={pass_rate}% health={health} "
        f"({metrics.health_status.value}) gate={metrics.quality_gate.verdict.value}"
    )
    return metrics
