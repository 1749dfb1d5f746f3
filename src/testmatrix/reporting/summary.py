"""
Section-ordered summary document.

The document is a plain data structure built from a snapshot. Every number
in it is copied from the snapshot; only the wording is decided here.

Sections, in order:

1. identification
2. execution summary
3. coverage (cells and tag coverage)
4. risk assessment distribution
5. defects and quality metrics
6. executive narrative
7. quality gate verdict
8. recommendations
9. risk items and mitigation
10. appendix (environment, test period, runs)
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from ..config import QualityThresholds
from ..models import (
    AggregatedSnapshot,
    CoverageCell,
    DefectEntry,
    HealthStatus,
    Identification,
    QualityGateResult,
    RiskLevel,
)

SLOW_AVERAGE_MS = 30000
SMOKE_COVERAGE_TARGET = 90
LOW_PASS_RATE = 80
FLAKY_SHARE_LIMIT = 0.1

# Industry benchmarks shown next to the quality metrics; not quality gates
DENSITY_BENCHMARK = 5
LEAKAGE_BENCHMARK = 2
REMOVAL_BENCHMARK = 95
DETECTION_BENCHMARK_S = 60
EFFICIENCY_BENCHMARK = 80


class ExecutionRow(BaseModel):
    metric: str
    value: Union[int, float, str]
    target: str = "-"
    met: Optional[bool] = None


class RiskRow(BaseModel):
    level: str
    percentage: int
    count: int


class RiskItem(BaseModel):
    level: str
    description: str
    impact: str
    mitigation: str


class Narrative(BaseModel):
    headline: str
    body: str


class SummaryDocument(BaseModel):
    """Everything a report emitter needs, in display order."""

    report_id: str
    generated_at: datetime
    identification: Identification
    execution: List[ExecutionRow] = Field(default_factory=list)
    coverage: List[CoverageCell] = Field(default_factory=list)
    tag_coverage: Dict[str, int] = Field(default_factory=dict)
    risk_distribution: List[RiskRow] = Field(default_factory=list)
    defects: List[DefectEntry] = Field(default_factory=list)
    severity_counts: Dict[str, int] = Field(default_factory=dict)
    quality: List[ExecutionRow] = Field(default_factory=list)
    narrative: Narrative
    quality_gate: QualityGateResult
    recommendations: List[str] = Field(default_factory=list)
    risk_items: List[RiskItem] = Field(default_factory=list)
    test_period: Optional[Tuple[datetime, datetime]] = None
    run_ids: List[int] = Field(default_factory=list)


def _execution_rows(snapshot: AggregatedSnapshot, thresholds: QualityThresholds) -> List[ExecutionRow]:
    s = snapshot.summary
    m = snapshot.quality_metrics
    return [
        ExecutionRow(metric="Total Tests Executed", value=s.total),
        ExecutionRow(metric="Tests Passed", value=s.passed, met=s.passed > 0),
        ExecutionRow(metric="Tests Failed", value=s.failed, target="0", met=s.failed == 0),
        ExecutionRow(metric="Tests Skipped", value=s.skipped),
        ExecutionRow(metric="Flaky Tests", value=s.flaky, target="0", met=s.flaky == 0),
        ExecutionRow(
            metric="Pass Rate",
            value=f"{m.pass_rate}%",
            target=f">={thresholds.min_pass_rate:g}%",
            met=m.pass_rate >= thresholds.min_pass_rate,
        ),
        ExecutionRow(metric="Total Duration (ms)", value=m.total_duration_ms),
        ExecutionRow(
            metric="Average Duration (ms)",
            value=m.avg_duration_ms,
            target=f"<{SLOW_AVERAGE_MS}",
            met=m.avg_duration_ms < SLOW_AVERAGE_MS,
        ),
        ExecutionRow(metric="Overall Health", value=f"{m.overall_health} ({m.health_status.value})"),
    ]


def _quality_rows(snapshot: AggregatedSnapshot) -> List[ExecutionRow]:
    m = snapshot.quality_metrics
    return [
        ExecutionRow(
            metric="Defect Density",
            value=f"{m.defect_density:.2f}%",
            target=f"<{DENSITY_BENCHMARK}%",
            met=m.defect_density < DENSITY_BENCHMARK,
        ),
        ExecutionRow(
            metric="Defect Leakage Rate",
            value=f"{m.defect_leakage_rate}%",
            target=f"<{LEAKAGE_BENCHMARK}%",
            met=m.defect_leakage_rate < LEAKAGE_BENCHMARK,
        ),
        ExecutionRow(
            metric="Defect Removal Efficiency",
            value=f"{m.defect_removal_efficiency}%",
            target=f">{REMOVAL_BENCHMARK}%",
            met=m.defect_removal_efficiency > REMOVAL_BENCHMARK,
        ),
        ExecutionRow(
            metric="Mean Time to Detection",
            value=f"{m.mean_time_to_detection}s",
            target=f"<{DETECTION_BENCHMARK_S}s",
            met=m.mean_time_to_detection < DETECTION_BENCHMARK_S,
        ),
        ExecutionRow(
            metric="Test Efficiency Score",
            value=m.test_efficiency,
            target=f">{EFFICIENCY_BENCHMARK}",
            met=m.test_efficiency > EFFICIENCY_BENCHMARK,
        ),
    ]


def _test_period(snapshot: AggregatedSnapshot) -> Optional[Tuple[datetime, datetime]]:
    """Earliest and latest record start, ignoring records without one."""
    times = [r.timestamp for r in snapshot.records_by_id.values() if r.timestamp is not None]
    if not times:
        return None
    return min(times), max(times)


def _narrative(snapshot: AggregatedSnapshot) -> Narrative:
    name = snapshot.identification.project_name
    m = snapshot.quality_metrics
    if m.health_status is HealthStatus.EXCELLENT:
        return Narrative(
            headline="EXCELLENT QUALITY ACHIEVED",
            body=(
                f"{name} shows a {m.pass_rate}% pass rate across {m.total} tests "
                f"with an overall health score of {m.overall_health}. Critical functionality "
                f"has been verified."
            ),
        )
    if m.health_status is HealthStatus.GOOD:
        significant = m.critical_defects + m.major_defects
        return Narrative(
            headline="GOOD QUALITY WITH MINOR CONCERNS",
            body=(
                f"{name} shows a {m.pass_rate}% pass rate and an overall health score of "
                f"{m.overall_health}. {significant} significant issue(s) need attention "
                f"before release."
            ),
        )
    return Narrative(
        headline="QUALITY CONCERNS REQUIRE IMMEDIATE ATTENTION",
        body=(
            f"{name} has a {m.pass_rate}% pass rate and an overall health score of "
            f"{m.overall_health}. There are {m.critical_defects} critical and "
            f"{m.major_defects} major defect(s) to resolve before release."
        ),
    )


def build_recommendations(snapshot: AggregatedSnapshot, thresholds: QualityThresholds) -> List[str]:
    m = snapshot.quality_metrics
    recommendations = []
    if m.critical_defects > 0:
        recommendations.append(
            f"CRITICAL: Resolve {m.critical_defects} critical defect(s) immediately; they block release"
        )
    if m.major_defects > 0:
        recommendations.append(f"HIGH PRIORITY: Address {m.major_defects} major defect(s) before release")
    if m.total and m.pass_rate < thresholds.min_pass_rate:
        recommendations.append(
            f"IMPROVE STABILITY: Pass rate of {m.pass_rate}% is below the {thresholds.min_pass_rate:g}% target"
        )
    if m.flaky > 0:
        recommendations.append(f"FIX FLAKY TESTS: {m.flaky} flaky test(s) detected")
    if m.avg_duration_ms > SLOW_AVERAGE_MS:
        recommendations.append(
            f"OPTIMIZE PERFORMANCE: Average test duration of {m.avg_duration_ms}ms exceeds {SLOW_AVERAGE_MS}ms"
        )
    if m.total and m.tag_coverage.get("smoke", 0) < SMOKE_COVERAGE_TARGET:
        recommendations.append(
            f"INCREASE SMOKE COVERAGE: Smoke coverage is {m.tag_coverage.get('smoke', 0)}%, "
            f"target {SMOKE_COVERAGE_TARGET}%"
        )

    seen = set()
    for defect in snapshot.defect_list:
        if defect.category not in seen:
            seen.add(defect.category)
            recommendations.append(f"{defect.category.value}: {defect.recommendation}")

    if not recommendations:
        recommendations.append("MAINTAIN EXCELLENCE: Continue current testing practices and monitor for regressions")
    return recommendations


def build_risk_items(snapshot: AggregatedSnapshot) -> List[RiskItem]:
    m = snapshot.quality_metrics
    risks = []
    if m.critical_defects > 0:
        risks.append(RiskItem(
            level="HIGH",
            description=f"{m.critical_defects} critical defect(s) present",
            impact="Production deployment blocked",
            mitigation="Immediate defect resolution and regression testing",
        ))
    if m.revenue_risk > 0:
        risks.append(RiskItem(
            level="HIGH",
            description=f"Business-critical failures, revenue risk score {m.revenue_risk}",
            impact="Revenue-affecting functionality may be broken",
            mitigation="Prioritize fixes in business-critical features",
        ))
    if m.total and m.pass_rate < LOW_PASS_RATE:
        risks.append(RiskItem(
            level="HIGH",
            description=f"Low pass rate of {m.pass_rate}%",
            impact="System stability concerns",
            mitigation="Test review and environment stabilization",
        ))
    if m.total and m.flaky > m.total * FLAKY_SHARE_LIMIT:
        risks.append(RiskItem(
            level="MEDIUM",
            description=f"High flaky test count ({m.flaky} of {m.total})",
            impact="Unreliable test results",
            mitigation="Test stabilization and environment optimization",
        ))
    return risks


def build_summary(
    snapshot: AggregatedSnapshot,
    thresholds: Optional[QualityThresholds] = None
) -> SummaryDocument:
    """Build the summary document for ``snapshot``."""
    thresholds = thresholds or QualityThresholds()
    m = snapshot.quality_metrics
    return SummaryDocument(
        report_id=f"TSR-{snapshot.timestamp.strftime('%Y%m%d%H%M%S')}-r{snapshot.revision}",
        generated_at=snapshot.timestamp,
        identification=snapshot.identification,
        execution=_execution_rows(snapshot, thresholds),
        coverage=[snapshot.coverage_matrix[key] for key in sorted(snapshot.coverage_matrix)],
        tag_coverage=dict(m.tag_coverage),
        risk_distribution=[
            RiskRow(
                level=level.value,
                percentage=m.risk_distribution.get(level.value, 0),
                count=m.risk_counts.get(level.value, 0),
            )
            for level in RiskLevel
        ],
        defects=list(snapshot.defect_list),
        severity_counts={
            "Critical": m.critical_defects,
            "Major": m.major_defects,
            "Minor": m.minor_defects,
            "Environmental": m.environmental_defects,
        },
        narrative=_narrative(snapshot),
        quality_gate=m.quality_gate,
        quality=_quality_rows(snapshot),
        recommendations=build_recommendations(snapshot, thresholds),
        risk_items=build_risk_items(snapshot),
        test_period=_test_period(snapshot),
        run_ids=list(snapshot.run_ids),
    )


__all__ = [
    "ExecutionRow",
    "RiskRow",
    "RiskItem",
    "Narrative",
    "SummaryDocument",
    "build_summary",
    "build_recommendations",
    "build_risk_items",
]
