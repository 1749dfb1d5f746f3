"""
Defect synthesis.

Every failed or flaky record becomes one :class:`DefectEntry`. Category,
severity, risk and priority are pure functions of the record, and the defect
id is a digest of the test id, so re-synthesizing from the same records
yields the same list.
"""

import hashlib
from typing import Iterable, List, Optional

from loguru import logger

from ..config import ExtractionRules, QualityThresholds
from ..metrics.risk import classify_risk
from ..models import DefectCategory, DefectEntry, DefectSeverity, TestRecord, TestStatus

DEFECT_STATUSES = (TestStatus.FAILED, TestStatus.FLAKY)

RECOMMENDATIONS = {
    DefectCategory.PERFORMANCE: "Optimize page performance or adjust thresholds",
    DefectCategory.ACCESSIBILITY: "Fix accessibility compliance issues",
    DefectCategory.VISUAL: "Review UI changes and update baselines",
    DefectCategory.ERROR_HANDLING: "Verify error messages and input validation paths",
    DefectCategory.NAVIGATION: "Check navigation links and routing",
    DefectCategory.FUNCTIONAL: "Investigate and fix functional issue",
}

SEVERITY_ORDER = {
    DefectSeverity.CRITICAL: 0,
    DefectSeverity.MAJOR: 1,
    DefectSeverity.MINOR: 2,
}


def defect_id(test_id: str) -> str:
    return "DEF-" + hashlib.sha1(test_id.encode("utf-8")).hexdigest()[:10].upper()


def classify_category(record: TestRecord) -> DefectCategory:
    if record.has_tag("performance"):
        return DefectCategory.PERFORMANCE
    if record.has_tag("accessibility"):
        return DefectCategory.ACCESSIBILITY
    if record.has_tag("visual"):
        return DefectCategory.VISUAL
    if record.has_tag("negative"):
        return DefectCategory.ERROR_HANDLING
    if "navigation" in record.feature.lower():
        return DefectCategory.NAVIGATION
    return DefectCategory.FUNCTIONAL


def classify_severity(record: TestRecord) -> DefectSeverity:
    if record.has_tag("critical"):
        return DefectSeverity.CRITICAL
    if record.has_tag("high-risk"):
        return DefectSeverity.MAJOR
    return DefectSeverity.MINOR


def is_environmental(record: TestRecord, rules: Optional[ExtractionRules] = None) -> bool:
    """Throttled-network or visual-baseline failures."""
    rules = rules or ExtractionRules()
    return record.has_tag(*rules.environmental_tags) or record.condition in rules.environmental_conditions


def priority_label(severity: DefectSeverity, status: TestStatus) -> str:
    if severity is DefectSeverity.CRITICAL:
        return "P1"
    if severity is DefectSeverity.MAJOR:
        return "P2"
    return "P4" if status is TestStatus.FLAKY else "P3"


def synthesize_defect(
    record: TestRecord,
    rules: Optional[ExtractionRules] = None,
    thresholds: Optional[QualityThresholds] = None
) -> DefectEntry:
    thresholds = thresholds or QualityThresholds()
    category = classify_category(record)
    severity = classify_severity(record)
    return DefectEntry(
        id=defect_id(record.test_id),
        test_id=record.test_id,
        title=record.title,
        feature=record.feature,
        condition=record.condition,
        status=record.status,
        category=category,
        severity=severity,
        risk_level=classify_risk(record, thresholds.slow_test_threshold_ms),
        priority=priority_label(severity, record.status),
        recommendation=RECOMMENDATIONS[category],
        is_environmental=is_environmental(record, rules),
    )


def synthesize_defects(
    records: Iterable[TestRecord],
    rules: Optional[ExtractionRules] = None,
    thresholds: Optional[QualityThresholds] = None
) -> List[DefectEntry]:
    """
    Turn failed and flaky records into defects, ordered by severity then test id.

    Records with any other status are ignored, so the full record set can be
    passed in directly.
    """
    rules = rules or ExtractionRules()
    defects = [
        synthesize_defect(record, rules, thresholds)
        for record in records
        if record.status in DEFECT_STATUSES
    ]
    defects.sort(key=lambda d: (SEVERITY_ORDER[d.severity], d.test_id))
    environmental = sum(1 for d in defects if d.is_environmental)
    logger.debug(f"Synthesized {len(defects)} defects ({environmental} environmental)")
    return defects
