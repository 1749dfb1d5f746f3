"""Per-record risk and business-criticality classification."""

from typing import Iterable, Optional

from ..config import ExtractionRules
from ..models import RiskLevel, TestRecord

HIGH_RISK_TAGS = ("critical", "high-risk")
BUSINESS_CRITICAL_TAG = "business-critical"
DEFAULT_SLOW_TEST_MS = 5000


def classify_risk(record: TestRecord, slow_test_threshold_ms: int = DEFAULT_SLOW_TEST_MS) -> RiskLevel:
    """
    High when tagged critical or high-risk; Medium when slower than the
    threshold or retried; otherwise Low.
    """
    if record.has_tag(*HIGH_RISK_TAGS):
        return RiskLevel.HIGH
    if record.duration_ms > slow_test_threshold_ms or record.retry_count > 0:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def is_business_critical(record: TestRecord, features: Optional[Iterable[str]] = None) -> bool:
    """Explicitly tagged, or in one of the business-critical features."""
    if features is None:
        features = ExtractionRules().business_critical_features
    return record.has_tag(BUSINESS_CRITICAL_TAG) or record.feature in set(features)
