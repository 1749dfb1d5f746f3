"""
Data models shared by every pipeline stage.

All models serialize to camelCase JSON (``model_dump(by_alias=True)``) and
accept either camelCase or snake_case on input, so a persisted snapshot can be
read back with ``AggregatedSnapshot.model_validate``.

The coverage matrix is held in memory keyed by ``(feature, condition)`` tuples
and written out as the nested ``{feature: {condition: cell}}`` form.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .config.versioning import CURRENT_SNAPSHOT_VERSION

UNKNOWN = "Unknown"
STANDARD = "Standard"

CellKey = Tuple[str, str]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def round_half_up(value: float) -> int:
    """Round like the runner's reports do: halves go away from zero."""
    if value < 0:
        return -round_half_up(-value)
    return int(value + 0.5)


def percentage(part: int, whole: int) -> int:
    """Rounded percentage of ``part`` in ``whole``; 0 when ``whole`` is 0."""
    if whole <= 0:
        return 0
    return round_half_up(part / whole * 100)


class TestStatus(str, Enum):
    """Final outcome of one test in one run."""

    __test__ = False

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    FLAKY = "flaky"

    @property
    def is_passing(self) -> bool:
        return self in (TestStatus.PASSED, TestStatus.FLAKY)


class RiskLevel(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class DefectCategory(str, Enum):
    PERFORMANCE = "Performance"
    ACCESSIBILITY = "Accessibility"
    VISUAL = "Visual"
    ERROR_HANDLING = "ErrorHandling"
    NAVIGATION = "Navigation"
    FUNCTIONAL = "Functional"


class DefectSeverity(str, Enum):
    CRITICAL = "Critical"
    MAJOR = "Major"
    MINOR = "Minor"


class HealthStatus(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    CRITICAL = "Critical"


class GateVerdict(str, Enum):
    PASSED = "PASSED"
    CONDITIONAL = "CONDITIONAL"
    FAILED = "FAILED"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )


class TestRecord(_CamelModel):
    """
    One test observed in one run.

    Attributes:
        test_id: Stable identity across runs, qualified by runner project when one is set
        title: Test title as reported by the runner
        feature: Functional area, ``"Unknown"`` when it cannot be determined
        condition: Scenario qualifier, ``"Unknown"`` when absent
        tags: Lower-cased keywords from explicit tags, title and file path
        status: Final outcome of the most recent attempt
        duration_ms: Duration of the most recent attempt
        retry_count: Index of the most recent attempt
        source_file: Spec file the test lives in
        timestamp: Start of the most recent attempt, else of the run, if known
        run_id: Monotonic run identifier supplied by the runner, if any
        project: Runner project (browser/device profile), if any
        annotations: Raw key/value metadata from the test definition
    """

    __test__ = False

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        str_strip_whitespace=True,
    )

    test_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    feature: str = UNKNOWN
    condition: str = UNKNOWN
    tags: FrozenSet[str] = Field(default_factory=frozenset)
    status: TestStatus
    duration_ms: int = Field(default=0, ge=0)
    retry_count: int = Field(default=0, ge=0)
    source_file: str = ""
    timestamp: Optional[datetime] = None
    run_id: Optional[int] = None
    project: Optional[str] = None
    annotations: Dict[str, str] = Field(default_factory=dict)

    @field_validator('feature', 'condition', mode='before')
    @classmethod
    def _default_unknown(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return UNKNOWN
        return v

    @field_validator('tags', mode='before')
    @classmethod
    def _normalize_tags(cls, v: Any) -> Any:
        if v is None:
            return frozenset()
        if isinstance(v, str):
            v = [v]
        return frozenset(str(tag).strip().lower().lstrip('@') for tag in v if str(tag).strip())

    @field_serializer('tags')
    def _serialize_tags(self, tags: FrozenSet[str]) -> List[str]:
        return sorted(tags)

    def has_tag(self, *names: str) -> bool:
        return any(name in self.tags for name in names)

    @property
    def cell_key(self) -> CellKey:
        return (self.feature, self.condition)


class CoverageCell(_CamelModel):
    """Pass/fail/skip tally for one (feature, condition) pair."""

    feature: str
    condition: str
    total: int = Field(default=0, ge=0)
    passed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    flaky: int = Field(default=0, ge=0)
    test_ids: List[str] = Field(default_factory=list)

    @model_validator(mode='after')
    def _check_conservation(self) -> 'CoverageCell':
        if self.total != self.passed + self.failed + self.skipped:
            raise ValueError(
                f"cell ({self.feature}, {self.condition}) total {self.total} != "
                f"passed {self.passed} + failed {self.failed} + skipped {self.skipped}"
            )
        if self.flaky > self.passed:
            raise ValueError("flaky count cannot exceed passed count")
        return self

    @computed_field
    @property
    def pass_rate(self) -> int:
        return percentage(self.passed, self.total)

    def add(self, record: TestRecord) -> None:
        """Count one record into this cell."""
        if record.status is TestStatus.FAILED:
            self.failed += 1
        elif record.status is TestStatus.SKIPPED:
            self.skipped += 1
        else:
            self.passed += 1
            if record.status is TestStatus.FLAKY:
                self.flaky += 1
        self.total += 1
        self.test_ids.append(record.test_id)


class DefectEntry(_CamelModel):
    """A failing or flaky test turned into a classified defect."""

    id: str
    test_id: str
    title: str = ""
    feature: str = UNKNOWN
    condition: str = UNKNOWN
    status: TestStatus = TestStatus.FAILED
    category: DefectCategory
    severity: DefectSeverity
    risk_level: RiskLevel
    priority: str = ""
    recommendation: str
    is_environmental: bool = False


class GateCheck(_CamelModel):
    name: str
    value: float
    threshold: float
    maximum: bool = False
    unit: str = ""
    passed: bool


class QualityGateResult(_CamelModel):
    verdict: GateVerdict = GateVerdict.FAILED
    checks: List[GateCheck] = Field(default_factory=list)
    passed_count: int = 0
    total_count: int = 0


class QualityMetrics(_CamelModel):
    """Scalar quality indicators derived from the merged record set."""

    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    flaky: int = 0

    pass_rate: int = 0
    defect_density: float = 0.0
    total_duration_ms: int = 0
    avg_duration_ms: float = 0.0
    test_efficiency: int = 0

    risk_distribution: Dict[str, int] = Field(
        default_factory=lambda: {level.value: 0 for level in RiskLevel}
    )
    risk_counts: Dict[str, int] = Field(
        default_factory=lambda: {level.value: 0 for level in RiskLevel}
    )
    risk_pass_rates: Dict[str, int] = Field(
        default_factory=lambda: {level.value: 0 for level in RiskLevel}
    )
    tag_coverage: Dict[str, int] = Field(default_factory=dict)

    business_critical_total: int = 0
    business_critical_passed: int = 0
    business_critical_coverage: int = 0
    revenue_risk: int = 0

    critical_defects: int = 0
    major_defects: int = 0
    minor_defects: int = 0
    environmental_defects: int = 0
    defect_score: int = 100
    mean_time_to_detection: int = 0
    defect_leakage_rate: int = 0
    defect_removal_efficiency: int = 0

    overall_health: int = 0
    health_status: HealthStatus = HealthStatus.CRITICAL

    pass_rate_by_feature: Dict[str, int] = Field(default_factory=dict)
    pass_rate_by_condition: Dict[str, int] = Field(default_factory=dict)

    quality_gate: QualityGateResult = Field(default_factory=QualityGateResult)


class RunSummary(_CamelModel):
    """Overall counts; ``flaky`` is a subset of ``passed``."""

    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    flaky: int = 0

    @classmethod
    def from_records(cls, records: Iterable[TestRecord]) -> 'RunSummary':
        summary = cls()
        for record in records:
            summary.total += 1
            if record.status is TestStatus.FAILED:
                summary.failed += 1
            elif record.status is TestStatus.SKIPPED:
                summary.skipped += 1
            else:
                summary.passed += 1
                if record.status is TestStatus.FLAKY:
                    summary.flaky += 1
        return summary


class Identification(_CamelModel):
    """Opaque identification strings copied from configuration."""

    project_name: str = "Unnamed Project"
    version: Optional[str] = None
    environment: Optional[str] = None
    test_manager: Optional[str] = None
    test_lead: Optional[str] = None
    release_version: Optional[str] = None


class AggregatedSnapshot(_CamelModel):
    """
    The single persisted source of truth.

    ``coverage_matrix``, ``summary``, ``quality_metrics`` and ``defect_list``
    are derived from ``records_by_id`` and are recomputed on every merge.
    """

    schema_version: str = CURRENT_SNAPSHOT_VERSION
    revision: int = Field(default=0, ge=0)
    timestamp: Optional[datetime] = None
    identification: Identification = Field(default_factory=Identification)
    run_ids: List[int] = Field(default_factory=list)
    summary: RunSummary = Field(default_factory=RunSummary)
    records_by_id: Dict[str, TestRecord] = Field(default_factory=dict)
    coverage_matrix: Dict[CellKey, CoverageCell] = Field(default_factory=dict)
    quality_metrics: QualityMetrics = Field(default_factory=QualityMetrics)
    defect_list: List[DefectEntry] = Field(default_factory=list)

    @field_validator('coverage_matrix', mode='before')
    @classmethod
    def _unnest_matrix(cls, v: Any) -> Any:
        if not isinstance(v, dict):
            return v
        flat: Dict[CellKey, Any] = {}
        for key, value in v.items():
            if isinstance(key, tuple):
                flat[key] = value
                continue
            # Nested JSON form: {feature: {condition: cell}}
            for condition, cell in (value or {}).items():
                if isinstance(cell, dict):
                    cell = {"feature": key, "condition": condition, **cell}
                flat[(key, condition)] = cell
        return flat

    @field_serializer('coverage_matrix')
    def _nest_matrix(self, matrix: Dict[CellKey, CoverageCell], info) -> Dict[str, Dict[str, Any]]:
        by_alias = bool(getattr(info, 'by_alias', False))
        mode = getattr(info, 'mode', 'python')
        nested: Dict[str, Dict[str, Any]] = {}
        for (feature, condition) in sorted(matrix):
            cell = matrix[(feature, condition)]
            nested.setdefault(feature, {})[condition] = cell.model_dump(by_alias=by_alias, mode=mode)
        return nested

    @classmethod
    def empty(cls, identification: Optional[Identification] = None) -> 'AggregatedSnapshot':
        return cls(identification=identification or Identification())

    @property
    def records(self) -> List[TestRecord]:
        return list(self.records_by_id.values())

    def to_output_dict(self) -> Dict[str, Any]:
        """
        Return the downstream report schema:
        ``{timestamp, identification, summary, coverageMatrix, qualityMetrics, defectList}``.
        """
        return self.model_dump(
            by_alias=True,
            mode='json',
            include={
                'timestamp', 'identification', 'summary',
                'coverage_matrix', 'quality_metrics', 'defect_list',
            },
        )

    def content_dict(self) -> Dict[str, Any]:
        """Everything except per-write bookkeeping (timestamp, revision, run ids)."""
        return self.model_dump(
            by_alias=True,
            mode='json',
            exclude={'timestamp', 'revision', 'run_ids'},
        )


__all__ = [
    'UNKNOWN',
    'STANDARD',
    'CellKey',
    'utc_now',
    'round_half_up',
    'percentage',
    'TestStatus',
    'RiskLevel',
    'DefectCategory',
    'DefectSeverity',
    'HealthStatus',
    'GateVerdict',
    'TestRecord',
    'CoverageCell',
    'DefectEntry',
    'GateCheck',
    'QualityGateResult',
    'QualityMetrics',
    'RunSummary',
    'Identification',
    'AggregatedSnapshot',
]
