"""
Pydantic configuration models for testmatrix.

The configuration has four sections:

- ``project``: opaque identification strings copied into every snapshot
- ``extraction``: keyword tables used to infer feature, condition and tags
- ``quality``: risk thresholds, quality gate thresholds and health bands
- ``storage``: snapshot location and merge policy

Every section has working defaults, so ``EngineConfig()`` is a valid
configuration. Keyword tables default to the tables the test suites were
written against; projects override them in YAML.
"""

import logging
import re
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .versioning import CURRENT_SNAPSHOT_VERSION, is_supported_version

if TYPE_CHECKING:
    from ..models import Identification

logger = logging.getLogger(__name__)


class MergePolicy(str, Enum):
    """How an incoming record replaces a stored record with the same test id."""

    LAST_WRITE = "last_write"
    LATEST_RUN = "latest_run"


class KeywordRule(BaseModel):
    """A case-insensitive regular expression mapped to a value."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    pattern: str = Field(description="Regular expression, matched case-insensitively")
    value: str = Field(min_length=1)

    @field_validator('pattern')
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid regex pattern '{v}': {e}") from e
        return v


def _rules(pairs) -> List[KeywordRule]:
    return [KeywordRule(pattern=pattern, value=value) for pattern, value in pairs]


DEFAULT_FEATURE_RULES = (
    (r"@login\b|\blog ?in\b|\bsign[- ]?in\b", "Authentication"),
    (r"@dashboard\b", "Dashboard Navigation"),
    (r"@details\b", "Profile Management"),
    (r"@addresses\b", "Address Management"),
    (r"@orders\b|\border history\b", "Order History"),
    (r"@wishlist\b|\bwishlist\b", "Wishlist Management"),
    (r"@club\b", "Club Membership"),
    (r"@search\b|\bsearch\b", "Search & Discovery"),
    (r"@plp\b|\bproduct listing\b", "Product Listing"),
    (r"@pdp\b|\bproduct details?\b", "Product Details"),
    (r"@cart\b|\bcart\b|\bcheckout\b", "Shopping Cart"),
    (r"@responsive\b|\bresponsive\b", "Responsive Design"),
    (r"@performance\b", "Performance"),
    (r"@mobile\b", "Mobile Experience"),
    (r"@nav\b|\bnavigation\b|\bmenu\b", "Navigation"),
    (r"\bhome ?page\b", "Homepage"),
    (r"@negative\b", "Negative Testing"),
)

DEFAULT_CONDITION_RULES = (
    (r"\bslow ?3g\b", "Slow3G"),
    (r"\bfast ?3g\b", "Fast3G"),
    (r"\boffline\b", "Offline"),
    (r"@?\bmobile\b", "Mobile"),
    (r"\btablet\b", "Tablet"),
    (r"\bdesktop\b", "Desktop"),
    (r"@negative\b|\binvalid\b", "Negative"),
)

DEFAULT_TAG_RULES = (
    (r"\bsmoke\b", "smoke"),
    (r"\bregression\b", "regression"),
    (r"\bintegration\b", "integration"),
    (r"\bfunctional\b", "functional"),
    (r"(?<![\w-])critical\b", "critical"),
    (r"\bhigh[- ]risk\b|@high\b", "high-risk"),
    (r"\bbusiness[- ]?(critical|impact)\b|\brevenue\b", "business-critical"),
    (r"\bperf(ormance)?\b", "performance"),
    (r"\ba11y\b|\baccessibility\b", "accessibility"),
    (r"\bvisual\b|\bscreenshots?\b|\bbaseline\b", "visual"),
    (r"\bbaseline\b|\btoHaveScreenshot\b", "visual-baseline"),
    (r"\bmobile\b", "mobile"),
    (r"\bnegative\b", "negative"),
    (r"\bslow ?3g\b|\bfast ?3g\b|\bthrottl\w*", "throttled-network"),
)


class ProjectIdentity(BaseModel):
    """Identification block; every value is an opaque string."""

    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)

    name: str = Field(default="Unnamed Project", min_length=1)
    version: Optional[str] = None
    environment: Optional[str] = None
    test_manager: Optional[str] = None
    test_lead: Optional[str] = None
    release_version: Optional[str] = None

    def to_identification(self) -> "Identification":
        from ..models import Identification

        return Identification(
            project_name=self.name,
            version=self.version,
            environment=self.environment,
            test_manager=self.test_manager,
            test_lead=self.test_lead,
            release_version=self.release_version,
        )


class ExtractionRules(BaseModel):
    """
    Keyword tables for pattern inference.

    Rules are evaluated in order and the first match wins for features and
    conditions. Every matching tag rule contributes its tag.
    """

    model_config = ConfigDict(extra="forbid")

    feature_rules: List[KeywordRule] = Field(default_factory=lambda: _rules(DEFAULT_FEATURE_RULES))
    condition_rules: List[KeywordRule] = Field(default_factory=lambda: _rules(DEFAULT_CONDITION_RULES))
    tag_rules: List[KeywordRule] = Field(default_factory=lambda: _rules(DEFAULT_TAG_RULES))
    default_feature: str = "Unknown"
    default_condition: str = "Standard"
    business_critical_features: List[str] = Field(
        default_factory=lambda: ["Cart", "ProductDetails", "Shopping Cart", "Product Details"]
    )
    environmental_tags: List[str] = Field(
        default_factory=lambda: ["throttled-network", "visual-baseline"]
    )
    environmental_conditions: List[str] = Field(
        default_factory=lambda: ["Slow3G", "Fast3G", "Offline"]
    )
    test_id_pattern: str = r"\bTC-\d+\b"

    @field_validator('test_id_pattern')
    @classmethod
    def validate_test_id_pattern(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid test id pattern '{v}': {e}") from e
        return v

    @field_validator('environmental_tags')
    @classmethod
    def lower_tags(cls, v: List[str]) -> List[str]:
        return [tag.strip().lower() for tag in v if tag.strip()]


class QualityThresholds(BaseModel):
    """Risk, quality gate and health thresholds."""

    model_config = ConfigDict(extra="forbid")

    slow_test_threshold_ms: int = Field(default=5000, ge=0)
    min_pass_rate: float = Field(default=95.0, ge=0, le=100)
    max_critical_defects: int = Field(default=0, ge=0)
    max_defect_density: float = Field(default=5.0, ge=0)
    min_test_efficiency: float = Field(default=80.0, ge=0)
    conditional_gate_ratio: float = Field(default=0.75, ge=0, le=1)
    excellent_health: int = Field(default=90, ge=0, le=100)
    good_health: int = Field(default=75, ge=0, le=100)

    @model_validator(mode='after')
    def check_health_bands(self) -> 'QualityThresholds':
        if self.good_health > self.excellent_health:
            raise ValueError("good_health must not exceed excellent_health")
        return self


class StorageSettings(BaseModel):
    """Where the snapshot lives and how records are merged into it."""

    model_config = ConfigDict(extra="forbid")

    snapshot_path: Path = Field(default=Path("reports") / "coverage-snapshot.json")
    merge_policy: MergePolicy = MergePolicy.LAST_WRITE
    indent: Optional[int] = Field(default=2, ge=0)


class EngineConfig(BaseModel):
    """Top-level configuration."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    schema_version: str = Field(default=CURRENT_SNAPSHOT_VERSION)
    project: ProjectIdentity = Field(default_factory=ProjectIdentity)
    extraction: ExtractionRules = Field(default_factory=ExtractionRules)
    quality: QualityThresholds = Field(default_factory=QualityThresholds)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @field_validator('schema_version')
    @classmethod
    def validate_schema_version(cls, v: str) -> str:
        if not is_supported_version(v):
            raise ValueError(
                f"Unsupported schema_version '{v}'; this release reads {CURRENT_SNAPSHOT_VERSION}"
            )
        logger.debug(f"Schema version validated: {v}")
        return v

    def identification(self) -> "Identification":
        return self.project.to_identification()


__all__ = [
    "MergePolicy",
    "KeywordRule",
    "ProjectIdentity",
    "ExtractionRules",
    "QualityThresholds",
    "StorageSettings",
    "EngineConfig",
    "DEFAULT_FEATURE_RULES",
    "DEFAULT_CONDITION_RULES",
    "DEFAULT_TAG_RULES",
]
