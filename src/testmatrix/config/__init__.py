"""
Configuration for testmatrix: pydantic models, YAML/env loading and
snapshot schema versioning.
"""

from .versioning import CURRENT_SNAPSHOT_VERSION, is_supported_version, parse_schema_version
from .models import (
    EngineConfig,
    ExtractionRules,
    KeywordRule,
    MergePolicy,
    ProjectIdentity,
    QualityThresholds,
    StorageSettings,
)
from .loader import ENV_OVERRIDES, apply_env_overrides, load_config

__all__ = [
    "CURRENT_SNAPSHOT_VERSION",
    "is_supported_version",
    "parse_schema_version",
    "EngineConfig",
    "ExtractionRules",
    "KeywordRule",
    "MergePolicy",
    "ProjectIdentity",
    "QualityThresholds",
    "StorageSettings",
    "ENV_OVERRIDES",
    "apply_env_overrides",
    "load_config",
]
