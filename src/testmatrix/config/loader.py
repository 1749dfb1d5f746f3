"""
Configuration loading.

``load_config`` accepts a YAML path, an already-parsed dictionary, an
``EngineConfig`` or nothing at all. Environment overrides are applied last,
so ``TESTMATRIX_*`` variables win over file values.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from ..core.utils import collect_env_overrides, get_env_path, safe_load_yaml
from ..exceptions import ConfigError
from .models import EngineConfig

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "TESTMATRIX_CONFIG"

ENV_OVERRIDES = {
    "TESTMATRIX_PROJECT_NAME": "project.name",
    "TESTMATRIX_VERSION": "project.version",
    "TESTMATRIX_RELEASE_VERSION": "project.release_version",
    "TESTMATRIX_ENVIRONMENT": "project.environment",
    "TESTMATRIX_TEST_MANAGER": "project.test_manager",
    "TESTMATRIX_TEST_LEAD": "project.test_lead",
    "TESTMATRIX_SNAPSHOT_PATH": "storage.snapshot_path",
    "TESTMATRIX_MERGE_POLICY": "storage.merge_policy",
}

ConfigSource = Union[str, Path, Dict[str, Any], EngineConfig, None]


def _set_dotted(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    section, _, key = dotted_key.partition(".")
    node = target.setdefault(section, {})
    if not isinstance(node, dict):
        raise ConfigError(
            f"Configuration section '{section}' must be a mapping",
            error_code="CONFIG_003",
            context={"section": section, "actual_type": type(node).__name__},
        )
    node[key] = value


def apply_env_overrides(
    raw_config: Dict[str, Any],
    environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """
    Return a copy of ``raw_config`` with ``TESTMATRIX_*`` overrides applied.

    Args:
        raw_config: Configuration dictionary before validation
        environ: Mapping to read from (defaults to ``os.environ``)
    """
    merged = copy.deepcopy(raw_config)
    for dotted_key, value in collect_env_overrides(ENV_OVERRIDES, environ=environ).items():
        _set_dotted(merged, dotted_key, value)
    return merged


def _read_yaml(config_path: Path) -> Dict[str, Any]:
    try:
        raw_config = safe_load_yaml(config_path)
    except FileNotFoundError as e:
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            error_code="CONFIG_001",
            context={"path": str(config_path)},
        ) from e
    except ValueError as e:
        raise ConfigError(
            f"Configuration file is not valid YAML: {config_path}",
            error_code="CONFIG_002",
            context={"path": str(config_path), "error": str(e)},
        ) from e

    if not isinstance(raw_config, dict):
        raise ConfigError(
            f"Configuration file must contain a mapping, got {type(raw_config).__name__}",
            error_code="CONFIG_002",
            context={"path": str(config_path)},
        )
    logger.debug(f"Raw YAML configuration loaded from {config_path}")
    return raw_config


def load_config(
    source: ConfigSource = None,
    environ: Optional[Mapping[str, str]] = None,
    apply_env: bool = True
) -> EngineConfig:
    """Load and validate the engine configuration.

    Precedence, lowest first: model defaults, the YAML file or dictionary,
    then environment overrides. When ``source`` is None the path in
    ``TESTMATRIX_CONFIG`` is used if set.

    Args:
        source: YAML path, configuration dictionary, ``EngineConfig`` or None
        environ: Environment mapping used for overrides (defaults to ``os.environ``)
        apply_env: Set to False to ignore environment overrides

    Returns:
        EngineConfig: The validated configuration

    Raises:
        ConfigError: CONFIG_001 missing file, CONFIG_002 unparsable file,
            CONFIG_003 validation failure, CONFIG_004 unsupported source type
    """
    if source is None:
        source = get_env_path(CONFIG_PATH_ENV, environ=environ)

    if source is None:
        raw_config: Dict[str, Any] = {}
    elif isinstance(source, EngineConfig):
        raw_config = source.model_dump(mode="python")
    elif isinstance(source, dict):
        logger.debug("Processing dictionary-based configuration input")
        raw_config = source
    elif isinstance(source, (str, Path)):
        raw_config = _read_yaml(Path(source))
    else:
        raise ConfigError(
            f"Invalid configuration source type: {type(source).__name__}",
            error_code="CONFIG_004",
            context={"actual_type": type(source).__name__},
        )

    if apply_env:
        raw_config = apply_env_overrides(raw_config, environ=environ)

    try:
        config = EngineConfig.model_validate(raw_config)
    except ValidationError as e:
        error_details = []
        for error in e.errors():
            field_path = " -> ".join(str(loc) for loc in error['loc'])
            error_details.append(f"Field '{field_path}': {error['msg']}")

        detailed_error = "Configuration validation failed:\n" + "\n".join(error_details)
        logger.error(detailed_error)
        raise ConfigError(
            detailed_error,
            error_code="CONFIG_003",
            context={"validation_errors": error_details},
        ) from e

    logger.info(f"Configuration loaded for project '{config.project.name}'")
    return config


__all__ = ["load_config", "apply_env_overrides", "ENV_OVERRIDES", "CONFIG_PATH_ENV"]
