"""
Environment variable utilities for configuration and runtime settings.

Standardized functions for reading environment variables with type conversion,
default values and consistent error handling.
"""

import os
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, TypeVar

from loguru import logger

T = TypeVar('T')


def get_env_var(
    name: str,
    default: Optional[str] = None,
    required: bool = False,
    environ: Optional[Mapping[str, str]] = None
) -> Optional[str]:
    """
    Get an environment variable with consistent error handling.

    Blank values are treated as unset.

    Args:
        name: Name of the environment variable
        default: Default value to return if not found
        required: If True, raise an error if not found
        environ: Mapping to read from (defaults to ``os.environ``)

    Returns:
        Value of the environment variable or default

    Raises:
        ValueError: If required is True and the variable is not set
    """
    source = os.environ if environ is None else environ
    value = source.get(name)

    if value is None or not value.strip():
        if required:
            raise ValueError(f"Required environment variable {name} is not set")
        return default

    return value.strip()


def get_env_var_as_type(
    name: str,
    default: Optional[T] = None,
    required: bool = False,
    converter: Callable[[str], T] = str,
    environ: Optional[Mapping[str, str]] = None
) -> Optional[T]:
    """
    Get an environment variable and convert it to a specific type.

    Raises:
        ValueError: If required is True and the variable is not set, or if conversion fails
    """
    value = get_env_var(name, default=None, required=required, environ=environ)

    if value is None:
        return default

    try:
        return converter(value)
    except Exception as e:
        msg = f"Failed to convert environment variable {name}={value} using {converter.__name__}"
        logger.error(f"{msg}: {str(e)}")
        raise ValueError(f"{msg}: {str(e)}") from e


def get_env_path(
    name: str,
    default: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None
) -> Optional[Path]:
    """Get an environment variable as a user-expanded :class:`Path`."""
    return get_env_var_as_type(
        name,
        default=default,
        converter=lambda value: Path(value).expanduser(),
        environ=environ,
    )


def collect_env_overrides(
    mapping: Mapping[str, str],
    environ: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    """
    Read a set of variables at once.

    Args:
        mapping: Environment variable name -> dotted configuration key
        environ: Mapping to read from (defaults to ``os.environ``)

    Returns:
        Dotted configuration key -> value, for variables that are set
    """
    overrides = {}
    for env_name, key in mapping.items():
        value = get_env_var(env_name, environ=environ)
        if value is not None:
            logger.debug(f"Environment override {env_name} -> {key}")
            overrides[key] = value
    return overrides
