"""
Utility functions for environment access and file handling.
"""

from .env_utils import (
    get_env_var,
    get_env_var_as_type,
    get_env_path,
    collect_env_overrides,
)
from .file_utils import (
    PathLike,
    ensure_path,
    safe_load_yaml,
    safe_load_json,
    ensure_directory,
    atomic_write_text,
)

__all__ = [
    'get_env_var',
    'get_env_var_as_type',
    'get_env_path',
    'collect_env_overrides',
    'PathLike',
    'ensure_path',
    'safe_load_yaml',
    'safe_load_json',
    'ensure_directory',
    'atomic_write_text',
]
