"""
File handling utilities for safe operations on files and directories.

- ``safe_load_yaml`` / ``safe_load_json`` read structured files with explicit errors
- ``atomic_write_text`` replaces a file in one step so readers never see a
  partially written document
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from loguru import logger

PathLike = Union[str, Path]


def ensure_path(path: PathLike) -> Path:
    return path if isinstance(path, Path) else Path(path)


def safe_load_yaml(file_path: PathLike, default: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Load a YAML file with explicit error handling.

    Args:
        file_path: Path to the YAML file to load
        default: Value returned for an empty file (defaults to empty dict)

    Returns:
        The parsed document, or ``default`` if the file is empty

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file cannot be parsed as YAML
    """
    if default is None:
        default = {}

    path = ensure_path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            result = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Failed to load YAML file {path}: {str(e)}")
        raise ValueError(f"Failed to load YAML file: {str(e)}") from e

    if result is None:
        logger.warning(f"YAML file is empty or contains only comments: {path}")
        return default
    return result


def safe_load_json(file_path: PathLike) -> Any:
    """
    Load a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid JSON or not valid UTF-8
    """
    path = ensure_path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"JSON file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValueError(f"Failed to parse JSON file {path}: {str(e)}") from e


def ensure_directory(directory: PathLike) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Raises:
        ValueError: If the path exists but is a file
    """
    dir_path = ensure_path(directory)
    if dir_path.exists() and not dir_path.is_dir():
        raise ValueError(f"Path exists but is not a directory: {dir_path}")
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def atomic_write_text(file_path: PathLike, text: str, encoding: str = 'utf-8') -> Path:
    """
    Write ``text`` to ``file_path`` through a temporary file in the same
    directory followed by ``os.replace``.

    On failure the temporary file is removed and the original file, if any,
    is left untouched.

    Raises:
        OSError: If the directory cannot be created or the file cannot be written
    """
    path = ensure_path(file_path)
    directory = ensure_directory(path.parent)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, 'w', encoding=encoding) as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise

    logger.debug(f"Wrote {len(text)} characters to {path}")
    return path
