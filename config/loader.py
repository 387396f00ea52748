"""Configuration loading utilities."""

import json
import logging
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

from .defaults import GLOBAL_CONFIG_DIR, GLOBAL_CONFIG_FILE, PROJECT_CONFIG_FILES
from .main_config import Config

logger = logging.getLogger(__name__)


def strip_jsonc_comments(content: str) -> str:
    """
    Strip comments from JSONC content to convert to valid JSON.

    Handles:
    - Single-line comments: // comment
    - Multi-line comments: /* comment */

    Comment markers inside string literals (``"https://..."``) are kept.

    Args:
        content: JSONC content string

    Returns:
        JSON string with comments removed
    """
    pattern = re.compile(r'("(?:\\.|[^"\\])*")|//[^\n]*|/\*.*?\*/', re.DOTALL)
    return pattern.sub(lambda m: m.group(1) or "", content)


def load_config_file(path: Path) -> dict[str, Any] | None:
    """
    Load a config file from the given path.

    Supports both .json and .jsonc files with comment stripping.

    Args:
        path: Path to the config file

    Returns:
        Parsed config dictionary or None if file doesn't exist
    """
    if not path.exists():
        return None

    try:
        content = path.read_text()
        if path.suffix == ".jsonc":
            content = strip_jsonc_comments(content)
        return json.loads(content)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to load config from %s: %s", path, e)
        return None


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two configuration dictionaries.

    Args:
        base: Base configuration
        override: Override configuration (takes precedence)

    Returns:
        Merged configuration dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def load_config(project_root: Path | None = None, global_dir: Path | None = None) -> Config:
    """
    Load configuration from multiple sources with precedence.

    Looks for config files in the following order:
    1. Project-level: agent.jsonc, agent.json, .agent/config.jsonc (first found)
    2. Global: ~/.agent/config.jsonc

    Project config is merged with and takes precedence over global config.

    Args:
        project_root: Project root directory (defaults to current working directory)
        global_dir: Directory holding the global config (defaults to ~/.agent)

    Returns:
        Loaded and merged Config model
    """
    if project_root is None:
        project_root = Path.cwd()
    if global_dir is None:
        global_dir = Path(GLOBAL_CONFIG_DIR).expanduser()

    config_data = load_config_file(global_dir / GLOBAL_CONFIG_FILE) or {}

    for name in PROJECT_CONFIG_FILES:
        project_config = load_config_file(project_root / name)
        if project_config:
            config_data = merge_configs(config_data, project_config)
            break

    return Config(**config_data)


def get_working_directory() -> str:
    """
    Get the working directory from environment or default to cwd.

    Returns:
        The working directory path as a string
    """
    return os.environ.get("WORKING_DIR", os.getcwd())


@lru_cache(maxsize=1)
def get_config(project_root: Path | None = None) -> Config:
    """
    Get cached configuration.

    This function caches the config to avoid repeated file I/O.
    To reload the config, clear the cache with get_config.cache_clear().

    Args:
        project_root: Project root directory (defaults to current working directory)

    Returns:
        Cached Config model
    """
    root = project_root or Path.cwd()
    return load_config(root)
