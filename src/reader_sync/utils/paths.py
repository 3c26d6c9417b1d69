"""Path utilities for reader-sync."""

import os
import re
from pathlib import Path

HOME_ENV_VAR = "READER_SYNC_HOME"
DEFAULT_HOME = "~/.reader-sync"


def slugify(name: str) -> str:
    """
    Normalize an account name to slug format.

    Rules:
    - Convert to lowercase
    - Replace all hyphens with underscores
    - Replace any sequence of non-alphanumeric characters with a single underscore
    - Trim leading/trailing underscores

    Args:
        name: The name to slugify

    Returns:
        The slugified name
    """
    slug = name.lower()
    slug = slug.replace('-', '_')
    slug = re.sub(r'[^a-zA-Z0-9_]+', '_', slug)
    slug = slug.strip('_')

    return slug or "default"


def get_project_dir() -> Path:
    """
    Get the data directory, from ``READER_SYNC_HOME`` or ``~/.reader-sync``.

    Returns:
        Path to the data directory (created if missing)
    """
    data_dir = Path(os.environ.get(HOME_ENV_VAR) or DEFAULT_HOME).expanduser()
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_config_file_path() -> Path:
    """Get the path to the configuration file."""
    return get_project_dir() / "config.yaml"


def get_state_file_path() -> Path:
    """Get the path to the state file."""
    return get_project_dir() / "state.json"


def get_log_dir() -> Path:
    """Get the log directory path."""
    log_dir = get_project_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir
