"""Utility functions for reader-sync."""

from .http import create_session
from .paths import (
    get_project_dir,
    slugify,
    get_config_file_path,
    get_state_file_path,
    get_log_dir,
)

__all__ = [
    "create_session",
    "get_project_dir",
    "slugify",
    "get_config_file_path",
    "get_state_file_path",
    "get_log_dir",
]
