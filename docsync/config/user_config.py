"""
Application data directory resolution.
"""

import os
from pathlib import Path


APP_DIR_ENV = "DOCSYNC_HOME"
DEFAULT_APP_DIR = ".docsync"
DB_FILENAME = "docsync.db"


def get_app_data_dir() -> Path:
    """
    Get the application data directory, creating it if needed.

    Uses $DOCSYNC_HOME when set, otherwise ~/.docsync.

    Returns:
        Path to app data directory
    """
    override = os.getenv(APP_DIR_ENV)
    path = Path(override).expanduser() if override else Path.home() / DEFAULT_APP_DIR
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_db_path() -> Path:
    """Get path to the local key/value database."""
    return get_app_data_dir() / DB_FILENAME
