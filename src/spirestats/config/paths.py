"""Data directory resolution for installed and portable modes."""

import os
from pathlib import Path

# Overrides every other location when set (tests, custom installs)
DATA_DIR_ENV = "SPIRESTATS_DATA_DIR"

APP_DIR_NAME = "SpireStats"
PORTABLE_DIR_NAME = "data"
BACKUP_DIR_NAME = "backups"


def get_portable_dir() -> Path:
    """Portable data lives in ./data under the current working directory."""
    return Path.cwd() / PORTABLE_DIR_NAME


def get_data_dir(portable: bool = False) -> Path:
    """
    Get the data directory for storing the database, logs and backups.

    Args:
        portable: If True, use ./data under the working directory

    Returns:
        Path to data directory (created if needed)
    """
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        data_dir = Path(override)
    elif portable:
        data_dir = get_portable_dir()
    else:
        local_app_data = os.environ.get("LOCALAPPDATA", "")
        if local_app_data:
            data_dir = Path(local_app_data) / APP_DIR_NAME
        else:
            data_dir = Path.home() / ".spirestats"

    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_backup_dir(portable: bool = False) -> Path:
    """Get the directory holding periodic database snapshots."""
    return get_data_dir(portable=portable) / BACKUP_DIR_NAME


def get_default_db_path(portable: bool = False) -> Path:
    """Get the default database path inside the data directory."""
    return get_data_dir(portable=portable) / "spirestats.db"
