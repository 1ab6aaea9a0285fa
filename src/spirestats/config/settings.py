"""Configuration and settings management."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from spirestats.config.paths import get_default_db_path


# Common game installation locations (Steam library folders)
GAME_PATHS = [
    Path("C:/Program Files (x86)/Steam/steamapps/common/SlayTheSpire"),
    Path("C:/Program Files/Steam/steamapps/common/SlayTheSpire"),
    Path("D:/Steam/steamapps/common/SlayTheSpire"),
    Path("D:/SteamLibrary/steamapps/common/SlayTheSpire"),
    Path("E:/SteamLibrary/steamapps/common/SlayTheSpire"),
    Path.home() / "Library/Application Support/Steam/steamapps/common/SlayTheSpire/SlayTheSpire.app/Contents/Resources",
    Path.home() / ".steam/steam/steamapps/common/SlayTheSpire",
    Path.home() / ".local/share/Steam/steamapps/common/SlayTheSpire",
]

# Name of the folder holding one subdirectory per character
RUNS_DIR_NAME = "runs"

# Seconds a new .run file must stay unchanged before the watcher reads it
DEFAULT_QUIESCENCE_SECONDS = 1.0

# Snapshot schedule
DEFAULT_BACKUP_INTERVAL_SECONDS = 24 * 60 * 60
DEFAULT_MAX_BACKUPS = 7

# Derived statistics expire an hour after the last full invalidation
DEFAULT_CACHE_TTL_SECONDS = 60 * 60


def resolve_run_folder(user_path: str) -> Optional[Path]:
    """
    Resolve a user-provided path to the game's runs folder.

    Accepts either the runs folder itself or the game installation
    directory that contains it.

    Args:
        user_path: Any path the user provides

    Returns:
        Path to the runs folder if found, None otherwise
    """
    path = Path(user_path).expanduser()

    if not path.is_dir():
        return None

    if path.name.lower() == RUNS_DIR_NAME:
        return path

    candidate = path / RUNS_DIR_NAME
    if candidate.is_dir():
        return candidate

    return None


def find_run_folder(custom_dir: Optional[str] = None) -> Optional[Path]:
    """
    Auto-detect the runs folder.

    Checks the custom directory first (if provided), then common Steam
    library locations.
    """
    if custom_dir:
        resolved = resolve_run_folder(custom_dir)
        if resolved:
            return resolved

    for game_path in GAME_PATHS:
        candidate = game_path / RUNS_DIR_NAME
        if candidate.is_dir():
            return candidate
    return None


@dataclass
class Settings:
    """Application settings."""

    # Folder containing IRONCLAD/, THE_SILENT/, DEFECT/, WATCHER/
    run_folder: Optional[Path] = None

    # Path to database file
    db_path: Path = field(default_factory=get_default_db_path)

    # Use portable mode (./data under the working directory)
    portable: bool = False

    # Watcher stability window (seconds)
    quiescence_seconds: float = DEFAULT_QUIESCENCE_SECONDS

    # Snapshot cadence and retention
    backup_interval_seconds: float = DEFAULT_BACKUP_INTERVAL_SECONDS
    max_backups: int = DEFAULT_MAX_BACKUPS

    # Global lifetime of cached statistics
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS

    def __post_init__(self) -> None:
        if self.portable:
            self.db_path = get_default_db_path(portable=True)

        if self.run_folder is None:
            self.run_folder = find_run_folder(os.environ.get("SPIRESTATS_RUN_FOLDER"))

    @classmethod
    def from_args(
        cls,
        run_folder: Optional[str] = None,
        db_path: Optional[str] = None,
        portable: bool = False,
    ) -> "Settings":
        """
        Create settings from CLI arguments.

        Args:
            run_folder: Override runs folder
            db_path: Override database path
            portable: Use portable mode
        """
        return cls(
            run_folder=Path(run_folder) if run_folder else None,
            db_path=Path(db_path) if db_path else get_default_db_path(portable=portable),
            portable=portable,
        )

    def validate(self) -> list[str]:
        """
        Validate settings.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        if self.run_folder and not self.run_folder.is_dir():
            errors.append(f"Run folder not found: {self.run_folder}")

        if self.quiescence_seconds <= 0:
            errors.append("Quiescence window must be positive")

        if self.backup_interval_seconds <= 0:
            errors.append("Backup interval must be positive")

        if self.max_backups < 1:
            errors.append("At least one backup must be retained")

        if self.cache_ttl_seconds <= 0:
            errors.append("Cache lifetime must be positive")

        return errors
