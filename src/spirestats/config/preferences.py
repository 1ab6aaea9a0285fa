"""User preferences management - stored as JSON file."""

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Optional

from spirestats.config.paths import get_data_dir


PREFS_FILENAME = "preferences.json"

# Preferences that change what the statistics cache may hold
STATS_AFFECTING_PREFERENCES = frozenset({"max_cache_size", "low_memory_mode", "show_stats"})


@dataclass
class Preferences:
    """User preferences with defaults."""
    enable_stats_tooltip: bool = True
    precalculate_stats: bool = True
    low_memory_mode: bool = False
    max_cache_size: int = 100
    show_stats: bool = True
    run_folder: Optional[str] = None


def get_prefs_path() -> Path:
    """Get the path to the preferences file."""
    return get_data_dir() / PREFS_FILENAME


def load_preferences(prefs_path: Optional[Path] = None) -> Preferences:
    """Load preferences from file, returning defaults if not found."""
    prefs_path = prefs_path or get_prefs_path()

    if prefs_path.exists():
        try:
            with open(prefs_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return Preferences(
                enable_stats_tooltip=bool(data.get("enable_stats_tooltip", True)),
                precalculate_stats=bool(data.get("precalculate_stats", True)),
                low_memory_mode=bool(data.get("low_memory_mode", False)),
                max_cache_size=max(1, int(data.get("max_cache_size", 100))),
                show_stats=bool(data.get("show_stats", True)),
                run_folder=data.get("run_folder"),
            )
        except (json.JSONDecodeError, OSError, TypeError, ValueError, AttributeError):
            pass

    return Preferences()


def save_preferences(prefs: Preferences, prefs_path: Optional[Path] = None) -> bool:
    """Save preferences to file."""
    prefs_path = prefs_path or get_prefs_path()

    try:
        prefs_path.parent.mkdir(parents=True, exist_ok=True)
        with open(prefs_path, "w", encoding="utf-8") as f:
            json.dump(asdict(prefs), f, indent=2, ensure_ascii=False)
        return True
    except OSError:
        return False


def preference_names() -> set[str]:
    """Names of all known preferences."""
    return {f.name for f in fields(Preferences)}


def update_preference(key: str, value: Any, prefs_path: Optional[Path] = None) -> bool:
    """Update a single preference and save."""
    prefs = load_preferences(prefs_path)

    if key in preference_names():
        setattr(prefs, key, value)
        return save_preferences(prefs, prefs_path)

    return False


def get_preference(key: str, default: Any = None, prefs_path: Optional[Path] = None) -> Any:
    """Get a single preference value."""
    prefs = load_preferences(prefs_path)
    return getattr(prefs, key, default)
