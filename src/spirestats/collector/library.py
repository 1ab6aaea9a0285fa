"""RunLibrary - the boundary the API and CLI talk to."""

import json
import threading
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from spirestats.collector.ingestor import IngestReport, RunIngestor
from spirestats.collector.safe_files import safe_write_file
from spirestats.collector.watcher import RunCallback, RunWatcher
from spirestats.config.logging import get_logger
from spirestats.config.paths import get_data_dir
from spirestats.config.preferences import (
    STATS_AFFECTING_PREFERENCES,
    Preferences,
    load_preferences,
    preference_names,
    save_preferences,
)
from spirestats.core.models import AllCharacterStats, Run
from spirestats.core.neow_stats import NeowStats, compute_neow_stats
from spirestats.core.stats_cache import StatsCache, StatsPrewarmer
from spirestats.db.connection import Database
from spirestats.db.repository import RUN_FOLDER_SETTING, Repository
from spirestats.parser.run_parser import RunParseError, run_from_dict

logger = get_logger(__name__)

EXPORT_DIR_NAME = "exports"


class RunLibrary:
    """
    Owns the run store, the ingestor, the statistics cache and the watcher.

    Every change to the stored run set (ingest, import, delete) drops the
    cached statistics and the in-memory run snapshot.
    """

    def __init__(
        self,
        db: Database,
        stats_cache: Optional[StatsCache] = None,
        watcher: Optional[RunWatcher] = None,
        preferences: Optional[Preferences] = None,
        prefs_path: Optional[Path] = None,
        data_dir: Optional[Path] = None,
    ) -> None:
        self.db = db
        self.repository = Repository(db)
        self.prefs_path = prefs_path
        self.preferences = preferences or load_preferences(prefs_path)
        self.data_dir = data_dir or get_data_dir()

        self.stats_cache = stats_cache or StatsCache(max_size=self.preferences.max_cache_size)
        self.watcher = watcher or RunWatcher()
        self.ingestor = RunIngestor(self.repository, on_runs_changed=self.invalidate)

        self._lock = threading.Lock()
        self._runs_snapshot: Optional[list[Run]] = None
        self._prewarmer: Optional[StatsPrewarmer] = None
        self.last_report: Optional[IngestReport] = None

    # --- Runs ---

    def load_run_files(self, folder: Path) -> list[Run]:
        """Ingest a run folder and return every stored run, newest first."""
        return self.ingest(folder).runs

    def ingest(self, folder: Path) -> IngestReport:
        folder = Path(folder)
        report = self.ingestor.ingest_with_report(folder)
        self.last_report = report

        self.repository.set_setting(RUN_FOLDER_SETTING, str(folder))
        if self.preferences.run_folder != str(folder):
            self.preferences.run_folder = str(folder)
            save_preferences(self.preferences, self.prefs_path)

        with self._lock:
            self._runs_snapshot = report.runs
        return report

    def get_all_runs(self) -> list[Run]:
        """Stored runs, newest first. Reads the store, never scans files."""
        return self._runs_with_generation()[0]

    def _runs_with_generation(self) -> tuple[list[Run], int]:
        with self._lock:
            generation = self.stats_cache.generation
            if self._runs_snapshot is None:
                self._runs_snapshot = self.repository.get_all_runs()
            return self._runs_snapshot, generation

    def get_run(self, run_id: str) -> Optional[Run]:
        return self.repository.get_run(run_id)

    def get_run_folder(self) -> Optional[str]:
        return self.repository.get_setting(RUN_FOLDER_SETTING) or self.preferences.run_folder

    def delete_run(self, run_id: str) -> bool:
        deleted = self.repository.delete_run(run_id)
        if deleted:
            logger.info(f"Deleted run {run_id}")
            self.invalidate()
        return deleted

    def invalidate(self) -> None:
        """Drop the run snapshot and every cached statistic."""
        with self._lock:
            self._runs_snapshot = None
            self.stats_cache.invalidate()

    # --- Statistics ---

    def stats_for_card(self, card_key: str) -> AllCharacterStats:
        runs, generation = self._runs_with_generation()
        return self.stats_cache.stats_for_card(card_key, runs, generation)

    def stats_for_relic(self, relic_key: str) -> AllCharacterStats:
        runs, generation = self._runs_with_generation()
        return self.stats_cache.stats_for_relic(relic_key, runs, generation)

    def neow_stats(self) -> NeowStats:
        """Neow bonus choices and heart wins per character and overall."""
        return compute_neow_stats(self.get_all_runs())

    def start_prewarm(self, **kwargs: Any) -> bool:
        """
        Fill the cache with popular items in the background.

        Skipped when precalculation is disabled or low-memory mode is on.
        """
        prefs = self.preferences
        if not prefs.precalculate_stats or prefs.low_memory_mode:
            logger.info("Stats prewarm skipped by preferences")
            return False

        if self._prewarmer is not None:
            self._prewarmer.stop()
        self._prewarmer = StatsPrewarmer(self.stats_cache, self.get_all_runs, **kwargs)
        self._prewarmer.start()
        return True

    # --- Watcher ---

    def on_new_run_detected(self, callback: Optional[RunCallback]) -> None:
        """Subscribe to runs reported by the watcher (one subscriber)."""
        self.watcher.subscribe(callback)

    def start_watching(self, folder: Path) -> bool:
        return self.watcher.start(Path(folder))

    def stop_watching(self) -> None:
        self.watcher.stop()

    # --- Export / import ---

    def export_all(self, path: Optional[Path] = None) -> Path:
        """
        Write every stored run to a JSON file inside the data directory.

        Raises:
            PathTraversalError: path lies outside the data directory
        """
        if path is None:
            stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
            path = self.data_dir / EXPORT_DIR_NAME / f"runs-{stamp}.json"

        runs = self.repository.get_all_runs()
        content = json.dumps([run.to_dict() for run in runs], ensure_ascii=False, indent=2)
        written = safe_write_file(path, content, [self.data_dir])
        logger.info(f"Exported {len(runs)} runs to {written}")
        return written

    def import_all(self, path: Path) -> int:
        """
        Insert or replace runs from an export (or backup) file, keyed by id.

        Raises:
            FileNotFoundError: path does not exist
            ValueError: file is not a valid export
        """
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Import file not found: {path}")

        data = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(data, dict):
            data = data.get("runs")
        if not isinstance(data, list):
            raise RunParseError("Import file must hold a list of runs")

        runs = [run_from_dict(entry) for entry in data]
        count = self.repository.upsert_runs_batch(runs)
        logger.info(f"Imported {count} runs from {path}")
        self.invalidate()
        return count

    # --- Preferences ---

    def update_preferences(self, **changes: Any) -> Preferences:
        """
        Apply and persist preference changes.

        Changes to cache-related preferences invalidate the statistics cache.

        Raises:
            ValueError: Unknown preference name or invalid cache size
        """
        unknown = set(changes) - preference_names()
        if unknown:
            raise ValueError(f"Unknown preferences: {', '.join(sorted(unknown))}")

        if "max_cache_size" in changes:
            changes["max_cache_size"] = int(changes["max_cache_size"])
            if changes["max_cache_size"] < 1:
                raise ValueError("max_cache_size must be at least 1")

        current = asdict(self.preferences)
        changed = {k for k, v in changes.items() if current.get(k) != v}
        for key in changed:
            setattr(self.preferences, key, changes[key])

        if changed:
            save_preferences(self.preferences, self.prefs_path)

        if "max_cache_size" in changed:
            self.stats_cache.set_max_size(self.preferences.max_cache_size)
        elif changed & STATS_AFFECTING_PREFERENCES:
            self.stats_cache.invalidate()

        return self.preferences

    # --- Lifecycle ---

    def status(self) -> dict[str, Any]:
        watched = self.watcher.watched_path
        return {
            "run_count": self.repository.get_run_count(),
            "db_path": str(self.db.db_path),
            "run_folder": self.get_run_folder(),
            "watching": self.watcher.is_watching,
            "watched_path": str(watched) if watched else None,
            "cache": self.stats_cache.info(),
        }

    def close(self) -> None:
        if self._prewarmer is not None:
            self._prewarmer.stop()
            self._prewarmer = None
        self.watcher.stop()
