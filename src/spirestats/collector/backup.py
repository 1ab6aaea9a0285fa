"""Periodic JSON snapshots of the run store."""

import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

from spirestats.collector.safe_files import safe_delete_file, safe_write_file
from spirestats.config.logging import get_logger
from spirestats.config.settings import DEFAULT_BACKUP_INTERVAL_SECONDS, DEFAULT_MAX_BACKUPS
from spirestats.db.repository import Repository

logger = get_logger(__name__)

BACKUP_PREFIX = "backup-"


def backup_filename(now: Optional[datetime] = None) -> str:
    """backup-2024-01-31T12-00-00-000000.json"""
    stamp = (now or datetime.now()).isoformat().replace(":", "-").replace(".", "-")
    return f"{BACKUP_PREFIX}{stamp}.json"


def list_backups(backup_dir: Path) -> list[Path]:
    """Existing snapshots, newest first."""
    if not backup_dir.is_dir():
        return []
    return sorted(
        (p for p in backup_dir.iterdir() if p.name.startswith(BACKUP_PREFIX) and p.is_file()),
        key=lambda p: p.name,
        reverse=True,
    )


def create_backup(
    repository: Repository,
    backup_dir: Path,
    max_backups: int = DEFAULT_MAX_BACKUPS,
    now: Optional[datetime] = None,
) -> Path:
    """
    Write a snapshot of every run and setting, then prune old snapshots.

    Args:
        repository: Run store (read only)
        backup_dir: Destination folder (created if needed)
        max_backups: Number of snapshots to keep
        now: Timestamp for the file name (defaults to the current time)

    Returns:
        Path of the new snapshot
    """
    backup_dir.mkdir(parents=True, exist_ok=True)

    payload = {
        "created_at": (now or datetime.now()).isoformat(),
        "runs": [run.to_dict() for run in repository.get_all_runs()],
        "settings": repository.get_all_settings(),
    }
    path = safe_write_file(
        backup_dir / backup_filename(now),
        json.dumps(payload, ensure_ascii=False),
        [backup_dir],
    )
    logger.info(f"Backup created: {path}")

    for old in list_backups(backup_dir)[max_backups:]:
        safe_delete_file(old, [backup_dir])
        logger.info(f"Old backup removed: {old}")

    return path


class BackupScheduler:
    """
    Takes a snapshot on start and then every `interval_seconds`.

    Failures are logged and never reach the caller.
    """

    def __init__(
        self,
        repository: Repository,
        backup_dir: Path,
        interval_seconds: float = DEFAULT_BACKUP_INTERVAL_SECONDS,
        max_backups: int = DEFAULT_MAX_BACKUPS,
    ) -> None:
        self.repository = repository
        self.backup_dir = backup_dir
        self.interval_seconds = interval_seconds
        self.max_backups = max_backups

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.last_backup: Optional[Path] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="backup-scheduler", daemon=True)
        self._thread.start()
        logger.info("Backup interval started")

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def run_once(self) -> Optional[Path]:
        """Take one snapshot, logging instead of raising on failure."""
        try:
            self.last_backup = create_backup(self.repository, self.backup_dir, self.max_backups)
        except Exception as e:
            logger.error(f"Error creating backup: {e}")
            return None
        return self.last_backup

    def _loop(self) -> None:
        self.run_once()
        while not self._stop_event.wait(self.interval_seconds):
            self.run_once()
