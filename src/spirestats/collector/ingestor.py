"""Ingestor - scans a run folder and merges new runs into the store."""

import uuid
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Optional

from spirestats.collector.safe_files import PathTraversalError, safe_read_file
from spirestats.config.logging import get_logger
from spirestats.core.models import ALL_CHARACTERS, Character, Run
from spirestats.db.repository import Repository
from spirestats.parser.run_parser import RUN_FILE_EXTENSION, RunParseError, parse_run_file

logger = get_logger(__name__)


@dataclass
class IngestReport:
    """Outcome of one ingest pass."""

    runs: list[Run] = field(default_factory=list)
    inserted: list[str] = field(default_factory=list)
    duplicates: list[Path] = field(default_factory=list)
    failed: list[Path] = field(default_factory=list)
    rejected: list[Path] = field(default_factory=list)

    @property
    def scanned(self) -> int:
        return len(self.inserted) + len(self.duplicates) + len(self.failed) + len(self.rejected)

    def to_dict(self) -> dict:
        return {
            "total_runs": len(self.runs),
            "scanned": self.scanned,
            "inserted": len(self.inserted),
            "duplicates": len(self.duplicates),
            "failed": len(self.failed),
            "rejected": len(self.rejected),
        }


class RunIngestor:
    """
    Walks the per-character subfolders of a run folder and stores new runs.

    Files are deduplicated by timestamp: a run whose timestamp is already
    stored is skipped, so repeated ingests of the same folder are no-ops.
    """

    def __init__(
        self,
        repository: Repository,
        on_runs_changed: Optional[Callable[[], None]] = None,
    ) -> None:
        """
        Args:
            repository: Run store
            on_runs_changed: Called once after a pass that inserted runs
        """
        self.repository = repository
        self._on_runs_changed = on_runs_changed

    def iter_run_files(self, root: Path) -> list[tuple[Path, Character]]:
        """List (file, character) pairs in scan order."""
        found = []
        for character in ALL_CHARACTERS:
            for folder_name in character.folder_names:
                folder = root / folder_name
                if not folder.is_dir():
                    continue
                files = sorted(
                    p for p in folder.iterdir()
                    if p.name.endswith(RUN_FILE_EXTENSION) and not p.is_dir()
                )
                found.extend((path, character) for path in files)
        return found

    def _resolve_id_collision(self, run: Run, path: Path) -> Run:
        """
        Give a run a fresh id when its file stem is already used by a stored
        run with a different timestamp (same stem in two character folders).

        The payload's play_id is preferred, then a random id.
        """
        existing = self.repository.get_run(run.id)
        if existing is None or existing.timestamp == run.timestamp:
            return run
        if self.repository.get_run_by_timestamp(run.timestamp) is not None:
            return run

        play_id = run.run_data.extra.get("play_id")
        if isinstance(play_id, str) and play_id and self.repository.get_run(play_id) is None:
            new_id = play_id
        else:
            new_id = uuid.uuid4().hex
        logger.warning(f"Run id {run.id} already taken, storing {path} as {new_id}")
        return replace(run, id=new_id)

    def ingest_with_report(self, root: Path) -> IngestReport:
        """
        Scan root and insert every run not yet stored.

        Per-file problems (escaping paths, unreadable or malformed files,
        duplicates) are logged and counted. Storage errors propagate.

        Raises:
            FileNotFoundError: root does not exist or is not a directory
        """
        root = Path(root)
        if not root.is_dir():
            raise FileNotFoundError(f"Run folder not found: {root}")

        report = IngestReport()

        for path, character in self.iter_run_files(root):
            try:
                content = safe_read_file(path, [root])
            except PathTraversalError as e:
                logger.error(f"Rejected run file outside {root}: {e}")
                report.rejected.append(path)
                continue
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Could not read {path}: {e}")
                report.failed.append(path)
                continue

            try:
                run = parse_run_file(path, content, character=character)
            except RunParseError as e:
                logger.warning(f"Skipping malformed run file {path}: {e}")
                report.failed.append(path)
                continue

            run = self._resolve_id_collision(run, path)
            if self.repository.insert_run_if_absent(run):
                report.inserted.append(run.id)
            else:
                logger.debug(f"Duplicate run timestamp {run.timestamp}: {path.name}")
                report.duplicates.append(path)

        report.runs = self.repository.get_all_runs()

        logger.info(
            f"Ingested {root}: {len(report.inserted)} new, "
            f"{len(report.duplicates)} duplicate, {len(report.failed)} failed, "
            f"{len(report.rejected)} rejected ({len(report.runs)} stored)"
        )

        if report.inserted and self._on_runs_changed:
            self._on_runs_changed()

        return report

    def ingest(self, root: Path) -> list[Run]:
        """Scan root and return every stored run, newest first."""
        return self.ingest_with_report(root).runs
