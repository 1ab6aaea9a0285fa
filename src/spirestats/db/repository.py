"""Repository - CRUD operations for runs and settings."""

import json
from datetime import datetime
from typing import Optional

from spirestats.core.models import Character, Run
from spirestats.db.connection import Database
from spirestats.parser.run_parser import run_data_from_dict


# Settings key remembering the last ingested folder
RUN_FOLDER_SETTING = "run_folder_path"

_RUN_COLUMNS = (
    "id, character, victory, ascension_level, floor_reached, "
    "playtime, score, timestamp, run_data"
)


class Repository:
    """Data access layer for runs and settings."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # --- Settings ---

    def get_setting(self, key: str) -> Optional[str]:
        """Get a setting value by key."""
        row = self.db.fetchone("SELECT value FROM settings WHERE key = ?", (key,))
        return row["value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        """Set a setting value."""
        self.db.execute(
            "INSERT OR REPLACE INTO settings (key, value, updated_at) VALUES (?, ?, ?)",
            (key, value, datetime.now().isoformat()),
        )

    def get_all_settings(self) -> dict[str, str]:
        rows = self.db.fetchall("SELECT key, value FROM settings ORDER BY key")
        return {row["key"]: row["value"] for row in rows}

    # --- Runs ---

    @staticmethod
    def _run_params(run: Run) -> tuple:
        return (
            run.id,
            run.character.value,
            1 if run.victory else 0,
            run.ascension_level,
            run.floor_reached,
            run.playtime,
            run.score,
            run.timestamp,
            json.dumps(run.run_data.to_dict(), ensure_ascii=False),
        )

    def insert_run_if_absent(self, run: Run) -> bool:
        """
        Insert a run unless one with the same timestamp is already stored.

        The existence check and the insert share one transaction.

        Returns:
            True if inserted, False if skipped as a duplicate
        """
        with self.db.transaction() as cursor:
            cursor.execute("SELECT 1 FROM runs WHERE timestamp = ? LIMIT 1", (run.timestamp,))
            if cursor.fetchone() is not None:
                return False
            cursor.execute(
                f"INSERT INTO runs ({_RUN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                self._run_params(run),
            )
        return True

    def insert_run(self, run: Run) -> None:
        """Insert a new run. Raises sqlite3.IntegrityError on an id conflict."""
        self.db.execute(
            f"INSERT INTO runs ({_RUN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            self._run_params(run),
        )

    def upsert_run(self, run: Run) -> None:
        """Insert or replace a run keyed by id."""
        self.db.execute(
            f"INSERT OR REPLACE INTO runs ({_RUN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            self._run_params(run),
        )

    def upsert_runs_batch(self, runs: list[Run]) -> int:
        """Insert or replace several runs in one transaction."""
        with self.db.transaction() as cursor:
            cursor.executemany(
                f"INSERT OR REPLACE INTO runs ({_RUN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [self._run_params(run) for run in runs],
            )
        return len(runs)

    def get_run(self, run_id: str) -> Optional[Run]:
        """Get a run by ID."""
        row = self.db.fetchone(f"SELECT {_RUN_COLUMNS} FROM runs WHERE id = ?", (run_id,))
        if not row:
            return None
        return self._row_to_run(row)

    def get_run_by_timestamp(self, timestamp: int) -> Optional[Run]:
        row = self.db.fetchone(
            f"SELECT {_RUN_COLUMNS} FROM runs WHERE timestamp = ? LIMIT 1", (timestamp,)
        )
        if not row:
            return None
        return self._row_to_run(row)

    def get_all_runs(self) -> list[Run]:
        """Get every stored run, newest first."""
        rows = self.db.fetchall(f"SELECT {_RUN_COLUMNS} FROM runs ORDER BY timestamp DESC, id")
        return [self._row_to_run(row) for row in rows]

    def get_run_count(self) -> int:
        row = self.db.fetchone("SELECT COUNT(*) AS n FROM runs")
        return row["n"] if row else 0

    def delete_run(self, run_id: str) -> bool:
        """Delete a run. Returns True if a row was removed."""
        cursor = self.db.execute("DELETE FROM runs WHERE id = ?", (run_id,))
        return cursor.rowcount > 0

    def _row_to_run(self, row) -> Run:
        """Convert database row to Run."""
        try:
            payload = json.loads(row["run_data"]) if row["run_data"] else {}
        except json.JSONDecodeError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        return Run(
            id=row["id"],
            character=Character(row["character"]),
            victory=bool(row["victory"]),
            ascension_level=row["ascension_level"],
            floor_reached=row["floor_reached"],
            playtime=row["playtime"],
            score=row["score"],
            timestamp=row["timestamp"],
            run_data=run_data_from_dict(payload),
        )
