"""Pytest configuration and shared fixtures."""

import json
import logging
from pathlib import Path

import pytest

from spirestats.config.logging import LOGGER_NAME
from spirestats.core.models import Character, Run, RunData
from spirestats.db.connection import Database
from spirestats.db.repository import Repository


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    """Keep preferences, logs and exports out of the real data directory."""
    data_dir = tmp_path / "data"
    monkeypatch.setenv("SPIRESTATS_DATA_DIR", str(data_dir))
    monkeypatch.delenv("SPIRESTATS_RUN_FOLDER", raising=False)
    return data_dir


@pytest.fixture(autouse=True)
def reset_app_logging():
    """Drop handlers installed by CLI commands so they do not leak between tests."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def db(tmp_path):
    """Create a temporary database for each test."""
    database = Database(tmp_path / "test.db")
    database.connect()
    yield database
    database.close()


@pytest.fixture
def repo(db):
    """Create a repository for each test."""
    return Repository(db)


@pytest.fixture
def make_run():
    """Build a Run with sensible defaults."""

    def _make(
        run_id: str,
        timestamp: int,
        character: Character = Character.IRONCLAD,
        victory: bool = False,
        deck: tuple = ("Strike_R", "Defend_R", "Bash"),
        relics: tuple = ("Burning Blood",),
        **kwargs,
    ) -> Run:
        return Run(
            id=run_id,
            character=character,
            victory=victory,
            ascension_level=kwargs.get("ascension_level", 0),
            floor_reached=kwargs.get("floor_reached", 10),
            playtime=kwargs.get("playtime", 600),
            score=kwargs.get("score", 100),
            timestamp=timestamp,
            run_data=RunData(
                master_deck=list(deck),
                relics=list(relics),
                neow_bonus=kwargs.get("neow_bonus"),
            ),
        )

    return _make


@pytest.fixture
def run_folder(tmp_path):
    """Empty game-style runs folder with one subfolder per character."""
    root = tmp_path / "runs"
    for name in ("IRONCLAD", "THE_SILENT", "DEFECT", "WATCHER"):
        (root / name).mkdir(parents=True)
    return root


@pytest.fixture
def write_run_file():
    """Write a .run payload into a character folder."""

    def _write(root: Path, folder: str, name: str, **payload) -> Path:
        data = {
            "victory": False,
            "ascension_level": 0,
            "floor_reached": 5,
            "playtime": 300,
            "score": 50,
            "master_deck": ["Strike_R", "Defend_R"],
            "relics": ["Burning Blood"],
        }
        data.update(payload)
        path = root / folder / f"{name}.run"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write
