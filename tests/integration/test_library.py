"""Integration tests for RunLibrary."""

import json
import threading

import pytest

from spirestats.collector.library import RunLibrary
from spirestats.collector.safe_files import PathTraversalError
from spirestats.config.preferences import Preferences, load_preferences
from spirestats.core.models import Character, ItemKind
from spirestats.core.stats_cache import StatsCache
from spirestats.db.repository import RUN_FOLDER_SETTING


@pytest.fixture
def prefs_path(tmp_path):
    return tmp_path / "prefs.json"


@pytest.fixture
def library(db, prefs_path, isolated_data_dir):
    lib = RunLibrary(db, prefs_path=prefs_path, data_dir=isolated_data_dir)
    yield lib
    lib.close()


@pytest.fixture
def populated(library, run_folder, write_run_file):
    write_run_file(run_folder, "IRONCLAD", "100", timestamp=100, victory=True, master_deck=["Strike_R"])
    write_run_file(run_folder, "IRONCLAD", "200", timestamp=200, master_deck=["Defend_R"])
    write_run_file(run_folder, "WATCHER", "300", timestamp=300, relics=["Pure Water"])
    library.ingest(run_folder)
    return library


class TestRuns:
    """Tests for loading and reading runs."""

    def test_load_run_files(self, library, run_folder, write_run_file):
        write_run_file(run_folder, "DEFECT", "1", timestamp=1)
        runs = library.load_run_files(run_folder)
        assert [r.id for r in runs] == ["1"]
        assert library.get_all_runs() == runs

    def test_run_folder_remembered(self, library, run_folder, prefs_path):
        library.ingest(run_folder)
        assert library.repository.get_setting(RUN_FOLDER_SETTING) == str(run_folder)
        assert library.get_run_folder() == str(run_folder)
        assert load_preferences(prefs_path).run_folder == str(run_folder)

    def test_get_all_runs_reads_store(self, library, repo, make_run):
        repo.insert_run_if_absent(make_run("x", 5))
        assert [r.id for r in library.get_all_runs()] == ["x"]

    def test_delete_run(self, populated):
        assert populated.delete_run("100") is True
        assert populated.get_run("100") is None
        assert [r.id for r in populated.get_all_runs()] == ["300", "200"]
        assert populated.delete_run("100") is False


class TestStats:
    """Tests for statistics through the library."""

    def test_card_stats(self, populated):
        stats = populated.stats_for_card("Strike")
        assert stats[Character.IRONCLAD].total_plays == 2
        assert stats[Character.IRONCLAD].win_rate == 100.0

    def test_relic_stats(self, populated):
        stats = populated.stats_for_relic("Pure Water")
        assert stats[Character.WATCHER].obtain_count == 1

    def test_new_runs_invalidate_cache(self, populated, run_folder, write_run_file):
        assert populated.stats_for_card("Strike")[Character.IRONCLAD].total_plays == 2

        write_run_file(run_folder, "IRONCLAD", "400", timestamp=400, master_deck=["Strike_R"])
        populated.ingest(run_folder)

        stats = populated.stats_for_card("Strike")
        assert stats[Character.IRONCLAD].total_plays == 3
        assert stats[Character.IRONCLAD].obtain_count == 2

    def test_stats_from_list_read_before_ingest_not_cached(self, library, run_folder, write_run_file):
        write_run_file(run_folder, "IRONCLAD", "100", timestamp=100, master_deck=["Strike_R"])
        library.ingest(run_folder)
        generation = library.stats_cache.generation
        captured = library.get_all_runs()

        write_run_file(run_folder, "IRONCLAD", "200", timestamp=200, victory=True, master_deck=["Strike_R"])
        library.ingest(run_folder)

        # A slow reader finishing with the list it loaded before the ingest
        library.stats_cache.stats_for(ItemKind.CARD, "Strike", captured, generation)

        stats = library.stats_for_card("strike")
        assert stats[Character.IRONCLAD].total_plays == 2
        assert stats[Character.IRONCLAD].victory_count == 1

    def test_noop_ingest_keeps_cache(self, populated, run_folder):
        populated.stats_for_card("Strike")
        populated.ingest(run_folder)
        assert populated.stats_cache.size(ItemKind.CARD) == 1

    def test_delete_invalidates_cache(self, populated):
        populated.stats_for_card("Strike")
        populated.delete_run("100")
        assert populated.stats_cache.size(ItemKind.CARD) == 0
        assert populated.stats_for_card("Strike")[Character.IRONCLAD].obtain_count == 0

    def test_neow_stats_follow_store(self, library, run_folder, write_run_file):
        write_run_file(run_folder, "THE_SILENT", "1", timestamp=1, neow_bonus="neowBonus.ONE_RARE_RELIC")
        library.ingest(run_folder)
        assert library.neow_stats()["silent"]["ONE_RARE_RELIC"].total_selected == 1

        library.delete_run("1")
        assert library.neow_stats() == {"all": {}}

    def test_prewarm(self, db, prefs_path, isolated_data_dir, make_run):
        cache = StatsCache()
        lib = RunLibrary(db, stats_cache=cache, prefs_path=prefs_path, data_dir=isolated_data_dir)
        lib.repository.insert_run_if_absent(make_run("a", 1))
        try:
            assert lib.start_prewarm(initial_delay=0, batch_pause=0, phase_pause=0)
            assert lib._prewarmer.completed.wait(5)
        finally:
            lib.close()
        assert cache.size(ItemKind.CARD) > 0
        assert cache.size(ItemKind.RELIC) > 0

    def test_prewarm_skipped_in_low_memory_mode(self, db, prefs_path, isolated_data_dir):
        lib = RunLibrary(
            db,
            preferences=Preferences(low_memory_mode=True),
            prefs_path=prefs_path,
            data_dir=isolated_data_dir,
        )
        assert lib.start_prewarm() is False


class TestPreferences:
    """Tests for preference changes."""

    def test_cache_size_change_applies(self, populated, prefs_path):
        populated.stats_for_card("Strike")
        populated.update_preferences(max_cache_size=5)

        assert populated.stats_cache.max_size == 5
        assert populated.stats_cache.size(ItemKind.CARD) == 0
        assert load_preferences(prefs_path).max_cache_size == 5

    def test_stats_affecting_change_invalidates(self, populated):
        populated.stats_for_card("Strike")
        populated.update_preferences(show_stats=False)
        assert populated.stats_cache.size(ItemKind.CARD) == 0

    def test_unrelated_change_keeps_cache(self, populated):
        populated.stats_for_card("Strike")
        populated.update_preferences(enable_stats_tooltip=False)
        assert populated.stats_cache.size(ItemKind.CARD) == 1

    @pytest.mark.parametrize("changes", [{"volume": 3}, {"max_cache_size": 0}])
    def test_invalid_changes(self, library, changes):
        with pytest.raises(ValueError):
            library.update_preferences(**changes)


class TestExportImport:
    """Tests for export and import."""

    def test_export_default_location(self, populated, isolated_data_dir):
        path = populated.export_all()
        assert path.parent == (isolated_data_dir / "exports").resolve()
        data = json.loads(path.read_text(encoding="utf-8"))
        assert [r["id"] for r in data] == ["300", "200", "100"]

    def test_export_outside_data_dir_rejected(self, populated, tmp_path):
        with pytest.raises(PathTraversalError):
            populated.export_all(tmp_path / "elsewhere.json")

    def test_export_then_import(self, populated):
        exported = populated.export_all()
        for run_id in ("100", "200", "300"):
            populated.delete_run(run_id)
        assert populated.get_all_runs() == []

        assert populated.import_all(exported) == 3
        restored = populated.get_run("100")
        assert restored.victory is True
        assert restored.run_data.master_deck == ["Strike_R"]

    def test_import_backup_format(self, library, make_run, tmp_path):
        path = tmp_path / "backup.json"
        path.write_text(
            json.dumps({"created_at": "x", "runs": [make_run("b1", 10).to_dict()], "settings": {}}),
            encoding="utf-8",
        )
        assert library.import_all(path) == 1
        assert library.get_run("b1") is not None

    def test_import_missing_file(self, library, tmp_path):
        with pytest.raises(FileNotFoundError):
            library.import_all(tmp_path / "nope.json")

    def test_import_invalid_file(self, library, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"runs": "nope"}), encoding="utf-8")
        with pytest.raises(ValueError):
            library.import_all(path)


class TestWatching:
    """Tests for the watcher wiring."""

    def test_new_run_reaches_subscriber(self, db, prefs_path, isolated_data_dir, run_folder, write_run_file):
        from spirestats.collector.watcher import RunWatcher

        lib = RunLibrary(
            db,
            watcher=RunWatcher(quiescence_seconds=0.2, poll_interval=0.05),
            prefs_path=prefs_path,
            data_dir=isolated_data_dir,
        )
        received = []
        arrived = threading.Event()

        def on_run(run):
            received.append(run)
            arrived.set()

        lib.on_new_run_detected(on_run)
        try:
            assert lib.start_watching(run_folder)
            assert lib.status()["watching"] is True
            write_run_file(run_folder, "DEFECT", "77", timestamp=77)
            assert arrived.wait(10)
        finally:
            lib.close()

        assert received[0].id == "77"
        # Not persisted until the next ingest
        assert lib.get_run("77") is None
        assert lib.status()["watching"] is False

    def test_status(self, populated, db):
        status = populated.status()
        assert status["run_count"] == 3
        assert status["db_path"] == str(db.db_path)
        assert status["cache"]["max_size"] == 100
