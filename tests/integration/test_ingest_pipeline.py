"""Integration tests: run folder on disk -> store -> statistics."""

import os

import pytest

from spirestats.collector.ingestor import RunIngestor
from spirestats.core.models import Character
from spirestats.core.stats_cache import StatsCache


@pytest.fixture
def ingestor(repo):
    return RunIngestor(repo)


class TestIngest:
    """Tests for folder ingestion."""

    def test_ingest_all_characters(self, ingestor, run_folder, write_run_file):
        write_run_file(run_folder, "IRONCLAD", "100", timestamp=100)
        write_run_file(run_folder, "THE_SILENT", "200", timestamp=200)
        write_run_file(run_folder, "DEFECT", "300", timestamp=300)
        write_run_file(run_folder, "WATCHER", "400", timestamp=400)

        report = ingestor.ingest_with_report(run_folder)

        assert report.scanned == 4
        assert sorted(report.inserted) == ["100", "200", "300", "400"]
        assert [r.character for r in report.runs] == [
            Character.WATCHER,
            Character.DEFECT,
            Character.SILENT,
            Character.IRONCLAD,
        ]

    def test_second_ingest_is_noop(self, ingestor, repo, run_folder, write_run_file):
        write_run_file(run_folder, "IRONCLAD", "100", timestamp=100)
        write_run_file(run_folder, "DEFECT", "200", timestamp=200)

        first = ingestor.ingest(run_folder)
        report = ingestor.ingest_with_report(run_folder)

        assert report.inserted == []
        assert len(report.duplicates) == 2
        assert [r.id for r in report.runs] == [r.id for r in first]
        assert repo.get_run_count() == 2

    def test_duplicate_timestamp_across_files(self, ingestor, repo, run_folder, write_run_file):
        write_run_file(run_folder, "IRONCLAD", "a", timestamp=500)
        write_run_file(run_folder, "IRONCLAD", "b", timestamp=500)

        report = ingestor.ingest_with_report(run_folder)

        assert report.inserted == ["a"]
        assert [p.name for p in report.duplicates] == ["b.run"]
        assert repo.get_run_count() == 1

    def test_same_stem_in_two_folders(self, ingestor, repo, run_folder, write_run_file):
        write_run_file(run_folder, "IRONCLAD", "abc", timestamp=100)
        write_run_file(run_folder, "DEFECT", "abc", timestamp=200)
        write_run_file(run_folder, "WATCHER", "zzz", timestamp=300)

        report = ingestor.ingest_with_report(run_folder)

        assert len(report.inserted) == 3
        assert report.inserted[0] == "abc"
        assert repo.get_run("abc").timestamp == 100
        assert repo.get_run_by_timestamp(200).character is Character.DEFECT
        assert repo.get_run("zzz").timestamp == 300

        again = ingestor.ingest_with_report(run_folder)
        assert again.inserted == []
        assert len(again.duplicates) == 3
        assert repo.get_run_count() == 3

    def test_colliding_stem_uses_play_id(self, ingestor, repo, run_folder, write_run_file):
        write_run_file(run_folder, "IRONCLAD", "abc", timestamp=100)
        write_run_file(run_folder, "THE_SILENT", "abc", timestamp=200, play_id="play-200")

        report = ingestor.ingest_with_report(run_folder)

        assert report.inserted == ["abc", "play-200"]
        assert repo.get_run("play-200").character is Character.SILENT

    def test_malformed_files_counted(self, ingestor, run_folder, write_run_file):
        write_run_file(run_folder, "IRONCLAD", "good", timestamp=1)
        (run_folder / "IRONCLAD" / "bad.run").write_text("{not json", encoding="utf-8")
        (run_folder / "DEFECT" / "notes.txt").write_text("ignored", encoding="utf-8")

        report = ingestor.ingest_with_report(run_folder)

        assert report.inserted == ["good"]
        assert [p.name for p in report.failed] == ["bad.run"]
        assert report.scanned == 2

    def test_missing_character_folders_skipped(self, ingestor, tmp_path, write_run_file):
        root = tmp_path / "partial"
        write_run_file(root, "WATCHER", "9", timestamp=9)
        assert [r.id for r in ingestor.ingest(root)] == ["9"]

    def test_missing_root(self, ingestor, tmp_path):
        with pytest.raises(FileNotFoundError):
            ingestor.ingest(tmp_path / "nope")

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
    def test_symlink_outside_root_rejected(self, ingestor, repo, tmp_path, run_folder, write_run_file):
        outside = write_run_file(tmp_path / "elsewhere", "IRONCLAD", "evil", timestamp=666)
        (run_folder / "IRONCLAD" / "evil.run").symlink_to(outside)
        write_run_file(run_folder, "IRONCLAD", "ok", timestamp=1)

        report = ingestor.ingest_with_report(run_folder)

        assert [p.name for p in report.rejected] == ["evil.run"]
        assert report.inserted == ["ok"]
        assert repo.get_run_by_timestamp(666) is None

    def test_callback_only_when_inserted(self, repo, run_folder, write_run_file):
        calls = []
        ingestor = RunIngestor(repo, on_runs_changed=lambda: calls.append(1))

        write_run_file(run_folder, "IRONCLAD", "1", timestamp=1)
        ingestor.ingest(run_folder)
        ingestor.ingest(run_folder)

        assert calls == [1]


class TestIngestThenStats:
    """Statistics over freshly ingested runs."""

    def test_strike_end_to_end(self, ingestor, run_folder, write_run_file):
        write_run_file(
            run_folder, "IRONCLAD", "100",
            timestamp=100, victory=True, master_deck=["Strike_R", "Bash"],
        )
        write_run_file(
            run_folder, "IRONCLAD", "200",
            timestamp=200, victory=False, master_deck=["Defend_R", "Bash"],
        )
        runs = ingestor.ingest(run_folder)

        stats = StatsCache().stats_for_card("Strike", runs)
        ironclad = stats[Character.IRONCLAD]

        assert ironclad.total_plays == 2
        assert ironclad.obtain_count == 1
        assert ironclad.victory_count == 1
        assert ironclad.obtain_rate == 50.0
        assert ironclad.win_rate == 100.0
        assert ironclad.recent50_plays == 2

        for character in (Character.SILENT, Character.DEFECT, Character.WATCHER):
            assert stats[character].total_plays == 0
            assert stats[character].obtain_rate == 0.0

    def test_upgraded_and_plain_cards_share_stats(self, ingestor, run_folder, write_run_file):
        write_run_file(run_folder, "DEFECT", "1", timestamp=1, master_deck=["Zap+1"], victory=True)
        write_run_file(run_folder, "DEFECT", "2", timestamp=2, master_deck=["Zap"])
        runs = ingestor.ingest(run_folder)

        stats = StatsCache().stats_for_card("zap", runs)
        assert stats[Character.DEFECT].obtain_count == 2
        assert stats[Character.DEFECT].victory_count == 1
