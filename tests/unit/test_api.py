"""Tests for API routes."""

import json

import pytest
from fastapi.testclient import TestClient

from spirestats.api.app import create_app
from spirestats.collector.library import RunLibrary


@pytest.fixture
def library(db, tmp_path, isolated_data_dir):
    """Create a run library over the test database."""
    lib = RunLibrary(db, prefs_path=tmp_path / "prefs.json", data_dir=isolated_data_dir)
    yield lib
    lib.close()


@pytest.fixture
def client(library):
    """Create a test client."""
    app = create_app(library)
    return TestClient(app)


@pytest.fixture
def seeded(client, run_folder, write_run_file):
    """Client whose library has ingested a small run folder."""
    write_run_file(
        run_folder, "IRONCLAD", "100",
        timestamp=100, victory=True, master_deck=["Strike_R", "Bash+1"],
    )
    write_run_file(run_folder, "IRONCLAD", "200", timestamp=200, master_deck=["Defend_R"])
    write_run_file(run_folder, "THE_SILENT", "300", timestamp=300, relics=["Ring of the Snake"])
    response = client.post("/api/runs/load", json={"folder_path": str(run_folder)})
    assert response.status_code == 200
    return client


class TestStatusEndpoint:
    def test_get_status(self, client, db):
        response = client.get("/api/status")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["run_count"] == 0
        assert data["db_path"] == str(db.db_path)
        assert data["watching"] is False
        assert data["cache"]["max_size"] == 100


class TestRunsEndpoints:
    def test_list_runs_empty(self, client):
        response = client.get("/api/runs")
        assert response.status_code == 200
        data = response.json()
        assert data["runs"] == []
        assert data["total"] == 0

    def test_load_runs(self, client, run_folder, write_run_file):
        write_run_file(run_folder, "DEFECT", "1", timestamp=1)
        (run_folder / "DEFECT" / "bad.run").write_text("nope", encoding="utf-8")

        response = client.post("/api/runs/load", json={"folder_path": str(run_folder)})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["inserted"] == 1
        assert data["failed"] == 1
        assert data["runs"][0]["character"] == "defect"

    def test_load_runs_twice(self, seeded, run_folder):
        response = seeded.post("/api/runs/load", json={"folder_path": str(run_folder)})
        data = response.json()
        assert data["inserted"] == 0
        assert data["duplicates"] == 3
        assert data["total"] == 3

    def test_load_missing_folder(self, client, tmp_path):
        response = client.post("/api/runs/load", json={"folder_path": str(tmp_path / "nope")})
        assert response.status_code == 404

    def test_list_runs_with_data(self, seeded):
        response = seeded.get("/api/runs")
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert [r["id"] for r in data["runs"]] == ["300", "200", "100"]

    def test_get_run_by_id(self, seeded):
        response = seeded.get("/api/runs/100")
        assert response.status_code == 200
        data = response.json()
        assert data["victory"] is True
        assert data["run_data"]["master_deck"] == ["Strike_R", "Bash+1"]

    def test_get_run_not_found(self, client):
        response = client.get("/api/runs/999")
        assert response.status_code == 404

    def test_run_folder(self, seeded, run_folder):
        response = seeded.get("/api/runs/folder")
        assert response.json()["folder_path"] == str(run_folder)

    def test_delete_run(self, seeded):
        assert seeded.delete("/api/runs/100").status_code == 200
        assert seeded.get("/api/runs/100").status_code == 404
        assert seeded.delete("/api/runs/100").status_code == 404


class TestExportImportEndpoints:
    def test_export_and_import(self, seeded):
        response = seeded.post("/api/runs/export", json={})
        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 3

        for run_id in ("100", "200", "300"):
            seeded.delete(f"/api/runs/{run_id}")

        response = seeded.post("/api/runs/import", json={"path": data["path"]})
        assert response.status_code == 200
        assert response.json()["imported"] == 3
        assert seeded.get("/api/runs").json()["total"] == 3

    def test_export_outside_data_dir(self, seeded, tmp_path):
        response = seeded.post("/api/runs/export", json={"path": str(tmp_path / "x.json")})
        assert response.status_code == 400

    def test_import_missing(self, client, tmp_path):
        response = client.post("/api/runs/import", json={"path": str(tmp_path / "nope.json")})
        assert response.status_code == 404

    def test_import_invalid(self, client, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps([{"id": "x", "character": "HERMIT"}]), encoding="utf-8")
        response = client.post("/api/runs/import", json={"path": str(path)})
        assert response.status_code == 400


class TestStatsEndpoints:
    def test_card_stats(self, seeded):
        response = seeded.get("/api/stats/cards/Strike")
        assert response.status_code == 200
        data = response.json()
        assert data["key"] == "strike"
        assert data["kind"] == "card"
        assert data["ironclad"]["total_plays"] == 2
        assert data["ironclad"]["obtain_count"] == 1
        assert data["ironclad"]["obtain_rate"] == 50.0
        assert data["ironclad"]["win_rate"] == 100.0
        assert data["silent"]["total_plays"] == 1
        # Default deck of the Silent run also holds a Strike
        assert data["silent"]["obtain_count"] == 1

    def test_upgraded_spelling(self, seeded):
        data = seeded.get("/api/stats/cards/bash+").json()
        assert data["key"] == "bash"
        assert data["ironclad"]["obtain_count"] == 1

    def test_relic_stats(self, seeded):
        data = seeded.get("/api/stats/relics/Ring of the Snake").json()
        assert data["kind"] == "relic"
        assert data["silent"]["obtain_count"] == 1

    def test_unknown_item_has_zero_rates(self, seeded):
        data = seeded.get("/api/stats/cards/NotACard").json()
        assert data["ironclad"]["obtain_rate"] == 0.0
        assert data["ironclad"]["win_rate"] == 0.0

    def test_neow_stats(self, client, run_folder, write_run_file):
        write_run_file(
            run_folder, "IRONCLAD", "1",
            timestamp=1, victory=True, floor_reached=57, neow_bonus="neowBonus.THREE_CARDS",
        )
        write_run_file(run_folder, "DEFECT", "2", timestamp=2, neow_bonus="neowBonus.THREE_CARDS")
        client.post("/api/runs/load", json={"folder_path": str(run_folder)})

        response = client.get("/api/stats/neow")
        assert response.status_code == 200
        data = response.json()["characters"]
        assert set(data) == {"ironclad", "defect", "all"}
        assert data["ironclad"]["THREE_CARDS"]["total_win_rate"] == 100.0
        assert data["all"]["THREE_CARDS"]["total_selected"] == 2
        assert data["all"]["THREE_CARDS"]["total_win_rate"] == 50.0

        single = client.get("/api/stats/neow", params={"character": "THE_SILENT"}).json()
        assert single == {"characters": {"silent": {}}}

    def test_neow_unknown_character(self, client):
        response = client.get("/api/stats/neow", params={"character": "hermit"})
        assert response.status_code == 400

    def test_cache_info_and_clear(self, seeded):
        seeded.get("/api/stats/cards/Strike")
        seeded.get("/api/stats/relics/Anchor")
        info = seeded.get("/api/stats/cache").json()
        assert info["card_entries"] == 1
        assert info["relic_entries"] == 1

        cleared = seeded.delete("/api/stats/cache").json()
        assert cleared["card_entries"] == 0
        assert cleared["relic_entries"] == 0


class TestSettingsEndpoints:
    def test_get_settings(self, client):
        data = client.get("/api/settings").json()
        assert data["max_cache_size"] == 100
        assert data["show_stats"] is True

    def test_update_settings(self, client, library):
        response = client.put("/api/settings", json={"max_cache_size": 10, "show_stats": False})
        assert response.status_code == 200
        assert response.json()["max_cache_size"] == 10
        assert library.stats_cache.max_size == 10

    def test_invalid_cache_size(self, client):
        response = client.put("/api/settings", json={"max_cache_size": 0})
        assert response.status_code == 400


class TestWatchEndpoints:
    def test_status_idle(self, client):
        data = client.get("/api/watch").json()
        assert data == {"watching": False, "watched_path": None}

    def test_start_and_stop(self, client, run_folder):
        response = client.post("/api/watch", json={"folder_path": str(run_folder)})
        assert response.status_code == 200
        assert response.json()["watching"] is True

        response = client.delete("/api/watch")
        assert response.json()["watching"] is False

    def test_start_missing_folder(self, client, tmp_path):
        response = client.post("/api/watch", json={"folder_path": str(tmp_path / "nope")})
        assert response.status_code == 404

    def test_events_drained(self, client, make_run):
        events = client.app.state.watch_events
        events.append(make_run("w1", 1))

        data = client.get("/api/watch/events").json()
        assert [r["id"] for r in data["runs"]] == ["w1"]
        assert client.get("/api/watch/events").json()["runs"] == []
