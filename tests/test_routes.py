"""Tests for the HTTP API — FastAPI TestClient against a temp data dir."""

import json

import pytest
from fastapi.testclient import TestClient

from conftest import write_game
from storyloom.app import create_app
from storyloom.config import Settings


@pytest.fixture
def client(settings: Settings) -> TestClient:
    return TestClient(create_app(settings))


@pytest.fixture
def playing(client: TestClient, start_end_game: str) -> TestClient:
    resp = client.post("/api/game/load", json={"game": start_end_game})
    assert resp.status_code == 200
    return client


class TestHealthAndSettings:
    def test_health(self, client: TestClient) -> None:
        assert client.get("/api/health").json() == {"status": "ok"}

    def test_settings(self, client: TestClient, settings: Settings) -> None:
        body = client.get("/api/settings").json()
        assert body["remote_api_url"] == "http://games.test/api"
        assert body["auto_backup"] is False


class TestGameRoutes:
    def test_current_before_load(self, client: TestClient) -> None:
        body = client.get("/api/game/current").json()
        assert body["frame"] is None
        assert body["session"]["status"] == "unloaded"

    def test_load(self, client: TestClient, start_end_game: str) -> None:
        body = client.post("/api/game/load", json={"game": start_end_game}).json()
        assert body["frame"]["event_id"] == "start"
        assert body["frame"]["text"] == "Hi"
        assert [c["text"] for c in body["choices"]] == ["Go"]
        assert body["choices"][0]["nextEvent"] == "end"

    def test_load_missing_game(self, client: TestClient) -> None:
        resp = client.post("/api/game/load", json={"game": "nope"})
        assert resp.status_code == 400
        assert "not found" in resp.json()["detail"]

    def test_load_outside_games_dir(self, client: TestClient, tmp_path) -> None:
        write_game(tmp_path / "private", {"start": {"dialogue": "secret"}})
        resp = client.post("/api/game/load", json={"game": "../private"})
        assert resp.status_code == 400
        assert client.get("/api/game/current").json()["session"]["status"] == "unloaded"

    def test_choose_after_failed_load(self, playing: TestClient) -> None:
        assert playing.post("/api/game/load", json={"game": "missing"}).status_code == 400
        assert playing.post("/api/game/choose", json={"index": 0}).status_code == 404
        session = playing.get("/api/game/current").json()["session"]
        assert session["flags"] == {}
        assert session["history"] == []

    def test_choose(self, playing: TestClient) -> None:
        body = playing.post("/api/game/choose", json={"index": 0}).json()
        assert body["frame"]["event_id"] == "end"
        assert body["session"]["flags"] == {"met": True}
        assert body["session"]["history"] == ["start", "end"]
        assert body["choices"] == []

    def test_choose_out_of_range(self, playing: TestClient) -> None:
        resp = playing.post("/api/game/choose", json={"index": 5})
        assert resp.status_code == 404

    def test_choose_missing_event(self, client: TestClient, settings: Settings) -> None:
        write_game(settings.games_dir / "g", {"start": {"choices": [{"text": "x", "nextEvent": "ghost"}]}})
        client.post("/api/game/load", json={"game": "g"})
        resp = client.post("/api/game/choose", json={"index": 0})
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Event not found: ghost"

    def test_restart(self, playing: TestClient) -> None:
        playing.post("/api/game/choose", json={"index": 0})
        body = playing.post("/api/game/restart").json()
        assert body["frame"]["event_id"] == "start"
        assert body["session"]["flags"] == {}

    def test_restart_without_game(self, client: TestClient) -> None:
        assert client.post("/api/game/restart").status_code == 409

    def test_media(self, client: TestClient, settings: Settings) -> None:
        events = {"start": {"background": "bg.png", "character": {"id": "mara"}}}
        characters = {"mara": {"name": "Mara", "sprites": {"neutral": "mara.png"}}}
        write_game(settings.games_dir / "g", events, characters,
                   files={"bg.png": b"bg", "mara.png": b"sprite"})
        client.post("/api/game/load", json={"game": "g"})

        bg = client.get("/api/game/background")
        assert bg.content == b"bg"
        assert bg.headers["content-type"] == "image/png"
        assert client.get("/api/game/sprite").content == b"sprite"

    def test_no_media(self, playing: TestClient) -> None:
        assert playing.get("/api/game/background").status_code == 404
        assert playing.get("/api/game/sprite").status_code == 404


class TestSaveRoutes:
    def test_save_list_load(self, playing: TestClient) -> None:
        playing.post("/api/game/choose", json={"index": 0})
        assert playing.post("/api/saves/slot1").json() == {"ok": True, "slot": "slot1"}

        slots = playing.get("/api/saves").json()
        assert [s["name"] for s in slots] == ["slot1"]
        assert slots[0]["gameFolder"] == "start-end"

        playing.post("/api/game/restart")
        body = playing.post("/api/saves/slot1/load").json()
        assert body["currentEvent"] == "end"
        assert body["flags"] == {"met": True}

    def test_load_missing_slot(self, playing: TestClient) -> None:
        assert playing.post("/api/saves/ghost/load").status_code == 404

    def test_delete(self, playing: TestClient) -> None:
        playing.post("/api/saves/slot1")
        assert playing.delete("/api/saves/slot1").status_code == 200
        assert playing.delete("/api/saves/slot1").status_code == 404
        assert playing.get("/api/saves").json() == []

    def test_clear(self, playing: TestClient) -> None:
        playing.post("/api/saves/a")
        playing.post("/api/saves/b")
        playing.delete("/api/saves")
        assert playing.get("/api/saves").json() == []

    def test_export_then_import(self, playing: TestClient) -> None:
        playing.post("/api/saves/slot1")
        exported = playing.get("/api/saves/slot1/export")
        assert exported.status_code == 200
        assert json.loads(exported.content)["currentEvent"] == "start"

        resp = playing.post("/api/saves/import", params={"filename": "copy.vnsave"},
                            content=exported.content)
        assert resp.json() == {"name": "copy", "success": True}
        assert {s["name"] for s in playing.get("/api/saves").json()} == {"slot1", "copy"}

    def test_export_missing(self, client: TestClient) -> None:
        assert client.get("/api/saves/ghost/export").status_code == 404

    def test_import_malformed(self, client: TestClient) -> None:
        resp = client.post("/api/saves/import", params={"filename": "x.vnsave"},
                           content=json.dumps({"invalidField": "data"}))
        assert resp.status_code == 400
        assert client.get("/api/saves").json() == []

    def test_bundle_round_trip(self, playing: TestClient) -> None:
        playing.post("/api/saves/a")
        playing.post("/api/saves/b")
        bundle = playing.get("/api/saves-bundle").content
        playing.delete("/api/saves")

        resp = playing.post("/api/saves-bundle/import", content=bundle)
        assert resp.json() == {"imported": 2, "success": True}
        assert {s["name"] for s in playing.get("/api/saves").json()} == {"a", "b"}

    def test_backups(self, settings: Settings, start_end_game: str) -> None:
        client = TestClient(create_app(settings.model_copy(update={"auto_backup": True})))
        client.post("/api/game/load", json={"game": start_end_game})
        client.post("/api/saves/a")
        [backup] = client.get("/api/backups").json()
        assert backup["slot"] == "a"
        assert backup["file"] == "000001-a.vnsave"
        assert backup["record"]["gameFolder"] == "start-end"
