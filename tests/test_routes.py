import time

import pytest
from fastapi.testclient import TestClient

from api.main import app
import api.routes as routes
from smirkle.config import Settings

from fakes import FakePersistence, FakeSampler, ScriptedClassifier, make_controller, ok_sample


@pytest.fixture
def controller(monkeypatch):
    settings = Settings(DETECTION_INTERVAL_MS=10, SCORE_INTERVAL_SECONDS=3600)
    c = make_controller(settings, sampler=FakeSampler(),
                        classifier=ScriptedClassifier([ok_sample()]))
    # the app lifespan closes whatever controller is installed
    monkeypatch.setattr(routes, "_controller", c)
    return c


@pytest.fixture
def client(controller):
    with TestClient(app) as c:
        yield c


def _wait_for(client, predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get("/game/status").json()
        if predicate(body):
            return body
        time.sleep(0.02)
    raise AssertionError(f"condition not met; last status {body}")


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_status_starts_idle(client):
    r = client.get("/game/status")
    assert r.status_code == 200
    body = r.json()
    assert body["phase"] == "IDLE"
    assert body["score"] == 0
    assert body["start_enabled"] is False


def test_round_trip_start_ready_stop(client):
    r = client.post("/game/start")
    assert r.status_code == 200
    assert r.json()["phase"] == "PRECHECK"

    _wait_for(client, lambda b: b["start_enabled"])
    assert client.post("/game/ready").json()["phase"] == "PLAYING"

    client.post("/game/pause")
    assert client.get("/game/status").json()["phase"] == "PAUSED"
    assert client.post("/game/resume").json()["phase"] == "PLAYING"

    body = client.post("/game/stop").json()
    assert body["phase"] == "STOPPED"
    assert body["fail_reason"] is None

    r = client.get("/game/summary")
    assert r.status_code == 200
    assert r.json()["score"] == 0

    assert client.post("/game/restart").json()["phase"] == "IDLE"


def test_summary_404_before_any_session(client):
    r = client.get("/game/summary")
    assert r.status_code == 404


def test_skip_returns_embed_url(client):
    r = client.post("/game/skip")
    assert r.status_code == 200
    body = r.json()
    assert body["video_id"]
    assert body["embed_url"].startswith("https://www.youtube.com/embed/" + body["video_id"])


def test_profile_includes_level_info(client):
    r = client.get("/game/profile")
    assert r.status_code == 200
    body = r.json()
    assert body["user_id"] == "player-1"
    assert body["level_info"]["level"] == 1


def test_profile_unavailable(client, controller):
    class Broken(FakePersistence):
        async def load_profile(self, user_id):
            raise RuntimeError("db down")
    controller.persistence = Broken()
    r = client.get("/game/profile")
    assert r.status_code == 503


def test_start_camera_error_in_snapshot(monkeypatch):
    from smirkle.camera import CameraPermissionError
    c = make_controller(Settings(), sampler=FakeSampler(acquire_error=CameraPermissionError("x")))
    monkeypatch.setattr(routes, "_controller", c)
    with TestClient(app) as client:
        body = client.post("/game/start").json()
    assert body["phase"] == "IDLE"
    assert "denied" in body["error"].lower()


def test_websocket_pushes_snapshots(client):
    with client.websocket_connect("/game/ws") as ws:
        first = ws.receive_json()
        assert first["phase"] == "IDLE"
        client.post("/game/skip")
        pushed = ws.receive_json()
        assert pushed["video_id"] != first["video_id"]
