from __future__ import annotations

import itertools
import json
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from fastapi.testclient import TestClient

from lifequest.api_app import build_api_app
from lifequest.document_store import MemoryDocumentStore, objective_path
from lifequest.engine import ProgressionEngine
from lifequest.time_utils import FixedClock

USER = "u1"


class StubGenerator:
    async def generate_text(self, prompt: str, schema: dict[str, Any] | None = None) -> str:
        if schema is not None:
            return json.dumps({"subtasks": [{"text": "Warm up"}]})
        return "Drink water."

    async def generate_image(self, prompt: str) -> bytes:
        return b"img"


def _client(store: MemoryDocumentStore | None = None, token: str | None = "t0k", **kwargs: Any) -> TestClient:
    counter = itertools.count(1)
    engine = ProgressionEngine(
        store or MemoryDocumentStore(),
        USER,
        clock=FixedClock(datetime(2026, 2, 4, 9, 0, tzinfo=ZoneInfo("Europe/Oslo"))),
        tz_name="Europe/Oslo",
        id_factory=lambda: f"id{next(counter)}",
        **kwargs,
    )
    return TestClient(build_api_app(engine, token, listen=False))


def test_auth_via_header_or_query() -> None:
    with _client() as client:
        assert client.get("/stats").status_code == 401
        assert client.get("/stats", headers={"x-api-token": "t0k"}).status_code == 200
        resp = client.get("/stats", params={"token": "t0k"})
        assert resp.status_code == 200
        assert resp.json()["stats"]["level"] == 1


def test_objective_flow() -> None:
    with _client(token=None) as client:
        created = client.post("/objectives", json={"name": "Climb", "difficulty": "Easy", "total_progress": 50})
        assert created.status_code == 200
        oid = created.json()["objective"]["id"]
        assert created.json()["objective"]["xpReward"] == 50

        assert client.post(f"/objectives/{oid}/select").json()["changed"] == [oid]
        sub = client.post("/subtasks", json={"text": "Boulder", "xp_reward": 5, "progress_contribution": 50})
        sid = sub.json()["subtask"]["id"]

        toggled = client.post(f"/objectives/{oid}/subtasks/{sid}/toggle").json()
        assert toggled["objective"]["currentProgress"] == 50
        assert toggled["stats"]["xp"] == 5
        assert any("Streak" in n for n in toggled["notices"])

        done = client.post(f"/objectives/{oid}/complete").json()
        assert done["stats"]["gold"] == 100
        assert done["unlocked"] == ["first_quest"]
        assert any("First Quest" in n for n in done["notices"])

        listed = client.get("/objectives", params={"include_completed": True}).json()["objectives"]
        assert listed[0]["isCompleted"] is True
        assert client.get("/objectives").json()["objectives"] == []

        rows = {r["id"]: r for r in client.get("/achievements").json()["achievements"]}
        assert rows["first_quest"]["unlocked"] is True


def test_patch_and_delete() -> None:
    with _client(token=None) as client:
        oid = client.post("/objectives", json={"name": "Paint"}).json()["objective"]["id"]
        patched = client.patch(f"/objectives/{oid}", json={"description": "watercolor"})
        assert patched.json()["objective"]["description"] == "watercolor"
        client.post(f"/objectives/{oid}/select")
        sid = client.post("/subtasks", json={"text": "Buy paper"}).json()["subtask"]["id"]
        assert client.delete(f"/objectives/{oid}/subtasks/{sid}").json() == {"ok": True, "id": sid}
        assert client.delete(f"/objectives/{oid}").json() == {"ok": True, "id": oid}


def test_validation_errors_map_to_400() -> None:
    with _client(token=None) as client:
        resp = client.post("/subtasks", json={"text": "orphan"})
        assert resp.status_code == 400
        assert "current objective" in resp.json()["detail"]
        assert client.post("/objectives/ghost/complete").status_code == 400
        assert client.post("/satisfaction", json={"value": 140}).status_code == 422


def test_store_failure_maps_to_502() -> None:
    store = MemoryDocumentStore(fail_paths={objective_path(USER, "id1")})
    with _client(store, token=None) as client:
        resp = client.post("/objectives", json={"name": "Doomed"})
        assert resp.status_code == 502
        assert resp.json()["paths"] == [objective_path(USER, "id1")]


def test_daily_reward_and_cooldown_notice() -> None:
    with _client(token=None) as client:
        first = client.post("/daily-reward").json()
        assert first["claimed"] is True
        assert first["notices"][0].startswith("🎁")
        second = client.post("/daily-reward").json()
        assert second["claimed"] is False
        assert second["cooldownSeconds"] == 24 * 3600
        assert "24h" in second["notices"][0]


def test_wellbeing_endpoints() -> None:
    with _client(token=None) as client:
        assert client.post("/pomodoro").json()["unlocked"] == ["pomodoro_1"]
        assert client.post("/satisfaction", json={"value": 70}).json()["stats"]["currentSatisfaction"] == 70
        tired = client.post("/vitality", json={"amount": -200}).json()
        assert tired["needsRest"] is True
        assert tired["stats"]["vitality"] == 0
        assert client.post("/tutorial/complete").json()["stats"]["hasCompletedTutorial"] is True


def test_daily_desire_endpoints() -> None:
    with _client(token=None) as client:
        desire = client.get("/daily-desire").json()["desire"]
        assert desire["date"] == "2026-02-04"
        assert client.get("/daily-desire").json()["desire"] == desire
        claimed = client.post("/daily-desire/claim").json()
        assert claimed["stats"]["dailyDesireCount"] == 1
        assert client.post("/daily-desire/claim").status_code == 400


def test_generation_endpoints() -> None:
    with _client(token=None) as client:
        assert client.get("/advice").status_code == 502

    with _client(token=None, generator=StubGenerator()) as client:
        oid = client.post("/objectives", json={"name": "Run"}).json()["objective"]["id"]
        suggestions = client.post(f"/objectives/{oid}/suggest-subtasks").json()["suggestions"]
        assert suggestions[0]["text"] == "Warm up"
        assert client.get("/advice").json() == {"advice": "Drink water."}
        image = client.get(f"/objectives/{oid}/image")
        assert image.content == b"img"
        assert image.headers["content-type"] == "image/png"
