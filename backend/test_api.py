"""
test_api.py
───────────
HTTP surface: FastAPI TestClient with the service bundle swapped for one
built on MemoryKVStore and the fakes from conftest.
"""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from api.deps import build_services, get_services
from api.server import app
from conftest import DAY_ID, TRIP_ID, FakeCloudPlanner, FakeEngine, make_item, seed_trip
from db.kv_store import MemoryKVStore
from modules.tool_usage.network_monitor import NetworkMonitor
from schemas.planner import CloudPlanResponse


def _services(engine: FakeEngine, cloud: FakeCloudPlanner = None, online: bool = True):
    network = NetworkMonitor()
    network.force(online)
    services = build_services(MemoryKVStore(), engine, cloud or FakeCloudPlanner(), network)
    asyncio.run(seed_trip(services.trips, [
        make_item("a1", "Temple", "09:00", "11:00"),
        make_item("a2", "Lunch", "12:00", "13:00"),
    ]))
    return services


@pytest.fixture
def client_for():
    def _make(services):
        app.dependency_overrides[get_services] = lambda: services
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()


def test_health(client_for):
    client = client_for(_services(FakeEngine()))
    resp = client.get("/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.json()["model_ready"] is True


def test_ask_and_follow_up_in_same_session(client_for):
    engine = FakeEngine(reply="Lunch is at 12:00.")
    client = client_for(_services(engine))

    first = client.post("/v1/brain/ask", json={"trip_id": TRIP_ID, "question": "when is lunch?"})
    assert first.status_code == 200
    body = first.json()
    assert body["reply"] == "Lunch is at 12:00."
    assert body["modification"] is None

    second = client.post("/v1/brain/ask", json={
        "trip_id": TRIP_ID, "question": "and the temple?", "session_id": body["session_id"],
    })
    assert second.status_code == 200
    assert len(second.json()["messages"]) == 4


def test_ask_model_not_ready(client_for):
    client = client_for(_services(FakeEngine(ready=False)))
    resp = client.post("/v1/brain/ask", json={"trip_id": TRIP_ID, "question": "when is lunch?"})
    assert resp.status_code == 503


def test_unknown_session(client_for):
    client = client_for(_services(FakeEngine()))
    resp = client.post("/v1/brain/pending/apply", json={"session_id": "sess_missing"})
    assert resp.status_code == 404


def test_pending_lifecycle(client_for):
    client = client_for(_services(FakeEngine(reply="Lunch moved to 13:00.")))

    ask = client.post("/v1/brain/ask", json={"trip_id": TRIP_ID, "question": "move lunch to the afternoon"})
    body = ask.json()
    assert body["modification"]["status"] == "pending"
    assert body["pending"]["item_id"] == "a2"
    session_id = body["session_id"]

    conflict = client.post("/v1/brain/ask", json={
        "trip_id": TRIP_ID, "question": "move temple to the evening", "session_id": session_id,
    })
    assert conflict.status_code == 409

    applied = client.post("/v1/brain/pending/apply", json={"session_id": session_id})
    assert applied.status_code == 200
    assert applied.json()["action"]["status"] == "applied"
    assert applied.json()["pending"] is None

    again = client.post("/v1/brain/pending/dismiss", json={"session_id": session_id})
    assert again.status_code == 409

    day = client.get(f"/v1/planner/day/{DAY_ID}").json()
    lunch = next(i for i in day["items"] if i["id"] == "a2")
    assert lunch["start"] == "2025-03-15T13:00:00"


def test_status(client_for):
    client = client_for(_services(FakeEngine()))
    resp = client.get(f"/v1/brain/status/{TRIP_ID}")
    assert resp.status_code == 200
    assert resp.json()["engine"]["is_downloaded"] is True
    assert resp.json()["knowledge_base"]["total_count"] == 0


def test_model_download(client_for):
    engine = FakeEngine(ready=False)
    client = client_for(_services(engine))
    resp = client.post("/v1/brain/model/download")
    assert resp.status_code == 200
    assert resp.json()["is_downloaded"] is True


def test_generate_cloud_failure_is_bad_gateway(client_for):
    cloud = FakeCloudPlanner(CloudPlanResponse(success=False, error="quota exceeded"))
    client = client_for(_services(FakeEngine(), cloud))
    resp = client.post("/v1/planner/generate", json={
        "trip_id": TRIP_ID, "day_id": "day_2", "city": "Tokyo", "date": "2025-03-16",
    })
    assert resp.status_code == 502
    assert "quota exceeded" in resp.json()["detail"]


def test_generate_cloud_success(client_for):
    items = [make_item("c1", "Meiji Shrine", "09:00", "10:00", day_id="day_2", date="2025-03-16")]
    cloud = FakeCloudPlanner(CloudPlanResponse(items=items, success=True))
    client = client_for(_services(FakeEngine(), cloud))
    resp = client.post("/v1/planner/generate", json={
        "trip_id": TRIP_ID, "day_id": "day_2", "city": "Tokyo", "date": "2025-03-16",
        "time_ranges": [{"start": "9:00", "end": "17:00"}],
    })
    assert resp.status_code == 200
    assert resp.json()["route"] == "cloud"
    assert resp.json()["index_status"] == "indexed"
    assert cloud.requests[0].time_ranges[0].start == "09:00"


def test_replan_offline_without_model(client_for):
    client = client_for(_services(FakeEngine(ready=False), online=False))
    resp = client.post("/v1/planner/replan", json={
        "trip_id": TRIP_ID, "day_id": DAY_ID, "instruction": "make it relaxed",
    })
    assert resp.status_code == 503


def test_trip_timeline_crud(client_for):
    services = _services(FakeEngine())
    client = client_for(services)

    created = client.post("/v1/trips", json={"name": "Kyoto", "start_date": "2025-04-01", "end_date": "2025-04-02"})
    assert created.status_code == 200
    trip_id = created.json()["trip"]["id"]
    day_id = created.json()["days"][0]["id"]

    added = client.post(f"/v1/trips/days/{day_id}/items", json={
        "title": "Kinkaku-ji", "start": "2025-04-01T09:00:00", "end": "2025-04-01T10:30:00",
    })
    assert added.status_code == 200
    item_id = added.json()["id"]

    moved = client.patch(f"/v1/trips/items/{item_id}", json={
        "start": "2025-04-01T14:00:00", "end": "2025-04-01T15:30:00",
    })
    assert moved.status_code == 200
    assert moved.json()["start"] == "2025-04-01T14:00:00"
    stored = asyncio.run(services.memory.search(trip_id, "Kinkaku-ji"))
    assert "from 14:00 to 15:30" in stored[0].chunk.text

    timeline = client.get(f"/v1/trips/{trip_id}").json()
    assert [len(d["items"]) for d in timeline["days"]] == [1, 0]

    listed = client.get("/v1/trips").json()["trips"]
    assert {t["id"] for t in listed} == {TRIP_ID, trip_id}

    assert client.delete(f"/v1/trips/items/{item_id}").status_code == 200
    assert client.delete(f"/v1/trips/{trip_id}").status_code == 200
    assert client.get(f"/v1/trips/{trip_id}").status_code == 404


def test_trip_errors(client_for):
    client = client_for(_services(FakeEngine()))
    reversed_dates = client.post("/v1/trips", json={"name": "Kyoto", "start_date": "2025-04-02", "end_date": "2025-04-01"})
    assert reversed_dates.status_code == 422
    assert client.post("/v1/trips/days/day_missing/items", json={
        "title": "Tea", "start": "2025-03-15T09:00:00", "end": "2025-03-15T10:00:00",
    }).status_code == 404
    assert client.patch("/v1/trips/items/a2", json={
        "start": "2025-03-15T14:00:00", "end": "2025-03-15T13:00:00",
    }).status_code == 422
    assert client.delete("/v1/trips/items/item_missing").status_code == 404
    assert client.post("/v1/trips/trip_missing/days").status_code == 404
