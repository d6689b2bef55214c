from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from auth.utils import create_token  # noqa: E402
from config import settings  # noqa: E402
from db.database import Base, get_db  # noqa: E402
from main import app  # noqa: E402
from utils.datetime_utils import adjusted_day_of_week  # noqa: E402


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    testing_session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def _override_get_db():
        db = testing_session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


def _auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_token(user_id)}"}


def test_requests_without_token_are_rejected(client):
    assert client.get("/api/activities", params={"period": "daily"}).status_code == 401
    bad = client.get("/api/activities", params={"period": "daily"}, headers={"Authorization": "Bearer nope"})
    assert bad.status_code == 401


def test_health_and_security_headers(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


def test_schedule_populate_and_complete_flow(client):
    headers = _auth("api-user")

    seeded = client.get("/api/achievements", headers=headers)
    assert seeded.status_code == 200
    assert [a["title"] for a in seeded.json()["achievements"]] == [settings.DEFAULT_ACHIEVEMENT_TITLE]

    created = client.post(
        "/api/activities",
        json={"title": "Meditate", "period": "daily"},
        headers=headers,
    )
    assert created.status_code == 201
    activity_id = created.json()["activity"]["id"]

    weekday = adjusted_day_of_week()
    config = client.post(
        "/api/todo-day-configs",
        json={"day_of_week": weekday, "activity_id": activity_id},
        headers=headers,
    )
    assert config.status_code == 201

    populated = client.post("/api/todo-items/populate", headers=headers)
    assert populated.status_code == 200
    items = populated.json()["todo_items"]
    assert [i["activity_id"] for i in items] == [activity_id]

    again = client.post("/api/todo-items/populate", headers=headers)
    assert [i["id"] for i in again.json()["todo_items"]] == [items[0]["id"]]

    done = client.post(f"/api/todo-items/{items[0]['id']}/complete", headers=headers)
    assert done.status_code == 200
    body = done.json()
    assert body["count"] == 1
    assert [a["title"] for a in body["completed_achievements"]] == [settings.DEFAULT_ACHIEVEMENT_TITLE]

    assert client.get("/api/todo-items", headers=headers).json()["todo_items"] == []
    listed = client.get("/api/activities", params={"period": "daily"}, headers=headers).json()["activities"]
    assert listed[0]["count"] == 1
    achievements = client.get("/api/achievements", headers=headers).json()["achievements"]
    assert achievements[0]["completed"] is True

    history = client.get(f"/api/activities/{activity_id}/history", headers=headers)
    assert history.status_code == 200
    assert history.json()["history"][-1]["count"] == 1


def test_count_endpoint_and_errors(client):
    headers = _auth("api-user")
    activity_id = client.post(
        "/api/activities",
        json={"title": "Water", "period": "daily", "goal_count": 3},
        headers=headers,
    ).json()["activity"]["id"]

    up = client.post(f"/api/activities/{activity_id}/history", json={"delta": 1}, headers=headers)
    assert up.status_code == 200
    assert up.json() == {"count": 1, "completed_achievements": []}

    assert client.post(f"/api/activities/{activity_id}/history", json={"delta": 0}, headers=headers).status_code == 400
    assert client.delete("/api/activities/missing", headers=headers).status_code == 404
    assert client.put("/api/todo-items/reorder", json={"ordered_ids": ["missing"]}, headers=headers).status_code == 400
    assert client.post(
        "/api/todo-day-configs",
        json={"day_of_week": 2, "activity_id": "missing"},
        headers=headers,
    ).status_code == 400

    other = _auth("someone-else")
    assert client.get(f"/api/activities/{activity_id}", headers=other).status_code == 404


def test_user_config_and_account_delete(client):
    headers = _auth("api-user")

    assert client.get("/api/user-config", headers=headers).json() == {
        "day_end_offset_minutes": 0,
        "clear_todo_on_new_day": True,
    }
    assert client.put("/api/user-config", json={"day_end_offset_minutes": 5000}, headers=headers).status_code == 400
    updated = client.put(
        "/api/user-config",
        json={"day_end_offset_minutes": 60, "clear_todo_on_new_day": False},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json() == {"day_end_offset_minutes": 60, "clear_todo_on_new_day": False}

    client.post("/api/activities", json={"title": "Walk", "period": "weekly"}, headers=headers)
    assert client.delete("/api/account", headers=headers).status_code == 200
    assert client.get("/api/activities", params={"period": "weekly"}, headers=headers).json()["activities"] == []
    assert client.get("/api/user-config", headers=headers).json()["day_end_offset_minutes"] == 0


def test_null_archived_does_not_restore_activity(client):
    headers = _auth("api-user")
    activity_id = client.post(
        "/api/activities",
        json={"title": "Old hobby", "period": "daily"},
        headers=headers,
    ).json()["activity"]["id"]
    assert client.put(f"/api/activities/{activity_id}", json={"archived": True}, headers=headers).status_code == 200

    resp = client.put(f"/api/activities/{activity_id}", json={"archived": None}, headers=headers)

    assert resp.status_code == 400
    assert client.get(f"/api/activities/{activity_id}", headers=headers).json()["activity"]["archived"] is True
