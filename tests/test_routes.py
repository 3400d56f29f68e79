import fakeredis
import fakeredis.aioredis
import pytest
from fastapi.testclient import TestClient

from renderspace.api.main import create_app
from renderspace.config import config
from renderspace.container import build_services
from renderspace.routes.auth import AuthenticatedUser, get_current_user

from conftest import ACCOUNT_ID, OWNER_ID, FakeSupabase, StubGeneration, StubStorage


@pytest.fixture
def app_env(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "LOCAL_STORAGE_PATH", str(tmp_path))

    db = FakeSupabase()
    db.add_account(ACCOUNT_ID, credits=1, members=[OWNER_ID])
    db.add_account("acct-2", credits=5, members=["user-2"])

    services = build_services(
        config,
        redis_client=fakeredis.aioredis.FakeRedis(decode_responses=True),
        queue_connection=fakeredis.FakeStrictRedis(),
        supabase_client=db,
        generation=StubGeneration(),
        storage=StubStorage(),
    )
    app = create_app(services=services, start_scheduler=False)
    app.dependency_overrides[get_current_user] = lambda: AuthenticatedUser(OWNER_ID, ACCOUNT_ID)

    with TestClient(app) as client:
        yield app, client, db, services


def _as(app, user_id, account_id):
    app.dependency_overrides[get_current_user] = lambda: AuthenticatedUser(user_id, account_id)


CREATE_BODY = {
    "title": "Living room",
    "room_type": "living room",
    "lighting": "natural",
    "input_image_url": "https://img.example.com/collage.png",
}


def test_create_render_queues_job(app_env):
    app, client, db, services = app_env

    response = client.post("/api/render/create", json=CREATE_BODY)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    job = db.job_row(body["job_id"])
    assert job["status"] == "pending"
    assert job["owner_id"] == OWNER_ID
    assert [a["action"] for a in db.tables["activity_logs"]] == ["CREATE_RENDER"]
    assert services.queue.count == 1
    # Credits are only charged on completion
    assert db.account(ACCOUNT_ID)["credits"] == 1


def test_create_render_missing_fields(app_env):
    app, client, db, services = app_env

    response = client.post("/api/render/create", json={"title": "No image"})

    assert response.status_code == 400
    assert "input_image_url" in response.json()["detail"]
    assert db.tables["render_jobs"] == []


def test_create_render_insufficient_credits(app_env):
    app, client, db, services = app_env
    db.account(ACCOUNT_ID)["credits"] = 0

    response = client.post("/api/render/create", json=CREATE_BODY)

    assert response.status_code == 402
    assert db.tables["render_jobs"] == []


def test_place_collage_needs_two_credits(app_env):
    app, client, db, services = app_env
    body = {
        "room_photo_url": "https://img.example.com/room.jpg",
        "collage_image_url": "https://img.example.com/collage.png",
        "title": "Bedroom",
        "room_type": "bedroom",
        "lighting": "warm",
    }

    assert client.post("/api/render/place-collage", json=body).status_code == 402

    db.account(ACCOUNT_ID)["credits"] = 2
    response = client.post("/api/render/place-collage", json=body)

    assert response.status_code == 200
    job = db.job_row(response.json()["job_id"])
    assert job["render_type"] == "placement"
    assert job["input_image_url"] == "https://img.example.com/room.jpg"
    assert job["style_image_url"] == "https://img.example.com/collage.png"


def test_status_errors(app_env):
    app, client, db, services = app_env
    job_id = client.post("/api/render/create", json=CREATE_BODY).json()["job_id"]

    assert client.get("/api/render/status").status_code == 400
    assert client.get("/api/render/status", params={"id": "missing"}).status_code == 404

    _as(app, "user-2", "acct-2")
    assert client.get("/api/render/status", params={"id": job_id}).status_code == 403


def test_status_returns_record_and_reaps_timeouts(app_env):
    app, client, db, services = app_env
    job_id = client.post("/api/render/create", json=CREATE_BODY).json()["job_id"]

    fresh = client.get("/api/render/status", params={"id": job_id})
    assert fresh.status_code == 200
    assert fresh.json()["status"] == "pending"

    db.age_job(job_id, minutes=7)
    timed_out = client.get("/api/render/status", params={"id": job_id}).json()

    assert timed_out["status"] == "failed"
    assert "timed out" in timed_out["error_message"]


def test_active_and_list(app_env):
    app, client, db, services = app_env

    assert client.get("/api/render/active").json() is None

    job_id = client.post("/api/render/create", json=CREATE_BODY).json()["job_id"]

    assert client.get("/api/render/active").json()["id"] == job_id
    listed = client.get("/api/render/jobs").json()
    assert listed["total"] == 1
    assert listed["jobs"][0]["id"] == job_id


def test_credit_routes(app_env):
    app, client, db, services = app_env

    balance = client.get("/api/credits").json()
    assert balance["credits"] == 1
    assert balance["account_id"] == ACCOUNT_ID

    history = client.get("/api/credits/transactions").json()
    assert history["transactions"] == []


def test_activity_lists_own_entries_newest_first(app_env):
    app, client, db, services = app_env
    db.tables["activity_logs"].append({
        "id": "older",
        "account_id": ACCOUNT_ID,
        "user_id": OWNER_ID,
        "action": "PURCHASE_CREDITS",
        "ip_address": "",
        "timestamp": "2020-01-01T00:00:00+00:00",
    })
    db.tables["activity_logs"].append({
        "id": "someone-else",
        "account_id": "acct-2",
        "user_id": "user-2",
        "action": "CREATE_RENDER",
        "ip_address": "",
        "timestamp": "2020-01-02T00:00:00+00:00",
    })
    client.post("/api/render/create", json=CREATE_BODY)

    activity = client.get("/api/credits/activity").json()["activity"]

    assert [entry["action"] for entry in activity] == ["CREATE_RENDER", "PURCHASE_CREDITS"]
    assert set(activity[0]) == {"id", "action", "timestamp", "ip_address"}


def test_admin_logs_filter_by_job_and_source(app_env):
    app, client, db, services = app_env
    job_id = client.post("/api/render/create", json=CREATE_BODY).json()["job_id"]
    client.post("/api/render/create", json=CREATE_BODY)

    logs = client.get(
        "/api/admin/logs",
        params={"job_id": job_id, "source": "render_pipeline"},
    ).json()["logs"]

    assert logs
    assert {entry["job_id"] for entry in logs} == {job_id}
    assert {entry["source"] for entry in logs} == {"render_pipeline"}
    assert client.get("/api/admin/logs", params={"source": "stories"}).status_code == 422


def test_admin_status_requires_key_when_configured(app_env, monkeypatch):
    app, client, db, services = app_env
    monkeypatch.setattr(config, "API_KEYS", "secret-key")

    assert client.get("/api/admin/status").status_code == 401
    assert client.get("/api/admin/status", headers={"X-API-Key": "wrong"}).status_code == 403

    response = client.get("/api/admin/status", headers={"X-API-Key": "secret-key"})
    assert response.status_code == 200
    assert response.json()["queue"] == {"waiting": 0, "active": 0, "completed": 0, "failed": 0, "workers": 0}


def test_health(app_env):
    app, client, db, services = app_env

    body = client.get("/health").json()

    assert body["redis"]["status"] == "healthy"
    assert "queue" in body["redis"]


def test_services_missing_returns_503(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "LOCAL_STORAGE_PATH", str(tmp_path))
    monkeypatch.setattr(config, "REDIS_URL", None)
    app = create_app(start_scheduler=False)
    app.dependency_overrides[get_current_user] = lambda: AuthenticatedUser(OWNER_ID, ACCOUNT_ID)

    with TestClient(app) as client:
        assert client.get("/api/render/active").status_code == 503
        assert client.get("/health").json()["status"] == "degraded"
