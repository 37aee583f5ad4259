"""HTTP-level tests: routing, status-code mapping and the cron secret."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import uuid
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from config import settings
from db.database import get_db
from main import app
from routers.dependencies import get_subscription_service
from schemas import SubscriptionStatus
from services.delivery_scheduler import DEFAULT_CADENCE_SETTINGS

from conftest import NOW


@pytest.fixture
def client(service):
    app.dependency_overrides[get_subscription_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create_body(**overrides) -> dict:
    body = {
        "user_id": str(uuid.uuid4()),
        "plan_id": "juice_weekly",
        "frequency": "weekly",
        "duration": 3,
        "base_price": 120,
        "items": [{"kind": "juice", "item_id": "green-detox", "quantity": 2}],
        "address": {"line1": "12 MG Road", "city": "Pune", "pincode": "411001"},
    }
    body.update(overrides)
    return body


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_create_subscription(client):
    resp = client.post("/api/subscriptions", json=_create_body())
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["subscription"]["final_price"] == 342
    assert data["subscription"]["status"] == "active"
    assert data["first_delivery_date"] == "2025-03-19T08:00:00"
    assert data["advisory_message"] is None


def test_create_with_bad_duration_is_400(client):
    resp = client.post("/api/subscriptions", json=_create_body(duration=13))
    assert resp.status_code == 400


def test_create_with_missing_items_is_422(client):
    resp = client.post("/api/subscriptions", json=_create_body(items=[]))
    assert resp.status_code == 422


def test_pause_unknown_is_404(client):
    resp = client.post("/api/subscriptions/pause", json={"subscription_id": str(uuid.uuid4())})
    assert resp.status_code == 404


def test_pause_then_reactivate(client, clock, make_subscription):
    sub = make_subscription()
    resp = client.post("/api/subscriptions/pause", json={"subscription_id": str(sub.id), "reason": "Away"})
    assert resp.status_code == 200
    assert resp.json()["data"]["subscription"]["status"] == "paused"

    clock.now = NOW + timedelta(days=10)
    resp = client.post("/api/subscriptions/reactivate", json={"subscription_id": str(sub.id)})
    assert resp.status_code == 200
    assert resp.json()["data"]["pause_duration_days"] == 10


def test_pause_after_cutoff_is_409(client, clock, make_subscription):
    clock.now = datetime(2025, 3, 12, 19, 0)
    sub = make_subscription(next_delivery_date=datetime(2025, 3, 13, 8, 0))
    resp = client.post("/api/subscriptions/pause", json={"subscription_id": str(sub.id)})
    assert resp.status_code == 409


def test_reactivate_active_is_409(client, make_subscription):
    sub = make_subscription()
    resp = client.post("/api/subscriptions/reactivate", json={"subscription_id": str(sub.id)})
    assert resp.status_code == 409


def test_reactivate_after_window_is_410(client, clock, make_subscription):
    sub = make_subscription(
        status=SubscriptionStatus.PAUSED,
        pause_date=NOW - timedelta(days=100),
        reactivation_deadline=NOW - timedelta(days=8),
    )
    resp = client.post("/api/subscriptions/reactivate", json={"subscription_id": str(sub.id)})
    assert resp.status_code == 410
    assert sub.status == SubscriptionStatus.EXPIRED


def test_pricing_endpoint(client):
    resp = client.get("/api/subscriptions/pricing", params={"base_price": 120, "duration": 3})
    assert resp.status_code == 200
    assert resp.json()["final_price"] == 342

    assert client.get("/api/subscriptions/pricing", params={"base_price": 120, "duration": 13}).status_code == 400


def test_duration_options_endpoint(client):
    resp = client.get("/api/subscriptions/duration-options")
    assert [o["months"] for o in resp.json()] == list(range(1, 13))


def test_admin_pause_status(client, make_admin_pause):
    assert client.get("/api/subscriptions/admin-pause-status").json()["has_active_pause"] is False

    make_admin_pause(reason="Festival holiday")
    body = client.get("/api/subscriptions/admin-pause-status").json()
    assert body["has_active_pause"] is True
    assert body["pause_type"] == "all"
    assert "Festival holiday" in body["message"]


def test_user_subscriptions(client, service, make_subscription):
    user_id = uuid.uuid4()
    make_subscription(user_id=user_id)
    resp = client.get(f"/api/subscriptions/user/{user_id}")
    assert resp.status_code == 200
    assert len(resp.json()) == 1
    assert resp.json()[0]["expiry"]["status"] == "active"


def test_admin_pause_endpoints(client, make_subscription):
    make_subscription()
    admin = str(uuid.uuid4())
    resp = client.post("/api/admin/subscriptions/pause", json={
        "pause_type": "all",
        "start_date": NOW.isoformat(),
        "reason": "Water supply issue",
        "admin_user_id": admin,
    })
    assert resp.status_code == 200
    pause_id = resp.json()["data"]["admin_pause_id"]
    assert resp.json()["data"]["affected_count"] == 1

    resp = client.post("/api/admin/subscriptions/reactivate", json={
        "admin_pause_id": pause_id, "admin_user_id": admin,
    })
    assert resp.status_code == 200
    assert resp.json()["data"]["processed_count"] == 1

    resp = client.post("/api/admin/subscriptions/reactivate", json={
        "admin_pause_id": str(uuid.uuid4()), "admin_user_id": admin,
    })
    assert resp.status_code == 404


def test_schedule_preview(client):
    async def fake_db():
        yield MagicMock()

    app.dependency_overrides[get_db] = fake_db
    with patch("routers.admin.load_cadence_settings", AsyncMock(return_value=dict(DEFAULT_CADENCE_SETTINGS))):
        resp = client.get("/api/admin/delivery-schedule/preview", params={
            "subscription_type": "juices", "start": "2025-03-03T08:00:00", "days": 5,
        })

    assert resp.status_code == 200
    body = resp.json()
    assert body["schedule"] == "Every 2 days"
    assert body["dates"] == ["2025-03-03", "2025-03-05", "2025-03-07", "2025-03-10", "2025-03-12"]


# ── Cron ───────────────────────────────────────────────────

def test_cron_requires_configured_secret(client):
    with patch.object(settings, "CRON_SECRET", ""):
        assert client.post("/api/cron/renewal-check").status_code == 503


def test_cron_rejects_wrong_secret(client):
    with patch.object(settings, "CRON_SECRET", "s3cret"):
        resp = client.post("/api/cron/renewal-check", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


def test_cron_jobs(client, make_subscription):
    make_subscription(subscription_end_date=NOW + timedelta(days=2))
    headers = {"Authorization": "Bearer s3cret"}
    with patch.object(settings, "CRON_SECRET", "s3cret"):
        renewal = client.post("/api/cron/renewal-check", headers=headers)
        regen = client.post("/api/cron/regenerate-schedules", headers=headers)

    assert renewal.status_code == 200
    assert renewal.json() == {"processed_count": 1, "total": 1, "errors": []}
    assert regen.status_code == 200
    assert regen.json()["schedules"]["processed_count"] == 1
    assert regen.json()["admin_pauses_lifted"]["total"] == 0
