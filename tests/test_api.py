"""
HTTP surface tests
"""
import pytest
from fastapi.testclient import TestClient

from gmb_hub.api.deps import get_sync_service
from gmb_hub.connectors.oauth_connector import GoogleOAuthConnector
from gmb_hub.main import app
from gmb_hub.models.base import get_db
from gmb_hub.models.gmb import GMBLocation, GMBReview
from gmb_hub.services.gmb_sync_service import GMBSyncService

from conftest import ACCOUNT_RESOURCE

CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}
USER_HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    def override_get_sync_service():
        return GMBSyncService(session_factory())

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sync_service] = override_get_sync_service
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


# ---------------------------------------------------------------------------
# /gmb/sync
# ---------------------------------------------------------------------------

def test_sync_requires_a_caller(client, account):
    response = client.post("/gmb/sync", json={"account_id": account.id})
    assert response.status_code == 401


def test_sync_as_owner(client, account, google_account_data):
    response = client.post("/gmb/sync", json={"account_id": account.id, "sync_type": "full"}, headers=USER_HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["counts"]["locations"] == 2
    assert body["counts"]["reviews"] == 3


def test_sync_with_cron_secret(client, account, google_account_data):
    response = client.post("/gmb/sync", json={"account_id": account.id, "sync_type": "incremental"},
                           headers=CRON_HEADERS)
    assert response.status_code == 200
    assert response.json()["sync_type"] == "incremental"


def test_sync_of_someone_elses_account_is_not_found(client, account, fake_google):
    response = client.post("/gmb/sync", json={"account_id": account.id}, headers={"X-User-Id": "user-2"})

    assert response.status_code == 404
    assert response.json()["error"] == "account_not_found"
    assert fake_google.calls == []


def test_sync_with_revoked_grant_is_401(client, make_account, fake_google, monkeypatch):
    account = make_account(expires_in_minutes=-5)

    async def rejected(self, data):
        return 400, {"error": "invalid_grant", "error_description": "Token has been expired or revoked."}

    monkeypatch.setattr(GoogleOAuthConnector, "_post_form", rejected)

    response = client.post("/gmb/sync", json={"account_id": account.id}, headers=USER_HEADERS)

    assert response.status_code == 401
    assert response.json() == {
        "ok": False,
        "error": "invalid_grant",
        "message": "Google authorization expired. Please reconnect your account.",
    }


def test_sync_rejects_unknown_sync_type(client, account, fake_google):
    response = client.post("/gmb/sync", json={"account_id": account.id, "sync_type": "partial"},
                           headers=USER_HEADERS)
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_sync_type"


def test_sync_locations_failure_is_502(client, account, fake_google):
    fake_google.get(f"/{ACCOUNT_RESOURCE}/locations", (503, {"error": {"code": 503, "message": "unavailable"}}))
    response = client.post("/gmb/sync", json={"account_id": account.id}, headers=USER_HEADERS)
    assert response.status_code == 502
    assert response.json()["error"] == "locations_fetch_failed"


# ---------------------------------------------------------------------------
# Scheduled sync and disconnect
# ---------------------------------------------------------------------------

def test_scheduled_sync_requires_cron_secret(client):
    assert client.get("/gmb/scheduled-sync").status_code == 401
    assert client.get("/gmb/scheduled-sync", headers={"Authorization": "Bearer wrong"}).status_code == 401


def test_scheduled_sync_with_cron_secret(client):
    response = client.get("/gmb/scheduled-sync", headers=CRON_HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["synced"] == 0
    assert body["errors"] == 0
    assert set(body["schedule"]) == {"hour", "day_of_week"}


def test_disconnect(client, db, account):
    response = client.post("/gmb/disconnect", json={"account_id": account.id}, headers=USER_HEADERS)
    assert response.status_code == 200
    assert response.json()["ok"] is True

    db.expire_all()
    db.refresh(account)
    assert account.is_active is False
    assert account.refresh_token is None


def test_disconnect_requires_user(client, account):
    assert client.post("/gmb/disconnect", json={"account_id": account.id}).status_code == 401


# ---------------------------------------------------------------------------
# Replies and dashboard
# ---------------------------------------------------------------------------

@pytest.fixture
def pending_review(db, account):
    location = GMBLocation(gmb_account_id=account.id, user_id="user-1", location_id="locations/1",
                           location_name="Downtown")
    db.add(location)
    db.flush()
    review = GMBReview(gmb_account_id=account.id, location_id=location.id, user_id="user-1",
                       external_review_id=f"{ACCOUNT_RESOURCE}/locations/1/reviews/r1",
                       rating=4, has_reply=False, status="pending")
    db.add(review)
    db.commit()
    return review


def test_reply_endpoint(client, pending_review, fake_google):
    fake_google.add("PUT", "/reviews/r1/reply", (200, {"comment": "Thanks!"}))

    response = client.post(f"/reviews/{pending_review.id}/reply", json={"text": "Thanks!"}, headers=USER_HEADERS)

    assert response.status_code == 200
    assert response.json()["status"] == "replied"


def test_reply_endpoint_validates_text(client, pending_review, fake_google):
    response = client.post(f"/reviews/{pending_review.id}/reply", json={"text": " "}, headers=USER_HEADERS)
    assert response.status_code == 400
    assert response.json()["detail"] == "Reply text cannot be empty"


def test_bulk_reply_endpoint(client, pending_review, fake_google):
    fake_google.add("PUT", "/reviews/r1/reply", (200, {}))

    response = client.post("/reviews/bulk-reply", json={"review_ids": [pending_review.id, 777], "text": "Thanks!"},
                           headers=USER_HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["succeeded"] == [pending_review.id]
    assert body["failed"][0]["review_id"] == 777


def test_dashboard_overview(client, pending_review):
    response = client.get("/dashboard/overview", headers=USER_HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["kpis"]["pending_reviews"] == 1
    assert body["location_summary"]["total_locations"] == 1
    assert body["bottlenecks"][0]["type"] == "Reviews"


def test_dashboard_requires_user(client):
    assert client.get("/dashboard/overview").status_code == 401
