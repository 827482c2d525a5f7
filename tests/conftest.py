"""
Shared fixtures: in-memory database and a fake Google API.

Environment is set before gmb_hub is imported so Settings picks it up.
"""
import os
import tempfile
from datetime import timedelta

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "gmb_hub_test_logs"))
os.environ.setdefault("ENABLE_SCHEDULER", "false")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("BULK_REPLY_DELAY_SECONDS", "0")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gmb_hub.connectors.base_connector import GoogleBaseConnector
from gmb_hub.models.base import init_db
from gmb_hub.models.gmb import GMBAccount
from gmb_hub.utils.helpers import utcnow

ACCOUNT_RESOURCE = "accounts/111"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_account(db):
    def _make(user_id="user-1", account_id=ACCOUNT_RESOURCE, expires_in_minutes=60, **overrides):
        values = dict(
            user_id=user_id,
            account_name="Test Business",
            account_id=account_id,
            access_token="stored-access-token",
            refresh_token="stored-refresh-token",
            token_expires_at=utcnow() + timedelta(minutes=expires_in_minutes),
            is_active=True,
            settings={"syncSchedule": "daily"},
        )
        values.update(overrides)
        account = GMBAccount(**values)
        db.add(account)
        db.commit()
        return account

    return _make


@pytest.fixture
def account(make_account):
    return make_account()


# ---------------------------------------------------------------------------
# Fake Google API
# ---------------------------------------------------------------------------

class FakeGoogle:
    """
    Route table standing in for every Google endpoint a connector calls.

    Routes match on HTTP method and URL suffix; a route's response is either a
    (status, payload) tuple or a callable taking the request params.
    """

    def __init__(self):
        self.routes = []
        self.calls = []

    def add(self, method, suffix, response):
        self.routes.insert(0, (method, suffix, response))

    def get(self, suffix, response):
        self.add("GET", suffix, response)

    def calls_to(self, suffix, method=None):
        return [c for c in self.calls if c["url"].endswith(suffix) and (method is None or c["method"] == method)]

    async def request(self, connector, method, url, params=None, json=None):
        self.calls.append({"connector": connector.name, "method": method, "url": url,
                           "params": params, "json": json, "token": connector.access_token})
        for route_method, suffix, response in self.routes:
            if route_method == method and url.endswith(suffix):
                return response(params) if callable(response) else response
        return 404, {"error": {"code": 404, "message": "Not found", "status": "NOT_FOUND"}}


@pytest.fixture
def fake_google(monkeypatch):
    fake = FakeGoogle()

    async def _request(self, method, url, params=None, json=None):
        self.request_count += 1
        return await fake.request(self, method, url, params=params, json=json)

    monkeypatch.setattr(GoogleBaseConnector, "_request", _request)
    return fake


def google_location(location_id, title="Location", **extra):
    location = {
        "name": f"locations/{location_id}",
        "title": title,
        "storefrontAddress": {
            "addressLines": [f"{location_id} Main St"],
            "locality": "Springfield",
            "administrativeArea": "IL",
            "postalCode": "62701",
        },
        "phoneNumbers": {"primaryPhone": "+1 555 0100"},
        "categories": {"primaryCategory": {"displayName": "Cafe"}},
        "websiteUri": "https://example.com",
    }
    location.update(extra)
    return location


def google_review(location_id, review_id, stars="FIVE", reply=None, create_time="2026-10-01T10:00:00Z"):
    review = {
        "name": f"{ACCOUNT_RESOURCE}/locations/{location_id}/reviews/{review_id}",
        "reviewId": review_id,
        "reviewer": {"displayName": f"Reviewer {review_id}"},
        "starRating": stars,
        "comment": f"Review {review_id}",
        "createTime": create_time,
        "updateTime": create_time,
    }
    if reply:
        review["reviewReply"] = {"comment": reply, "updateTime": create_time}
    return review


def google_media(location_id, media_id):
    return {
        "name": f"{ACCOUNT_RESOURCE}/locations/{location_id}/media/{media_id}",
        "mediaFormat": "PHOTO",
        "googleUrl": f"https://lh3.googleusercontent.com/{media_id}",
        "thumbnailUrl": f"https://lh3.googleusercontent.com/{media_id}=s100",
        "createTime": "2026-09-01T00:00:00Z",
    }


def daily_metrics_payload(values):
    """values: {metric: [(year, month, day, value-or-None), ...]}"""
    series = []
    for metric, points in values.items():
        dated = []
        for year, month, day, value in points:
            entry = {"date": {"year": year, "month": month, "day": day}}
            if value is not None:
                entry["value"] = str(value)
            dated.append(entry)
        series.append({"dailyMetric": metric, "timeSeries": {"datedValues": dated}})
    return {"multiDailyMetricTimeSeries": [{"dailyMetricTimeSeries": series}]}


def keywords_payload(*items, next_page_token=None):
    counts = []
    for keyword, kind, number in items:
        counts.append({"searchKeyword": keyword, "insightsValue": {kind: str(number)}})
    payload = {"searchKeywordsCounts": counts}
    if next_page_token:
        payload["nextPageToken"] = next_page_token
    return payload


@pytest.fixture
def google_account_data(fake_google):
    """
    Two locations:
      locations/1 - 3 reviews over two pages (one with an invalid rating), 1 photo
      locations/2 - 1 review, no media
    Both have 2 metrics x 2 days and 2 keywords per month.
    """
    fake_google.get(
        f"/{ACCOUNT_RESOURCE}/locations",
        (200, {"locations": [google_location("1", "Downtown"), google_location("2", "Uptown")]}),
    )

    def location_1_reviews(params):
        if params.get("pageToken") == "page-2":
            return 200, {"reviews": [google_review("1", "r3", "THREE")]}
        return 200, {
            "reviews": [
                google_review("1", "r1", "FIVE", reply="Thanks!"),
                google_review("1", "r-bad", "STAR_RATING_UNSPECIFIED"),
            ],
            "nextPageToken": "page-2",
        }

    fake_google.get(f"/{ACCOUNT_RESOURCE}/locations/1/reviews", location_1_reviews)
    fake_google.get(f"/{ACCOUNT_RESOURCE}/locations/2/reviews", (200, {"reviews": [google_review("2", "r4", "FOUR")]}))
    fake_google.get(f"/{ACCOUNT_RESOURCE}/locations/1/media", (200, {"mediaItems": [google_media("1", "m1")]}))
    fake_google.get(f"/{ACCOUNT_RESOURCE}/locations/2/media", (200, {}))

    metrics = daily_metrics_payload({
        "CALL_CLICKS": [(2026, 10, 1, 3), (2026, 10, 2, None)],
        "WEBSITE_CLICKS": [(2026, 10, 1, 7), (2026, 10, 2, 1)],
    })
    for location_id in ("1", "2"):
        fake_google.get(f"locations/{location_id}:fetchMultiDailyMetricsTimeSeries", (200, metrics))
        fake_google.get(
            f"locations/{location_id}/searchkeywords/impressions/monthly",
            (200, keywords_payload(("coffee near me", "value", 120), ("late night cafe", "threshold", 15))),
        )
    return fake_google
