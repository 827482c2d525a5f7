"""
Analytics engine regression tests.

Covers the dashboard math that must stay stable:
1. Trend percentages never produce NaN/Infinity
2. Health score penalties, caps, clamping and bottleneck ordering
3. Low-rating bottleneck uses aggregate counts across locations
4. Comparison windows, staleness and location highlights
"""
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from gmb_hub.services.analytics_service import (
    HealthInputs,
    LocationSummary,
    calculate_percent_change,
    compute_health_and_bottlenecks,
    compute_review_stats,
    count_stale_locations,
    is_location_stale,
    monthly_windows,
    pick_location_highlights,
)

NOW = datetime(2026, 10, 17, 12, 0, 0)


def _review(rating, has_reply, status=None, sentiment=None, review_date=None):
    return SimpleNamespace(
        rating=rating,
        has_reply=has_reply,
        status=status or ("replied" if has_reply else "pending"),
        ai_sentiment=sentiment,
        review_date=review_date,
    )


# ---------------------------------------------------------------------------
# Trend percentages
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("current, previous, expected", [
    (0, 0, 0.0),
    (5, 0, 100.0),
    (8, 4, 100.0),
    (3, 6, -50.0),
    (1, 3, -66.7),
    (-2, -4, 50.0),
])
def test_percent_change_values(current, previous, expected):
    assert calculate_percent_change(current, previous) == expected


def test_percent_change_treats_non_finite_as_zero():
    assert calculate_percent_change(float("nan"), 4) == -100.0
    assert calculate_percent_change(5, float("inf")) == 100.0
    assert calculate_percent_change(None, None) == 0.0


# ---------------------------------------------------------------------------
# Health score
# ---------------------------------------------------------------------------

def test_perfect_account_scores_100_with_no_bottlenecks():
    report = compute_health_and_bottlenecks(HealthInputs(
        average_rating=4.8, total_reviews=50, response_rate=100.0,
    ))
    assert report.score == 100
    assert report.bottlenecks == []


def test_each_penalty_is_capped():
    report = compute_health_and_bottlenecks(HealthInputs(
        pending_reviews=500,
        unanswered_questions=500,
        average_rating=1.0,
        total_reviews=600,
        response_rate=0.0,
        stale_locations=500,
    ))
    # 100 - 20 - 10 - 15 - 10 - 10
    assert report.score == 35
    assert len(report.bottlenecks) == 5


def test_score_monotone_in_pending_reviews():
    base = dict(unanswered_questions=2, average_rating=3.5, total_reviews=20, response_rate=50.0, stale_locations=1)
    previous = None
    for pending in range(0, 40):
        score = compute_health_and_bottlenecks(HealthInputs(pending_reviews=pending, **base)).score
        assert 0 <= score <= 100
        if previous is not None:
            assert score <= previous, f"score increased when pending went to {pending}"
        previous = score


def test_bottlenecks_sorted_by_severity_descending():
    report = compute_health_and_bottlenecks(HealthInputs(
        pending_reviews=3,          # low
        unanswered_questions=2,     # medium
        average_rating=3.0,
        total_reviews=20,           # General -> high
        response_rate=90.0,
        stale_locations=5,          # high
    ))
    severities = [b.severity for b in report.bottlenecks]
    assert severities == ["high", "high", "medium", "low"]
    # Stable within a severity: General was detected before Compliance
    assert [b.type for b in report.bottlenecks[:2]] == ["General", "Compliance"]


@pytest.mark.parametrize("pending, severity", [(1, "low"), (5, "low"), (6, "medium"), (10, "medium"), (11, "high")])
def test_pending_review_severity_thresholds(pending, severity):
    report = compute_health_and_bottlenecks(HealthInputs(pending_reviews=pending, response_rate=100.0))
    reviews = [b for b in report.bottlenecks if b.type == "Reviews"]
    assert reviews[0].severity == severity
    assert reviews[0].count == pending


def test_bottleneck_messages_and_links():
    report = compute_health_and_bottlenecks(HealthInputs(
        pending_reviews=1, unanswered_questions=1, stale_locations=1,
        average_rating=3.24, total_reviews=12, response_rate=41.666,
    ))
    messages = {b.message: b.link for b in report.bottlenecks}
    assert messages == {
        "1 review awaiting response.": "/reviews",
        "1 customer question need answering.": "/questions",
        "Average rating (3.2) is below 4.0. Improve service quality.": "/analytics",
        "Response rate (41.7%) is below target. Aim for 80%+.": "/reviews",
        "1 location has stale data. Run a sync.": "/dashboard",
    }


# ---------------------------------------------------------------------------
# End-to-end: two locations, aggregate thresholds
# ---------------------------------------------------------------------------

def test_two_location_scenario_uses_aggregate_counts():
    """
    Location A: 12 reviews, 2 unreplied, avg ~4.7
    Location B: 3 reviews, all unreplied, avg 3.0

    B alone is below 4.0 but has only 3 reviews; the aggregate average is
    above 4.0, so no low-rating bottleneck is emitted.
    """
    location_a = [_review(5, True)] * 7 + [_review(4, True)] * 3 + [_review(5, False), _review(4, False)]
    location_b = [_review(3, False), _review(3, False), _review(3, False)]

    stats = compute_review_stats(location_a + location_b)
    assert stats.total == 15
    assert stats.pending == 5
    assert stats.average_rating == pytest.approx(65 / 15)
    assert stats.average_rating >= 4.0

    report = compute_health_and_bottlenecks(HealthInputs(
        pending_reviews=stats.pending,
        average_rating=stats.average_rating,
        total_reviews=stats.total,
        response_rate=stats.response_rate,
    ))

    types = [b.type for b in report.bottlenecks]
    assert "General" not in types

    reviews = [b for b in report.bottlenecks if b.type == "Reviews"]
    assert len(reviews) == 1
    assert reviews[0].count == 5
    assert reviews[0].severity == "low"

    # 10/15 replied = 66.7% -> response-rate bottleneck too
    assert stats.response_rate == pytest.approx(66.666, rel=1e-3)
    assert report.score == 100 - 10 - 10


def test_review_stats_breakdowns():
    stats = compute_review_stats([
        _review(5, True, sentiment="positive"),
        _review(1, False, status="flagged", sentiment="negative"),
        _review(3, False, sentiment="neutral"),
    ])
    assert stats.by_rating == {"1": 1, "2": 0, "3": 1, "4": 0, "5": 1}
    assert stats.by_sentiment == {"positive": 1, "neutral": 1, "negative": 1}
    assert stats.flagged == 1
    assert stats.replied == 1


def test_review_stats_empty():
    stats = compute_review_stats([])
    assert stats.total == 0
    assert stats.average_rating == 0
    assert stats.response_rate == 0


# ---------------------------------------------------------------------------
# Windows and staleness
# ---------------------------------------------------------------------------

def test_monthly_windows_are_contiguous_and_disjoint():
    current, previous = monthly_windows(NOW, 30)
    assert current.end == NOW
    assert previous.end == current.start
    assert current.start - previous.start == timedelta(days=30)

    boundary = current.start
    assert previous.contains(boundary)
    assert not current.contains(boundary)
    assert current.contains(NOW)
    assert not previous.contains(NOW - timedelta(days=61))


def test_location_staleness():
    assert is_location_stale([], NOW)
    assert is_location_stale([None], NOW)
    assert not is_location_stale([NOW - timedelta(hours=23)], NOW)
    assert is_location_stale([NOW - timedelta(hours=25)], NOW)
    # Newest timestamp wins
    assert not is_location_stale([NOW - timedelta(days=10), NOW - timedelta(hours=1)], NOW)


def test_count_stale_locations():
    locations = [
        LocationSummary(id=1, name="fresh", sync_timestamps=[NOW - timedelta(hours=2)]),
        LocationSummary(id=2, name="old", sync_timestamps=[NOW - timedelta(days=3)]),
        LocationSummary(id=3, name="never"),
    ]
    assert count_stale_locations(locations, NOW) == 2


# ---------------------------------------------------------------------------
# Highlights
# ---------------------------------------------------------------------------

def test_highlights_each_location_used_once():
    locations = [
        LocationSummary(id=1, name="Best", rating=4.9, review_count=40, pending_reviews=9, rating_change=0.4),
        LocationSummary(id=2, name="Busy", rating=3.9, review_count=30, pending_reviews=9, rating_change=0.1),
        LocationSummary(id=3, name="Busy but better", rating=4.2, review_count=30, pending_reviews=9),
        LocationSummary(id=4, name="Climbing", rating=4.0, review_count=10, pending_reviews=0, rating_change=0.3),
        LocationSummary(id=5, name="Archived star", status="archived", rating=5.0, review_count=99),
    ]
    highlights = {h.category: h.id for h in pick_location_highlights(locations)}

    assert highlights["top"] == 1
    # Tie on pending reviews -> lowest rating wins
    assert highlights["attention"] == 2
    # Location 1 has the biggest delta but is already used
    assert highlights["improved"] == 4
    assert 5 not in highlights.values()


def test_highlights_fall_back_to_any_active_location():
    locations = [
        LocationSummary(id=7, name="Closed", status="disconnected"),
        LocationSummary(id=8, name="New"),
    ]
    highlights = pick_location_highlights(locations)
    assert [(h.id, h.category) for h in highlights] == [(8, "top")]


def test_highlights_empty_without_active_locations():
    assert pick_location_highlights([LocationSummary(id=1, name="x", status="archived")]) == []
