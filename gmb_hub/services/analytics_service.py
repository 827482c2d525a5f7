"""
Dashboard analytics engine

Pure functions over already-synced rows: health score, bottlenecks, trend
percentages, comparison windows, review stats and location highlights.
No database or network access happens here.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from gmb_hub.utils.helpers import finite_or_zero, safe_divide

SEVERITY_RANK = {"high": 3, "medium": 2, "low": 1}

# Health score thresholds
PENDING_REVIEW_PENALTY = 2
PENDING_REVIEW_CAP = 20
UNANSWERED_QUESTION_PENALTY = 3
UNANSWERED_QUESTION_CAP = 10
LOW_RATING_THRESHOLD = 4.0
LOW_RATING_MIN_REVIEWS = 10
LOW_RATING_PENALTY = 15
RESPONSE_RATE_TARGET = 80.0
RESPONSE_RATE_MIN_REVIEWS = 5
RESPONSE_RATE_PENALTY = 10
STALE_LOCATION_PENALTY = 2
STALE_LOCATION_CAP = 10


@dataclass
class Bottleneck:
    """One actionable issue dragging the health score down"""
    type: str  # Reviews, Response, Content, Compliance, General
    severity: str  # low, medium, high
    count: int
    message: str
    link: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class HealthInputs:
    pending_reviews: int = 0
    unanswered_questions: int = 0
    average_rating: float = 0.0
    total_reviews: int = 0
    response_rate: float = 0.0
    stale_locations: int = 0


@dataclass
class HealthReport:
    score: int
    bottlenecks: List[Bottleneck] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "bottlenecks": [b.to_dict() for b in self.bottlenecks]}


@dataclass
class ReviewStats:
    total: int = 0
    pending: int = 0
    replied: int = 0
    flagged: int = 0
    by_rating: Dict[str, int] = field(default_factory=lambda: {str(r): 0 for r in range(1, 6)})
    by_sentiment: Dict[str, int] = field(default_factory=lambda: {"positive": 0, "neutral": 0, "negative": 0})
    average_rating: float = 0.0
    response_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Window:
    """Left-open, right-closed time window (start, end]"""
    start: datetime
    end: datetime

    def contains(self, value: Optional[datetime]) -> bool:
        return value is not None and self.start < value <= self.end


@dataclass
class LocationSummary:
    """Per-location figures the highlight picker and staleness check work from"""
    id: int
    name: str
    status: str = "active"  # active, disconnected, archived
    rating: Optional[float] = None
    review_count: int = 0
    pending_reviews: int = 0
    rating_change: Optional[float] = None
    profile_completeness: Optional[float] = None
    sync_timestamps: List[datetime] = field(default_factory=list)

    @property
    def last_sync(self) -> Optional[datetime]:
        return max(self.sync_timestamps) if self.sync_timestamps else None


@dataclass
class LocationHighlight:
    id: int
    name: str
    category: str  # top, attention, improved
    rating: Optional[float]
    review_count: int
    pending_reviews: int
    rating_change: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def calculate_percent_change(current: Any, previous: Any) -> float:
    """
    Percent change from previous to current, rounded to one decimal.

    0 -> 0 is 0%, 0 -> anything is 100%; non-finite inputs count as 0.
    """
    curr = finite_or_zero(current)
    prev = finite_or_zero(previous)

    if prev == 0:
        return 0.0 if curr == 0 else 100.0

    return round((curr - prev) / abs(prev) * 100, 1)


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


def compute_health_and_bottlenecks(inputs: HealthInputs) -> HealthReport:
    """
    Start at 100 and subtract capped penalties; one bottleneck per penalty.

    The low-rating check uses the aggregate review count across all of the
    tenant's locations, not per-location counts.
    """
    score = 100
    bottlenecks: List[Bottleneck] = []

    pending = max(int(inputs.pending_reviews or 0), 0)
    if pending > 0:
        score -= min(PENDING_REVIEW_CAP, pending * PENDING_REVIEW_PENALTY)
        bottlenecks.append(Bottleneck(
            type="Reviews",
            severity="high" if pending > 10 else "medium" if pending > 5 else "low",
            count=pending,
            message=f"{pending} {_plural(pending, 'review', 'reviews')} awaiting response.",
            link="/reviews",
        ))

    questions = max(int(inputs.unanswered_questions or 0), 0)
    if questions > 0:
        score -= min(UNANSWERED_QUESTION_CAP, questions * UNANSWERED_QUESTION_PENALTY)
        bottlenecks.append(Bottleneck(
            type="Response",
            severity="high" if questions > 5 else "medium",
            count=questions,
            message=f"{questions} customer {_plural(questions, 'question', 'questions')} need answering.",
            link="/questions",
        ))

    average_rating = finite_or_zero(inputs.average_rating)
    total_reviews = int(inputs.total_reviews or 0)
    if average_rating < LOW_RATING_THRESHOLD and total_reviews > LOW_RATING_MIN_REVIEWS:
        score -= LOW_RATING_PENALTY
        bottlenecks.append(Bottleneck(
            type="General",
            severity="high",
            count=1,
            message=f"Average rating ({average_rating:.1f}) is below 4.0. Improve service quality.",
            link="/analytics",
        ))

    response_rate = finite_or_zero(inputs.response_rate)
    if response_rate < RESPONSE_RATE_TARGET and total_reviews > RESPONSE_RATE_MIN_REVIEWS:
        score -= RESPONSE_RATE_PENALTY
        bottlenecks.append(Bottleneck(
            type="Response",
            severity="medium",
            count=1,
            message=f"Response rate ({response_rate:.1f}%) is below target. Aim for 80%+.",
            link="/reviews",
        ))

    stale = max(int(inputs.stale_locations or 0), 0)
    if stale > 0:
        score -= min(STALE_LOCATION_CAP, stale * STALE_LOCATION_PENALTY)
        bottlenecks.append(Bottleneck(
            type="Compliance",
            severity="high" if stale > 3 else "low",
            count=stale,
            message=f"{stale} {_plural(stale, 'location has', 'locations have')} stale data. Run a sync.",
            link="/dashboard",
        ))

    # sorted() is stable, so equal severities keep detection order
    bottlenecks = sorted(bottlenecks, key=lambda b: SEVERITY_RANK[b.severity], reverse=True)
    return HealthReport(score=max(0, min(100, int(round(score)))), bottlenecks=bottlenecks)


def monthly_windows(now: datetime, days: int = 30) -> tuple[Window, Window]:
    """(current, previous): the last `days` days and the `days` before that"""
    span = timedelta(days=days)
    current = Window(start=now - span, end=now)
    previous = Window(start=now - 2 * span, end=now - span)
    return current, previous


def compute_review_stats(reviews: Iterable[Any]) -> ReviewStats:
    """Totals, breakdowns, average rating and response rate over review rows"""
    stats = ReviewStats()
    rating_sum = 0

    for review in reviews:
        stats.total += 1
        rating = getattr(review, "rating", None) or 0
        rating_sum += rating
        if 1 <= rating <= 5:
            stats.by_rating[str(rating)] += 1

        if getattr(review, "has_reply", False):
            stats.replied += 1
        else:
            stats.pending += 1

        if getattr(review, "status", None) == "flagged":
            stats.flagged += 1

        sentiment = getattr(review, "ai_sentiment", None)
        if sentiment in stats.by_sentiment:
            stats.by_sentiment[sentiment] += 1

    stats.average_rating = safe_divide(rating_sum, stats.total or 1)
    stats.response_rate = safe_divide(stats.replied, stats.total or 1) * 100
    return stats


def average_rating_in_window(reviews: Iterable[Any], window: Window) -> tuple[int, float]:
    """(review count, average rating) for reviews dated inside window"""
    ratings = [r.rating for r in reviews if window.contains(getattr(r, "review_date", None)) and r.rating]
    return len(ratings), safe_divide(sum(ratings), len(ratings))


def is_location_stale(sync_timestamps: Sequence[Optional[datetime]], now: datetime, hours: int = 24) -> bool:
    """Never synced, or newest sync older than `hours`"""
    candidates = [ts for ts in sync_timestamps if ts is not None]
    if not candidates:
        return True
    return (now - max(candidates)) > timedelta(hours=hours)


def count_stale_locations(locations: Iterable[LocationSummary], now: datetime, hours: int = 24) -> int:
    return sum(1 for loc in locations if is_location_stale(loc.sync_timestamps, now, hours))


def pick_location_highlights(locations: Sequence[LocationSummary]) -> List[LocationHighlight]:
    """
    Top performer, needs-attention and most-improved locations.

    Only active locations qualify, each category is filled at most once and
    a location is never highlighted twice. When nothing qualifies (no ratings,
    nothing pending, nothing improved) any active location is surfaced as top.
    """
    active = [loc for loc in locations if loc.status == "active"]
    highlights: List[LocationHighlight] = []
    used = set()

    def add(loc: Optional[LocationSummary], category: str) -> None:
        if loc is None or loc.id in used:
            return
        used.add(loc.id)
        highlights.append(LocationHighlight(
            id=loc.id,
            name=loc.name,
            category=category,
            rating=loc.rating,
            review_count=loc.review_count,
            pending_reviews=loc.pending_reviews,
            rating_change=loc.rating_change,
        ))

    rated = [loc for loc in active if loc.rating is not None and loc.review_count > 0]
    if rated:
        add(max(rated, key=lambda loc: (loc.rating, loc.review_count)), "top")

    needs_attention = [loc for loc in active if loc.id not in used and loc.pending_reviews > 0]
    if needs_attention:
        add(max(needs_attention, key=lambda loc: (
            loc.pending_reviews,
            -(loc.rating if loc.rating is not None else 5.0),
        )), "attention")

    improved = [
        loc for loc in active
        if loc.id not in used and loc.rating_change is not None and loc.rating_change > 0
    ]
    if improved:
        add(max(improved, key=lambda loc: loc.rating_change), "improved")

    if not highlights and active:
        add(active[0], "top")

    return highlights
