"""
Dashboard Overview Service

Loads a tenant's synced GMB rows and runs them through the analytics engine.
Answers: "How healthy is my Business Profile presence right now?"
"""
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from gmb_hub.config import get_settings
from gmb_hub.models.gmb import GMBAccount, GMBLocation, GMBQuestion, GMBReview
from gmb_hub.services.analytics_service import (
    HealthInputs,
    LocationSummary,
    average_rating_in_window,
    calculate_percent_change,
    compute_health_and_bottlenecks,
    compute_review_stats,
    count_stale_locations,
    monthly_windows,
    pick_location_highlights,
)
from gmb_hub.services.normalization import LocationMetadata
from gmb_hub.utils.helpers import safe_divide, utcnow

settings = get_settings()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class DashboardService:
    """Builds the dashboard snapshot for one user"""

    def __init__(self, db: Session):
        self.db = db

    def _location_status(self, location: GMBLocation) -> str:
        if location.is_archived:
            return "archived"
        if location.is_active is False:
            return "disconnected"
        return "active"

    def _summarize_location(self, location: GMBLocation, reviews: List[GMBReview],
                            windows) -> LocationSummary:
        metadata = LocationMetadata(location.location_metadata)
        current_window, previous_window = windows

        if reviews:
            rating = safe_divide(sum(r.rating for r in reviews), len(reviews))
            review_count = len(reviews)
            pending = sum(1 for r in reviews if not r.has_reply)
        else:
            rating = metadata.rating
            review_count = metadata.review_count or 0
            pending = metadata.pending_reviews or 0

        current_count, current_avg = average_rating_in_window(reviews, current_window)
        previous_count, previous_avg = average_rating_in_window(reviews, previous_window)
        rating_change = round(current_avg - previous_avg, 2) if current_count and previous_count else None

        timestamps = metadata.sync_timestamps()
        if location.last_synced_at:
            timestamps.append(location.last_synced_at)

        return LocationSummary(
            id=location.id,
            name=location.location_name or "Unnamed location",
            status=self._location_status(location),
            rating=round(rating, 2) if rating is not None else None,
            review_count=review_count,
            pending_reviews=pending,
            rating_change=rating_change,
            profile_completeness=metadata.profile_completeness,
            sync_timestamps=timestamps,
        )

    def build_overview(self, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        windows = monthly_windows(now, settings.comparison_window_days)
        current_window, previous_window = windows

        accounts = self.db.query(GMBAccount).filter(GMBAccount.user_id == user_id).all()
        locations = (
            self.db.query(GMBLocation)
            .filter(GMBLocation.user_id == user_id)
            .order_by(GMBLocation.id)
            .all()
        )
        reviews = self.db.query(GMBReview).filter(GMBReview.user_id == user_id).all()
        questions = self.db.query(GMBQuestion).filter(GMBQuestion.user_id == user_id).all()

        reviews_by_location: Dict[int, List[GMBReview]] = defaultdict(list)
        for review in reviews:
            reviews_by_location[review.location_id].append(review)

        summaries = [
            self._summarize_location(location, reviews_by_location.get(location.id, []), windows)
            for location in locations
        ]
        active_summaries = [s for s in summaries if s.status == "active"]

        review_stats = compute_review_stats(reviews)
        unanswered = sum(1 for q in questions if q.answer_status != "answered")
        stale_locations = count_stale_locations(active_summaries, now, settings.stale_location_hours)

        # Current vs previous comparison window
        current_reviews, current_rating = average_rating_in_window(reviews, current_window)
        previous_reviews, previous_rating = average_rating_in_window(reviews, previous_window)
        if not previous_reviews:
            previous_rating = current_rating
        review_trend_pct = calculate_percent_change(current_reviews, previous_reviews)
        rating_trend_pct = round((current_rating - previous_rating) / 5 * 100, 1)

        health = compute_health_and_bottlenecks(HealthInputs(
            pending_reviews=review_stats.pending,
            unanswered_questions=unanswered,
            average_rating=review_stats.average_rating,
            total_reviews=review_stats.total,
            response_rate=review_stats.response_rate,
            stale_locations=stale_locations,
        ))

        sync_times = [a.last_sync for a in accounts if a.last_sync]
        sync_times += [s.last_sync for s in summaries if s.last_sync]
        completeness = [s.profile_completeness for s in summaries if s.profile_completeness is not None]

        return {
            "generated_at": now.isoformat(),
            "user_id": user_id,
            "location_summary": {
                "total_locations": len(summaries),
                "active_locations": len(active_summaries),
                "inactive_locations": len(summaries) - len(active_summaries),
                "stale_locations": stale_locations,
                "last_global_sync": _iso(max(sync_times) if sync_times else None),
                "profile_completeness_average": round(sum(completeness) / len(completeness)) if completeness else None,
                "locations": [
                    {
                        "id": s.id,
                        "name": s.name,
                        "status": s.status,
                        "rating": s.rating,
                        "review_count": s.review_count,
                        "pending_reviews": s.pending_reviews,
                        "last_sync": _iso(s.last_sync),
                    }
                    for s in summaries
                ],
            },
            "kpis": {
                "health_score": health.score,
                "response_rate": round(review_stats.response_rate, 1),
                "review_trend_pct": review_trend_pct,
                "rating_trend_pct": rating_trend_pct,
                "total_reviews": review_stats.total,
                "pending_reviews": review_stats.pending,
                "unanswered_questions": unanswered,
            },
            "review_stats": {
                **review_stats.to_dict(),
                "average_rating": round(review_stats.average_rating, 2),
                "response_rate": round(review_stats.response_rate, 1),
            },
            "monthly_comparison": {
                "current": {"reviews": current_reviews, "rating": round(current_rating, 2)},
                "previous": {"reviews": previous_reviews, "rating": round(previous_rating, 2)},
            },
            "location_highlights": [h.to_dict() for h in pick_location_highlights(summaries)],
            "bottlenecks": [b.to_dict() for b in health.bottlenecks],
        }
