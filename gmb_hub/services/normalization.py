"""
Normalization of Google Business Profile payloads into row dicts

Pure functions: raw provider JSON in, dicts keyed by model column out.
Entries that fail validation return None and are dropped by the caller.
"""
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from gmb_hub.utils.helpers import month_start, parse_datetime, to_int
from gmb_hub.utils.logger import log

STAR_RATINGS = {"ONE": 1, "TWO": 2, "THREE": 3, "FOUR": 4, "FIVE": 5}


def format_address(storefront: Optional[Dict[str, Any]]) -> Optional[str]:
    """'1 Main St, Suite 2, Springfield, IL 62701'"""
    if not storefront:
        return None
    address = ", ".join(line for line in storefront.get("addressLines") or [] if line)
    if storefront.get("locality"):
        address += f", {storefront['locality']}" if address else storefront["locality"]
    if storefront.get("administrativeArea"):
        address += f", {storefront['administrativeArea']}" if address else storefront["administrativeArea"]
    if storefront.get("postalCode"):
        address += f" {storefront['postalCode']}" if address else storefront["postalCode"]
    return address or None


def parse_star_rating(value: Any) -> Optional[int]:
    """'FIVE' / 5 / '5' -> 5; STAR_RATING_UNSPECIFIED, 0, 6, garbage -> None"""
    if value is None:
        return None
    if isinstance(value, str) and value.upper() in STAR_RATINGS:
        return STAR_RATINGS[value.upper()]
    if isinstance(value, bool):
        return None
    try:
        rating = int(value)
    except (TypeError, ValueError):
        return None
    return rating if 1 <= rating <= 5 else None


def location_to_row(raw: Dict[str, Any], gmb_account_id: int, user_id: str) -> Optional[Dict[str, Any]]:
    """Business Information location -> gmb_locations row"""
    name = raw.get("name")
    if not name:
        return None

    categories = raw.get("categories") or {}
    primary_category = categories.get("primaryCategory") or {}
    phone_numbers = raw.get("phoneNumbers") or {}

    return {
        "gmb_account_id": gmb_account_id,
        "user_id": user_id,
        "location_id": name,
        "location_name": raw.get("title") or "Unnamed Location",
        "address": format_address(raw.get("storefrontAddress")),
        "phone": phone_numbers.get("primaryPhone"),
        "category": primary_category.get("displayName"),
        "website": raw.get("websiteUri"),
        "location_metadata": raw,
        "is_active": True,
        "is_archived": False,
    }


def review_to_row(
    raw: Dict[str, Any],
    gmb_account_id: int,
    location_pk: int,
    user_id: str,
) -> Optional[Dict[str, Any]]:
    """v4 review -> gmb_reviews row, or None when the id or rating is invalid"""
    external_id = raw.get("name") or raw.get("reviewId")
    if not external_id:
        return None

    rating = parse_star_rating(raw.get("starRating"))
    if rating is None:
        log.debug(f"Dropping review {external_id} with invalid rating {raw.get('starRating')!r}")
        return None

    reply = raw.get("reviewReply") or {}
    reply_text = reply.get("comment")
    has_reply = bool(reply_text)

    return {
        "gmb_account_id": gmb_account_id,
        "location_id": location_pk,
        "user_id": user_id,
        "external_review_id": external_id,
        "reviewer_name": (raw.get("reviewer") or {}).get("displayName") or "Anonymous",
        "rating": rating,
        "review_text": raw.get("comment"),
        "review_date": parse_datetime(raw.get("createTime")),
        "reply_text": reply_text,
        "reply_date": parse_datetime(reply.get("updateTime")) if has_reply else None,
        "has_reply": has_reply,
        "status": "replied" if has_reply else "pending",
    }


def media_to_row(
    raw: Dict[str, Any],
    gmb_account_id: int,
    location_pk: int,
    user_id: str,
) -> Optional[Dict[str, Any]]:
    """v4 media item -> gmb_media row"""
    external_id = raw.get("name") or raw.get("mediaId")
    if not external_id:
        return None
    return {
        "gmb_account_id": gmb_account_id,
        "location_id": location_pk,
        "user_id": user_id,
        "external_media_id": external_id,
        "type": raw.get("mediaFormat") or raw.get("type"),
        "url": raw.get("googleUrl") or raw.get("sourceUrl"),
        "thumbnail_url": raw.get("thumbnailUrl"),
        "create_time": parse_datetime(raw.get("createTime")),
        "update_time": parse_datetime(raw.get("updateTime")),
        "media_metadata": raw,
    }


def metric_point_to_row(
    point: Dict[str, Any],
    gmb_account_id: int,
    location_pk: int,
    user_id: str,
) -> Optional[Dict[str, Any]]:
    if not point.get("metric_type") or not isinstance(point.get("metric_date"), date):
        return None
    return {
        "gmb_account_id": gmb_account_id,
        "location_id": location_pk,
        "user_id": user_id,
        "metric_date": point["metric_date"],
        "metric_type": point["metric_type"],
        "metric_value": to_int(point.get("metric_value")),
        "sub_entity_type": point.get("sub_entity_type"),
    }


def keyword_to_row(
    keyword: Dict[str, Any],
    month: date,
    gmb_account_id: int,
    location_pk: int,
    user_id: str,
) -> Optional[Dict[str, Any]]:
    if not keyword.get("search_keyword"):
        return None
    return {
        "gmb_account_id": gmb_account_id,
        "location_id": location_pk,
        "user_id": user_id,
        "search_keyword": keyword["search_keyword"][:255],
        "month_year": month_start(month),
        "impressions_count": to_int(keyword.get("impressions_count")),
        "threshold_value": keyword.get("threshold_value"),
        "is_thresholded": bool(keyword.get("is_thresholded")),
    }


def dedupe_rows(rows: Iterable[Optional[Dict[str, Any]]], key_columns: List[str]) -> List[Dict[str, Any]]:
    """
    Drop None entries and collapse duplicates on the natural key (last wins).

    A single INSERT ... ON CONFLICT statement cannot touch the same key twice.
    """
    by_key: Dict[tuple, Dict[str, Any]] = {}
    for row in rows:
        if row is None:
            continue
        by_key[tuple(row.get(column) for column in key_columns)] = row
    return list(by_key.values())


class LocationMetadata:
    """
    Read-only accessor over a location's free-form metadata JSON.

    The blob mixes the raw provider payload with stats written by various
    sync paths under camelCase and snake_case names; every getter tolerates
    missing keys and wrong types.
    """

    def __init__(self, metadata: Optional[Dict[str, Any]]):
        self.raw = metadata if isinstance(metadata, dict) else {}

    def _number(self, *keys: str) -> Optional[float]:
        for key in keys:
            value = self.raw.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return value
        return None

    def _timestamp(self, *keys: str) -> Optional[datetime]:
        for key in keys:
            value = parse_datetime(self.raw.get(key))
            if value is not None:
                return value
        return None

    @property
    def rating(self) -> Optional[float]:
        return self._number("average_rating", "rating")

    @property
    def review_count(self) -> Optional[int]:
        value = self._number("total_reviews", "review_count")
        return int(value) if value is not None else None

    @property
    def pending_reviews(self) -> Optional[int]:
        value = self._number("pendingReviews", "pending_reviews")
        if value is None:
            insights = self.raw.get("insights")
            if isinstance(insights, dict):
                value = LocationMetadata(insights)._number("pendingReviews", "pending_reviews")
        return int(value) if value is not None else None

    @property
    def profile_completeness(self) -> Optional[float]:
        return self._number("profileCompleteness", "profile_completeness")

    @property
    def last_reviews_sync(self) -> Optional[datetime]:
        return self._timestamp("last_reviews_sync", "lastReviewsSync", "reviews_last_sync", "last_sync")

    @property
    def last_posts_sync(self) -> Optional[datetime]:
        return self._timestamp("last_posts_sync", "lastPostsSync", "posts_last_sync")

    @property
    def last_questions_sync(self) -> Optional[datetime]:
        return self._timestamp("last_questions_sync", "lastQuestionsSync", "questions_last_sync")

    @property
    def last_automation_sync(self) -> Optional[datetime]:
        return self._timestamp("last_automation_sync", "lastAutomationSync", "automation_last_sync")

    def sync_timestamps(self) -> List[datetime]:
        return [
            ts for ts in (
                self.last_reviews_sync,
                self.last_posts_sync,
                self.last_questions_sync,
                self.last_automation_sync,
            ) if ts is not None
        ]
