"""
GMB Synchronization Service
Orchestrates a full or incremental sync of one connected account and
persists everything through idempotent upserts.

Stages (linear): resolve-account -> ensure-account-resource-name ->
get-token -> sync-locations -> reviews+media per location ->
performance+keywords per location -> stamp-last-sync.
"""
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional
import asyncio
import time

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gmb_hub.config import get_settings
from gmb_hub.connectors.locations_connector import AccountsConnector, LocationsConnector
from gmb_hub.connectors.performance_connector import PerformanceConnector, SearchKeywordsConnector
from gmb_hub.connectors.reviews_connector import MediaConnector, ReviewsConnector
from gmb_hub.errors import (
    AccountInactiveError,
    AccountNotFoundError,
    AccountResourceUnresolvedError,
    InvalidSyncTypeError,
    LocationsFetchError,
    MissingRefreshTokenError,
    ProviderAPIError,
    SyncError,
)
from gmb_hub.models.gmb import (
    GMBAccount,
    GMBLocation,
    GMBMedia,
    GMBPerformanceMetric,
    GMBReview,
    GMBSearchKeyword,
    GMBSyncLog,
)
from gmb_hub.services import normalization
from gmb_hub.services.auto_reply_service import AutoReplyDispatcher
from gmb_hub.services.token_service import TokenService
from gmb_hub.services.upsert_service import UpsertService
from gmb_hub.utils.helpers import calculate_date_range, calculate_month_range, month_start, utcnow
from gmb_hub.utils.logger import log
from gmb_hub.utils.resource_names import normalize_account_resource, resolve_v4_location_name

settings = get_settings()

SYNC_TYPES = ("full", "incremental")
COUNT_KEYS = ("locations", "reviews", "media", "performance_metrics", "search_keywords")


@dataclass
class SyncOutcome:
    """Result of one sync_account run"""
    account_id: int
    sync_type: str = "full"
    status: str = "success"  # success, failed
    counts: Dict[str, int] = field(default_factory=lambda: {key: 0 for key in COUNT_KEYS})
    location_errors: List[Dict[str, Any]] = field(default_factory=list)
    new_review_ids: List[int] = field(default_factory=list)
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    started_at: Optional[Any] = None
    completed_at: Optional[Any] = None
    took_ms: int = 0

    def add(self, key: str, value: int) -> None:
        self.counts[key] = self.counts.get(key, 0) + value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.status == "success",
            "account_id": self.account_id,
            "sync_type": self.sync_type,
            "counts": dict(self.counts),
            "took_ms": self.took_ms,
        }


@contextmanager
def track_sync(db: Session, account_id: int, sync_type: str):
    """
    Time a sync run and write its GMBSyncLog row.

    Usage:
        with track_sync(db, account.id, "full") as outcome:
            outcome.add("reviews", 12)
    """
    outcome = SyncOutcome(account_id=account_id, sync_type=sync_type)
    outcome.started_at = utcnow()
    start_time = time.time()

    try:
        yield outcome
    except SyncError as e:
        outcome.status = "failed"
        outcome.error_code = e.code
        outcome.error_message = e.message
        log.error(f"Sync failed for GMB account {account_id}: [{e.code}] {e.message}")
        raise
    except Exception as e:
        outcome.status = "failed"
        outcome.error_code = "unexpected_error"
        outcome.error_message = str(e)
        db.rollback()
        log.exception(f"Sync crashed for GMB account {account_id}: {e}")
        raise
    finally:
        outcome.completed_at = utcnow()
        outcome.took_ms = int((time.time() - start_time) * 1000)
        _persist_sync_log(db, outcome)


def _persist_sync_log(db: Session, outcome: SyncOutcome) -> None:
    """Best-effort: a failure here never fails the sync."""
    try:
        db.add(GMBSyncLog(
            account_id=outcome.account_id,
            sync_type=outcome.sync_type,
            status=outcome.status,
            counts=dict(outcome.counts),
            error_code=outcome.error_code,
            error_message=outcome.error_message,
            started_at=outcome.started_at,
            completed_at=outcome.completed_at,
            duration_ms=outcome.took_ms,
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.warning(f"Could not write sync log for GMB account {outcome.account_id}: {e}")


class GMBSyncService:
    """Syncs one GMB account's locations, reviews, media, metrics and keywords"""

    def __init__(
        self,
        db: Session,
        token_service: Optional[TokenService] = None,
        dispatcher: Optional[AutoReplyDispatcher] = None,
        location_concurrency: Optional[int] = None,
    ):
        self.db = db
        self.token_service = token_service or TokenService(db)
        self.upserts = UpsertService(db)
        self.dispatcher = dispatcher
        self.location_concurrency = max(1, location_concurrency or settings.sync_location_concurrency)

    # ------------------------------------------------------------------
    # Account-level stages
    # ------------------------------------------------------------------

    def _resolve_account(self, account_id: int) -> GMBAccount:
        account = self.db.get(GMBAccount, account_id)
        if account is None:
            raise AccountNotFoundError(f"GMB account {account_id} not found")
        if not account.is_active:
            raise AccountInactiveError(f"GMB account {account_id} is disconnected")
        if not account.refresh_token:
            raise MissingRefreshTokenError(
                f"GMB account {account_id} has no refresh token. Please reconnect your account."
            )
        return account

    async def _ensure_account_resource(self, account: GMBAccount) -> str:
        """Normalize the stored 'accounts/{id}', looking it up from Google when missing."""
        resource = normalize_account_resource(account.account_id)
        if resource is None:
            access_token = await self.token_service.get_valid_access_token(account.id)
            try:
                resource = await AccountsConnector(access_token).get_primary_account_name()
            except ProviderAPIError as e:
                raise AccountResourceUnresolvedError(
                    f"Could not look up the Google account for GMB account {account.id}: {e.message}"
                ) from e
            if not resource:
                raise AccountResourceUnresolvedError(
                    f"No Google Business Profile account visible for GMB account {account.id}"
                )

        if account.account_id != resource:
            account.account_id = resource
            self.db.commit()
        return resource

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    async def _sync_locations(self, account: GMBAccount, account_resource: str, access_token: str,
                              incremental: bool) -> int:
        try:
            raw_locations = await LocationsConnector(access_token).fetch_all(account_resource, incremental=incremental)
        except ProviderAPIError as e:
            raise LocationsFetchError(e.message, status=e.status) from e

        rows = normalization.dedupe_rows(
            (normalization.location_to_row(raw, account.id, account.user_id) for raw in raw_locations),
            ["location_id"],
        )

        # Keep sync stats written into metadata by earlier runs
        existing = {
            loc.location_id: loc.location_metadata or {}
            for loc in self.db.query(GMBLocation).filter(GMBLocation.gmb_account_id == account.id).all()
        }
        for row in rows:
            previous = existing.get(row["location_id"])
            if previous:
                row["location_metadata"] = {**previous, **row["location_metadata"]}

        written = self.upserts.upsert(GMBLocation, rows, ["gmb_account_id", "location_id"])

        if not incremental:
            self._archive_missing_locations(account, {row["location_id"] for row in rows})

        log.info(f"GMB account {account.id}: upserted {written} location(s)")
        return written

    def _archive_missing_locations(self, account: GMBAccount, seen: set) -> None:
        stale = (
            self.db.query(GMBLocation)
            .filter(GMBLocation.gmb_account_id == account.id, GMBLocation.is_archived == False)  # noqa: E712
            .all()
        )
        archived = 0
        for location in stale:
            if location.location_id not in seen:
                location.is_archived = True
                location.is_active = False
                archived += 1
        if archived:
            self.db.commit()
            log.info(f"GMB account {account.id}: archived {archived} location(s) no longer on Google")

    # ------------------------------------------------------------------
    # Per-location stages
    # ------------------------------------------------------------------

    async def _sync_reviews(self, account: GMBAccount, location: GMBLocation, v4_name: str,
                            access_token: str, incremental: bool, outcome: SyncOutcome) -> int:
        raw_reviews = await ReviewsConnector(access_token).fetch_all(v4_name, incremental=incremental)
        rows = normalization.dedupe_rows(
            (normalization.review_to_row(raw, account.id, location.id, account.user_id) for raw in raw_reviews),
            ["external_review_id"],
        )
        if not rows:
            return 0

        already_stored = self.upserts.existing_review_ids([row["external_review_id"] for row in rows])
        # Workflow status is owned locally once a review exists
        written = self.upserts.upsert(GMBReview, rows, ["external_review_id"], preserve_columns=["status"])
        self._mark_replied([row["external_review_id"] for row in rows if row["has_reply"]])

        new_external_ids = [
            row["external_review_id"] for row in rows
            if row["external_review_id"] not in already_stored and not row["has_reply"]
        ]
        if new_external_ids:
            new_ids = [
                review_id for (review_id,) in self.db.query(GMBReview.id)
                .filter(GMBReview.external_review_id.in_(new_external_ids))
                .all()
            ]
            outcome.new_review_ids.extend(new_ids)
            if self.dispatcher is not None:
                self.dispatcher.submit_many(new_ids)
        return written

    def _mark_replied(self, external_ids: List[str]) -> None:
        """Pending reviews answered on Google move to replied"""
        if not external_ids:
            return
        try:
            self.db.query(GMBReview).filter(
                GMBReview.external_review_id.in_(external_ids),
                GMBReview.status == "pending",
            ).update({GMBReview.status: "replied"}, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error(f"Failed to mark {len(external_ids)} replied reviews: {e}")

    async def _sync_media(self, account: GMBAccount, location: GMBLocation, v4_name: str,
                          access_token: str, incremental: bool) -> int:
        raw_media = await MediaConnector(access_token).fetch_all(v4_name, incremental=incremental)
        rows = normalization.dedupe_rows(
            (normalization.media_to_row(raw, account.id, location.id, account.user_id) for raw in raw_media),
            ["external_media_id"],
        )
        return self.upserts.upsert(GMBMedia, rows, ["external_media_id"])

    async def _sync_performance(self, account: GMBAccount, location: GMBLocation, access_token: str,
                                start_date: date, end_date: date) -> int:
        points = await PerformanceConnector(access_token).fetch_daily_metrics(
            location.location_id, start_date, end_date
        )
        rows = normalization.dedupe_rows(
            (normalization.metric_point_to_row(p, account.id, location.id, account.user_id) for p in points),
            ["metric_date", "metric_type"],
        )
        return self.upserts.upsert(GMBPerformanceMetric, rows, ["location_id", "metric_date", "metric_type"])

    async def _sync_keywords(self, account: GMBAccount, location: GMBLocation, access_token: str,
                             months: List[date], incremental: bool) -> int:
        connector = SearchKeywordsConnector(access_token)
        written = 0
        # One request per month so each stored row is attributed to its own month
        for month in months:
            keywords = await connector.fetch_monthly_keywords(
                location.location_id, month, month, incremental=incremental
            )
            rows = normalization.dedupe_rows(
                (normalization.keyword_to_row(k, month, account.id, location.id, account.user_id) for k in keywords),
                ["search_keyword"],
            )
            written += self.upserts.upsert(GMBSearchKeyword, rows, ["location_id", "search_keyword", "month_year"])
        return written

    async def _sync_location(self, account: GMBAccount, account_resource: str, location: GMBLocation,
                             access_token: str, incremental: bool, windows: Dict[str, Any],
                             outcome: SyncOutcome) -> None:
        """All four resources for one location; any failure stays inside this location."""
        location_counts = {"reviews": 0, "media": 0, "performance_metrics": 0, "search_keywords": 0}
        try:
            v4_name = resolve_v4_location_name(account_resource, location.location_id)
            if v4_name is None:
                log.warning(f"Skipping reviews/media for {location.location_id}: cannot build v4 resource name")
            else:
                location_counts["reviews"] = await self._sync_reviews(
                    account, location, v4_name, access_token, incremental, outcome
                )
                location_counts["media"] = await self._sync_media(
                    account, location, v4_name, access_token, incremental
                )

            location_counts["performance_metrics"] = await self._sync_performance(
                account, location, access_token, windows["metrics_start"], windows["metrics_end"]
            )
            location_counts["search_keywords"] = await self._sync_keywords(
                account, location, access_token, windows["keyword_months"], incremental
            )

            self._stamp_location(location, location_counts)
        except Exception as e:
            self.db.rollback()
            outcome.location_errors.append({"location_id": location.location_id, "error": str(e)})
            log.error(f"Sync of location {location.location_id} failed, continuing: {type(e).__name__}: {e}")
        finally:
            for key, value in location_counts.items():
                outcome.add(key, value)

    def _stamp_location(self, location: GMBLocation, location_counts: Dict[str, int]) -> None:
        now = utcnow()
        metadata = dict(location.location_metadata or {})
        metadata.update({
            "last_sync": now.isoformat(),
            "last_reviews_sync": now.isoformat(),
            "last_reviews_count": location_counts["reviews"],
            "last_media_count": location_counts["media"],
        })
        location.location_metadata = metadata
        location.last_synced_at = now
        self.db.commit()

    @staticmethod
    def _date_windows() -> Dict[str, Any]:
        metrics_start, metrics_end = calculate_date_range(settings.metrics_window_days)
        # Keyword impressions are only published for complete months
        last_complete = month_start(utcnow().date()) - timedelta(days=1)
        first_month, last_month = calculate_month_range(settings.keywords_window_months, end=last_complete)
        months = []
        month = first_month
        while month <= last_month:
            months.append(month)
            month = month + relativedelta(months=1)
        return {"metrics_start": metrics_start, "metrics_end": metrics_end, "keyword_months": months}

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def sync_account(self, account_id: int, sync_type: str = "full") -> SyncOutcome:
        """
        Sync one account end to end.

        Raises SyncError subclasses for account-level failures only;
        per-location problems show up as zero counts and location_errors.
        """
        if sync_type not in SYNC_TYPES:
            raise InvalidSyncTypeError(f"Unknown sync type '{sync_type}', expected one of {', '.join(SYNC_TYPES)}")
        incremental = sync_type == "incremental"

        with track_sync(self.db, account_id, sync_type) as outcome:
            log.info(f"Starting {sync_type} sync for GMB account {account_id}")

            account = self._resolve_account(account_id)
            account_resource = await self._ensure_account_resource(account)
            access_token = await self.token_service.get_valid_access_token(account.id)

            outcome.add("locations", await self._sync_locations(account, account_resource, access_token, incremental))

            locations = (
                self.db.query(GMBLocation)
                .filter(
                    GMBLocation.gmb_account_id == account.id,
                    GMBLocation.is_active == True,  # noqa: E712
                    GMBLocation.is_archived == False,  # noqa: E712
                )
                .order_by(GMBLocation.id)
                .all()
            )

            windows = self._date_windows()
            semaphore = asyncio.Semaphore(self.location_concurrency)

            async def run(location: GMBLocation) -> None:
                async with semaphore:
                    await self._sync_location(
                        account, account_resource, location, access_token, incremental, windows, outcome
                    )

            await asyncio.gather(*(run(location) for location in locations))

            account.last_sync = utcnow()
            self.db.commit()

        log.info(
            f"Sync completed for GMB account {account_id} in {outcome.took_ms}ms: "
            + ", ".join(f"{key}={value}" for key, value in outcome.counts.items())
        )
        return outcome
