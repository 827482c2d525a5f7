"""
Automatic replies for newly synced reviews

The sync hands new review ids to AutoReplyDispatcher, which processes them as
background asyncio tasks so sync latency never depends on reply generation.
"""
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Set
import asyncio

import aiohttp
from sqlalchemy.orm import Session

from gmb_hub.config import get_settings
from gmb_hub.errors import ReviewReplyError, SyncError
from gmb_hub.models.base import SessionLocal
from gmb_hub.models.gmb import GMBAccount, GMBLocation, GMBReview
from gmb_hub.services.review_reply_service import ReviewReplyService
from gmb_hub.utils.logger import log

settings = get_settings()


@dataclass
class AutoReplySettings:
    """Per-account auto-reply configuration, stored under settings["auto_reply"]"""
    enabled: bool = False
    min_rating: int = 4
    reply_to_positive: bool = True
    reply_to_neutral: bool = False
    reply_to_negative: bool = False
    require_approval: bool = True
    tone: str = "friendly"

    @classmethod
    def from_account(cls, account: Optional[GMBAccount]) -> "AutoReplySettings":
        raw = ((account.settings or {}) if account else {}).get("auto_reply") or {}
        defaults = cls()
        return cls(
            enabled=bool(raw.get("enabled", defaults.enabled)),
            min_rating=int(raw.get("min_rating", raw.get("minRating", defaults.min_rating))),
            reply_to_positive=bool(raw.get("reply_to_positive", raw.get("replyToPositive", defaults.reply_to_positive))),
            reply_to_neutral=bool(raw.get("reply_to_neutral", raw.get("replyToNeutral", defaults.reply_to_neutral))),
            reply_to_negative=bool(raw.get("reply_to_negative", raw.get("replyToNegative", defaults.reply_to_negative))),
            require_approval=bool(raw.get("require_approval", raw.get("requireApproval", defaults.require_approval))),
            tone=raw.get("tone") or defaults.tone,
        )

    def allows(self, rating: int) -> bool:
        if rating >= 4 and not self.reply_to_positive:
            return False
        if rating == 3 and not self.reply_to_neutral:
            return False
        if rating <= 2 and not self.reply_to_negative:
            return False
        return rating >= self.min_rating


@dataclass
class AutoReplyResult:
    success: bool
    message: str
    reply_text: Optional[str] = None


class ReplyGenerator:
    """HTTP client for the external reply-text generator"""

    def __init__(self, url: Optional[str] = None, api_key: Optional[str] = None):
        self.url = url or settings.reply_generator_url
        self.api_key = api_key or settings.reply_generator_api_key

    async def generate(self, review_text: Optional[str], rating: int, tone: str,
                       location_name: Optional[str]) -> str:
        if not self.url:
            raise ReviewReplyError("Reply generator is not configured")

        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        payload = {
            "reviewText": review_text or "",
            "rating": rating,
            "tone": tone,
            "locationName": location_name or "",
        }
        timeout = aiohttp.ClientTimeout(total=settings.http_timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self.url, json=payload, headers=headers) as response:
                if response.status >= 400:
                    raise ReviewReplyError(f"Reply generator returned HTTP {response.status}", status=response.status)
                data = await response.json(content_type=None)

        text = (data or {}).get("response")
        if not text:
            raise ReviewReplyError("Reply generator returned no text")
        return text


class AutoReplyService:
    """Decides whether a review gets an automatic reply and produces it"""

    def __init__(
        self,
        db: Session,
        generator: Optional[ReplyGenerator] = None,
        reply_service: Optional[ReviewReplyService] = None,
    ):
        self.db = db
        self.generator = generator or ReplyGenerator()
        self.reply_service = reply_service or ReviewReplyService(db)

    async def process_auto_reply(self, review_id: int) -> AutoReplyResult:
        review = self.db.get(GMBReview, review_id)
        if review is None:
            return AutoReplyResult(False, "Review not found")
        if review.has_reply:
            return AutoReplyResult(False, "Review already has a reply")

        account = self.db.get(GMBAccount, review.gmb_account_id)
        auto_settings = AutoReplySettings.from_account(account)
        if not auto_settings.enabled:
            return AutoReplyResult(False, "Auto-reply is disabled")
        if not auto_settings.allows(review.rating):
            return AutoReplyResult(False, f"Rating {review.rating} does not meet auto-reply criteria")

        location = self.db.get(GMBLocation, review.location_id)
        text = await self.generator.generate(
            review.review_text,
            review.rating,
            auto_settings.tone,
            location.location_name if location else None,
        )

        if auto_settings.require_approval:
            review.ai_suggested_reply = text
            review.status = "in_progress"
            self.db.commit()
            log.info(f"Auto-reply suggestion stored for review {review.id}, awaiting approval")
            return AutoReplyResult(True, "Reply generated and pending approval", text)

        await self.reply_service.reply_to_review(review.id, text)
        return AutoReplyResult(True, "Reply posted automatically", text)


class AutoReplyDispatcher:
    """
    Background handoff for new reviews.

    submit() never blocks and never raises; failures are logged. Each task
    opens its own session so it cannot interfere with the sync's session.
    """

    # Most recent outcomes only; older entries fall off
    RESULTS_KEPT = 200

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        service_factory: Optional[Callable[[Session], AutoReplyService]] = None,
        results_kept: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.service_factory = service_factory or AutoReplyService
        self._tasks: Set[asyncio.Task] = set()
        self.results: Deque[Dict[str, Any]] = deque(maxlen=results_kept or self.RESULTS_KEPT)

    def submit(self, review_id: int) -> None:
        task = asyncio.ensure_future(self._run(review_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def submit_many(self, review_ids: List[int]) -> None:
        for review_id in review_ids:
            self.submit(review_id)

    async def _run(self, review_id: int) -> None:
        db = self.session_factory()
        try:
            result = await self.service_factory(db).process_auto_reply(review_id)
            self.results.append({"review_id": review_id, "success": result.success, "message": result.message})
            log.debug(f"Auto-reply for review {review_id}: {result.message}")
        except (ReviewReplyError, SyncError) as e:
            db.rollback()
            log.warning(f"Auto-reply for review {review_id} failed: {e.message}")
        except Exception as e:
            db.rollback()
            log.error(f"Auto-reply for review {review_id} crashed: {type(e).__name__}: {e}")
        finally:
            db.close()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every submitted task (shutdown and tests)"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# Process-wide dispatcher used by the API and scheduler
auto_reply_dispatcher = AutoReplyDispatcher()
