"""
Posting owner replies to Google reviews (single and bulk)
"""
from typing import Any, Callable, Dict, List, Optional
import asyncio

from sqlalchemy.orm import Session

from gmb_hub.config import get_settings
from gmb_hub.connectors.reviews_connector import ReviewsConnector
from gmb_hub.errors import ReviewReplyError, SyncError
from gmb_hub.models.gmb import GMBAccount, GMBLocation, GMBReview
from gmb_hub.services.token_service import TokenService
from gmb_hub.utils.helpers import utcnow
from gmb_hub.utils.logger import log
from gmb_hub.utils.resource_names import build_location_resource_name

settings = get_settings()


class ReviewReplyService:
    """Validates, posts and records replies"""

    def __init__(
        self,
        db: Session,
        token_service: Optional[TokenService] = None,
        connector_factory: Callable[[str], ReviewsConnector] = ReviewsConnector,
    ):
        self.db = db
        self.token_service = token_service or TokenService(db)
        self.connector_factory = connector_factory

    def _validate_text(self, text: Optional[str]) -> str:
        text = (text or "").strip()
        if not text:
            raise ReviewReplyError("Reply text cannot be empty", status=400)
        if len(text) > settings.reply_max_length:
            raise ReviewReplyError(
                f"Reply text exceeds {settings.reply_max_length} characters", status=400
            )
        return text

    def _review_resource_name(self, review: GMBReview, account: GMBAccount) -> str:
        if review.external_review_id.startswith("accounts/"):
            return review.external_review_id
        location = self.db.get(GMBLocation, review.location_id)
        if location is None or not account.account_id:
            raise ReviewReplyError("Cannot build the review resource name", status=400)
        location_name = build_location_resource_name(account.account_id, location.location_id)
        return f"{location_name}/reviews/{review.external_review_id}"

    async def reply_to_review(self, review_id: int, text: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        text = self._validate_text(text)

        review = self.db.get(GMBReview, review_id)
        if review is None or (user_id is not None and review.user_id != user_id):
            raise ReviewReplyError("Review not found", status=404)
        if review.has_reply:
            raise ReviewReplyError("Review already has a reply", status=409)

        account = self.db.get(GMBAccount, review.gmb_account_id)
        if account is None or not account.is_active:
            raise ReviewReplyError("GMB account is not connected", status=400)

        access_token = await self.token_service.get_valid_access_token(account.id)
        connector = self.connector_factory(access_token)
        await connector.reply(self._review_resource_name(review, account), text)

        review.reply_text = text
        review.reply_date = utcnow()
        review.has_reply = True
        review.status = "replied"
        self.db.commit()

        log.info(f"Replied to review {review.id} ({review.external_review_id})")
        return {
            "review_id": review.id,
            "reply_text": review.reply_text,
            "reply_date": review.reply_date.isoformat(),
            "status": review.status,
        }

    async def bulk_reply(self, review_ids: List[int], text: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Reply to up to bulk_reply_max_reviews reviews with the same text.

        Reviews are processed one at a time with a pause between them; one
        failure does not stop the rest.
        """
        if not review_ids:
            raise ReviewReplyError("No reviews selected", status=400)
        if len(review_ids) > settings.bulk_reply_max_reviews:
            raise ReviewReplyError(
                f"Cannot reply to more than {settings.bulk_reply_max_reviews} reviews at once", status=400
            )
        self._validate_text(text)

        succeeded: List[int] = []
        failed: List[Dict[str, Any]] = []

        for index, review_id in enumerate(review_ids):
            try:
                await self.reply_to_review(review_id, text, user_id=user_id)
                succeeded.append(review_id)
            except (ReviewReplyError, SyncError) as e:
                log.warning(f"Bulk reply: review {review_id} failed: {e.message}")
                failed.append({"review_id": review_id, "error": e.message})

            if index < len(review_ids) - 1:
                await asyncio.sleep(settings.bulk_reply_delay_seconds)

        log.info(f"Bulk reply finished: {len(succeeded)} succeeded, {len(failed)} failed")
        return {"succeeded": succeeded, "failed": failed}
