"""
v4 My Business API connectors: reviews (list + reply) and media
"""
from typing import Any, Dict, Optional

from gmb_hub.config import get_settings
from gmb_hub.connectors.base_connector import FetchPage, GoogleBaseConnector
from gmb_hub.errors import ProviderAPIError, ReviewReplyError
from gmb_hub.utils.logger import log

settings = get_settings()

REPLY_ERROR_MESSAGES = {
    401: "Google authorization expired. Please reconnect your account.",
    403: "Permission denied. The account cannot reply to this review.",
    404: "Review not found on Google. It may have been removed.",
    429: "Too many requests to Google. Please try again later.",
}


class ReviewsConnector(GoogleBaseConnector):
    """Lists reviews for one location ('accounts/{a}/locations/{l}')"""

    PAGE_SIZE = 50

    def __init__(self, access_token: str):
        super().__init__("GMB Reviews", access_token)
        self.base_url = settings.gmb_v4_base

    async def fetch_page(self, resource_name: str, page_token: Optional[str] = None, **params) -> FetchPage:
        query = {"pageSize": self.PAGE_SIZE}
        if page_token:
            query["pageToken"] = page_token

        try:
            status, payload = await self._request("GET", f"{self.base_url}/{resource_name}/reviews", params=query)
        except ProviderAPIError as e:
            log.warning(f"Reviews fetch for {resource_name} failed: {e.message}")
            return FetchPage()

        if status >= 400 or payload is None:
            return self._degrade(status, f"{resource_name}/reviews")

        return FetchPage(payload.get("reviews") or [], payload.get("nextPageToken"))

    async def reply(self, review_name: str, comment: str) -> Dict[str, Any]:
        """PUT the reply text for a review; raises ReviewReplyError on failure."""
        try:
            status, payload = await self._request(
                "PUT", f"{self.base_url}/{review_name}/reply", json={"comment": comment}
            )
        except ProviderAPIError as e:
            raise ReviewReplyError(e.message) from e

        if status >= 400:
            self.error_count += 1
            message = REPLY_ERROR_MESSAGES.get(
                status, f"Failed to reply to review: {self._error_message(payload)}"
            )
            log.error(f"Reply to {review_name} failed ({status}): {self._error_message(payload)}")
            raise ReviewReplyError(message, status=status)

        return payload or {}


class MediaConnector(GoogleBaseConnector):
    """Lists photos/videos for one location"""

    PAGE_SIZE = 100

    def __init__(self, access_token: str):
        super().__init__("GMB Media", access_token)
        self.base_url = settings.gmb_v4_base

    async def fetch_page(self, resource_name: str, page_token: Optional[str] = None, **params) -> FetchPage:
        query = {"pageSize": self.PAGE_SIZE}
        if page_token:
            query["pageToken"] = page_token

        try:
            status, payload = await self._request("GET", f"{self.base_url}/{resource_name}/media", params=query)
        except ProviderAPIError as e:
            log.warning(f"Media fetch for {resource_name} failed: {e.message}")
            return FetchPage()

        if status >= 400 or payload is None:
            return self._degrade(status, f"{resource_name}/media")

        return FetchPage(payload.get("mediaItems") or [], payload.get("nextPageToken"))
