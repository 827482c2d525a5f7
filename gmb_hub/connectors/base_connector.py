"""
Base connector class for the Google Business Profile APIs
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import asyncio

import aiohttp

from gmb_hub.config import get_settings
from gmb_hub.errors import ProviderAPIError
from gmb_hub.utils.helpers import utcnow
from gmb_hub.utils.logger import log

settings = get_settings()


@dataclass
class FetchPage:
    """One page of a paginated list call"""
    items: List[Dict[str, Any]] = field(default_factory=list)
    next_page_token: Optional[str] = None


class GoogleBaseConnector(ABC):
    """
    Base class for all GBP resource connectors.

    Subclasses implement ``fetch_page``; ``fetch_all`` follows nextPageToken
    to exhaustion (or stops after the first page for incremental syncs).
    There is no retry loop here: the next sync is the retry mechanism.
    """

    # Safety valve against a provider that keeps returning the same token
    MAX_PAGES = 500

    def __init__(self, name: str, access_token: str):
        self.name = name
        self.access_token = access_token
        self.last_fetch = None
        self.request_count = 0
        self.error_count = 0

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Any] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Optional[Dict[str, Any]]]:
        """
        Perform one HTTP call and return (status, parsed JSON body or None).

        Network failures raise ProviderAPIError with status None.
        """
        self.request_count += 1
        try:
            timeout = aiohttp.ClientTimeout(total=settings.http_timeout_seconds)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(
                    method, url, headers=self.headers, params=params, json=json
                ) as response:
                    payload = None
                    content_type = (response.headers.get("Content-Type") or "").lower()
                    if "application/json" in content_type:
                        try:
                            payload = await response.json()
                        except (aiohttp.ContentTypeError, ValueError):
                            payload = None
                    else:
                        text = await response.text()
                        if response.status >= 400:
                            log.debug(f"{self.name} non-JSON {response.status} body: {text[:200]}")
                    return response.status, payload
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.error_count += 1
            raise ProviderAPIError(f"{self.name} request failed: {type(e).__name__}: {e}") from e

    @abstractmethod
    async def fetch_page(self, resource_name: str, page_token: Optional[str] = None, **params) -> FetchPage:
        """Fetch one page for the given parent resource"""
        pass

    async def fetch_all(self, resource_name: str, incremental: bool = False, **params) -> List[Dict[str, Any]]:
        """Collect every item under resource_name, or only the first page when incremental."""
        items: List[Dict[str, Any]] = []
        page_token = None
        pages = 0

        while True:
            page = await self.fetch_page(resource_name, page_token=page_token, **params)
            items.extend(page.items)
            pages += 1
            page_token = page.next_page_token
            if incremental or not page_token or pages >= self.MAX_PAGES:
                break

        self.last_fetch = utcnow()
        log.info(f"Fetched {len(items)} {self.name} item(s) for {resource_name} in {pages} page(s)")
        return items

    @staticmethod
    def _error_message(payload: Optional[Dict[str, Any]]) -> str:
        """Google error envelopes look like {"error": {"code", "message", "status"}}"""
        error = (payload or {}).get("error")
        if isinstance(error, dict):
            return error.get("message") or error.get("status") or "no details"
        return str(error) if error else "no details"

    def _degrade(self, status: Optional[int], resource_name: str) -> FetchPage:
        """Empty page for a per-location resource the provider refused."""
        self.error_count += 1
        if status == 403:
            log.error(f"{self.name}: permission denied for {resource_name} (403), skipping")
        elif status == 404:
            log.warning(f"{self.name}: {resource_name} not found (404), skipping")
        else:
            log.warning(f"{self.name}: unexpected status {status} for {resource_name}, skipping")
        return FetchPage()
