"""
Google OAuth token endpoint client (refresh-token grant only)
"""
from typing import Any, Dict, Optional
import asyncio

import aiohttp

from gmb_hub.config import get_settings
from gmb_hub.errors import ConfigurationError, InvalidGrantError, TokenRefreshError
from gmb_hub.utils.logger import log

settings = get_settings()


class GoogleOAuthConnector:
    """Exchanges a stored refresh token for a new access token"""

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        token_url: Optional[str] = None,
    ):
        self.name = "Google OAuth"
        self.client_id = client_id or settings.google_client_id
        self.client_secret = client_secret or settings.google_client_secret
        self.token_url = token_url or settings.google_token_url
        self.refresh_count = 0
        self.error_count = 0

    async def _post_form(self, data: Dict[str, str]) -> tuple[int, Dict[str, Any]]:
        timeout = aiohttp.ClientTimeout(total=settings.http_timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self.token_url, data=data) as response:
                try:
                    payload = await response.json(content_type=None)
                except ValueError:
                    payload = {}
                return response.status, payload or {}

    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """
        Run the refresh_token grant.

        Returns the provider payload ({access_token, expires_in, refresh_token?}).
        Raises InvalidGrantError when Google revoked the grant, TokenRefreshError
        for anything else.
        """
        if not self.client_id or not self.client_secret:
            raise ConfigurationError("Google OAuth client id/secret are not configured")

        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

        try:
            status, payload = await self._post_form(data)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.error_count += 1
            raise TokenRefreshError(f"Token endpoint unreachable: {e}") from e

        if status >= 400 or "access_token" not in payload:
            self.error_count += 1
            error = payload.get("error")
            if error == "invalid_grant":
                log.warning("Token refresh rejected with invalid_grant")
                raise InvalidGrantError()
            description = payload.get("error_description") or error or f"HTTP {status}"
            log.error(f"Token refresh failed ({status}): {description}")
            raise TokenRefreshError(f"Failed to refresh token: {description}")

        self.refresh_count += 1
        return payload
