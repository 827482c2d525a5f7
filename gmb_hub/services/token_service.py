"""
Access token management for connected GMB accounts
"""
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from gmb_hub.config import get_settings
from gmb_hub.connectors.oauth_connector import GoogleOAuthConnector
from gmb_hub.errors import AccountNotFoundError, MissingRefreshTokenError
from gmb_hub.models.gmb import GMBAccount
from gmb_hub.utils.helpers import to_int, utcnow
from gmb_hub.utils.logger import log

settings = get_settings()


class TokenService:
    """Returns a usable bearer token per account, refreshing when close to expiry"""

    def __init__(self, db: Session, oauth: Optional[GoogleOAuthConnector] = None):
        self.db = db
        self.oauth = oauth or GoogleOAuthConnector()
        self.refresh_buffer = timedelta(minutes=settings.token_refresh_buffer_minutes)

    def needs_refresh(self, account: GMBAccount) -> bool:
        if not account.access_token or account.token_expires_at is None:
            return True
        return account.token_expires_at <= utcnow() + self.refresh_buffer

    async def get_valid_access_token(self, account_id: int) -> str:
        """
        Stored token if it outlives the refresh buffer, otherwise a fresh one.

        A refresh persists access token, expiry and (when Google rotates it)
        the refresh token in a single commit.
        """
        account = self.db.get(GMBAccount, account_id)
        if account is None:
            raise AccountNotFoundError(f"GMB account {account_id} not found")

        if not self.needs_refresh(account):
            return account.access_token

        if not account.refresh_token:
            raise MissingRefreshTokenError(
                f"GMB account {account_id} has no refresh token. Please reconnect your account."
            )

        log.info(f"Refreshing access token for GMB account {account_id}")
        payload = await self.oauth.refresh_access_token(account.refresh_token)

        account.access_token = payload["access_token"]
        account.token_expires_at = utcnow() + timedelta(seconds=to_int(payload.get("expires_in"), 3600))
        if payload.get("refresh_token"):
            account.refresh_token = payload["refresh_token"]
        self.db.commit()

        return account.access_token
