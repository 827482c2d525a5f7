"""
Sync error taxonomy

Account-level failures carry a stable ``code`` so API callers and the
scheduler can react without parsing messages. Provider failures for a single
resource are raised as ProviderAPIError and absorbed by the orchestrator.
"""
from typing import Optional


class SyncError(Exception):
    """Terminal, account-level sync failure"""

    code = "sync_error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.code, "message": self.message}


class AccountNotFoundError(SyncError):
    code = "account_not_found"


class AccountInactiveError(SyncError):
    code = "account_inactive"


class MissingRefreshTokenError(SyncError):
    code = "missing_refresh_token"


class InvalidGrantError(SyncError):
    """The refresh token was revoked or expired; the user must reconnect."""

    code = "invalid_grant"

    def __init__(self, message: str = "Google authorization expired. Please reconnect your account."):
        super().__init__(message)


class AccountResourceUnresolvedError(SyncError):
    code = "account_resource_unresolved"


class TokenRefreshError(SyncError):
    code = "token_refresh_failed"


class LocationsFetchError(SyncError):
    """The account's location list could not be read, so nothing downstream can sync."""

    code = "locations_fetch_failed"

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class InvalidSyncTypeError(SyncError):
    code = "invalid_sync_type"


class ConfigurationError(SyncError):
    code = "configuration_error"


class ProviderAPIError(Exception):
    """Non-2xx (or unparseable) response from a Google API"""

    def __init__(self, message: str, status: Optional[int] = None, payload: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload or {}


class ReviewReplyError(Exception):
    """A reply could not be validated or posted"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status
