"""FastAPI dependencies."""
from dataclasses import dataclass
from typing import Optional
import hmac

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from gmb_hub.config import get_settings
from gmb_hub.models.base import get_db
from gmb_hub.services.auto_reply_service import auto_reply_dispatcher
from gmb_hub.services.gmb_sync_service import GMBSyncService

settings = get_settings()


@dataclass
class Caller:
    """Who triggered a request: a user (via the auth proxy) or the internal cron"""
    user_id: Optional[str] = None
    is_internal: bool = False


def _is_cron_secret(authorization: Optional[str]) -> bool:
    if not settings.cron_secret or not authorization:
        return False
    return hmac.compare_digest(authorization, f"Bearer {settings.cron_secret}")


async def get_caller(
    authorization: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> Caller:
    """
    Resolve the caller.

    The internal trigger authenticates with the shared cron secret; users are
    identified by the X-User-Id header set by the upstream auth proxy.

    Raises:
        HTTPException: 401 if neither is present
    """
    if _is_cron_secret(authorization):
        return Caller(is_internal=True)
    if x_user_id:
        return Caller(user_id=x_user_id)
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


async def require_user(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    """Dependency for endpoints that only make sense for a signed-in user."""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return x_user_id


async def require_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """
    Dependency for cron-only endpoints.

    When no cron secret is configured the endpoint is open (local development).

    Raises:
        HTTPException: 401 if the secret is configured and missing/wrong
    """
    if settings.cron_secret and not _is_cron_secret(authorization):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def get_sync_service(db: Session = Depends(get_db)) -> GMBSyncService:
    """Dependency for the sync orchestrator, wired to the process-wide auto-reply dispatcher."""
    return GMBSyncService(db, dispatcher=auto_reply_dispatcher)
