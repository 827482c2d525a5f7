"""
GMB synchronization endpoints
"""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from gmb_hub.api.deps import Caller, get_caller, get_sync_service, require_cron_secret, require_user
from gmb_hub.errors import (
    AccountNotFoundError,
    InvalidGrantError,
    LocationsFetchError,
    SyncError,
)
from gmb_hub.models.base import get_db
from gmb_hub.services.account_service import AccountService
from gmb_hub.services.auto_reply_service import auto_reply_dispatcher
from gmb_hub.services.gmb_sync_service import GMBSyncService
from gmb_hub.utils.helpers import utcnow
from gmb_hub.utils.logger import log

router = APIRouter(prefix="/gmb", tags=["gmb"])


class SyncRequest(BaseModel):
    account_id: int
    sync_type: str = "full"


class DisconnectRequest(BaseModel):
    account_id: int


def sync_error_status(error: SyncError) -> int:
    """HTTP status for an account-level sync failure"""
    if isinstance(error, InvalidGrantError):
        return 401
    if isinstance(error, AccountNotFoundError):
        return 404
    if isinstance(error, LocationsFetchError):
        return 502
    return 400


def sync_error_response(error: SyncError) -> JSONResponse:
    return JSONResponse(status_code=sync_error_status(error), content=error.to_dict())


@router.post("/sync")
async def sync_account(
    request: SyncRequest,
    caller: Caller = Depends(get_caller),
    sync_service: GMBSyncService = Depends(get_sync_service),
):
    """
    Run a full or incremental sync of one GMB account.

    Example: POST /gmb/sync {"account_id": 1, "sync_type": "incremental"}
    """
    try:
        if not caller.is_internal:
            # Users may only sync their own accounts
            AccountService(sync_service.db).get_account(request.account_id, caller.user_id)

        outcome = await sync_service.sync_account(request.account_id, request.sync_type)
        return outcome.to_dict()
    except SyncError as e:
        return sync_error_response(e)
    except Exception as e:
        log.error(f"Sync error for GMB account {request.account_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/scheduled-sync", dependencies=[Depends(require_cron_secret)])
async def scheduled_sync(db: Session = Depends(get_db)):
    """Sync every active account whose schedule is due this hour (cron entry point)."""
    try:
        result = await AccountService(db).run_scheduled_sync(
            lambda session: GMBSyncService(session, dispatcher=auto_reply_dispatcher),
            now=utcnow(),
        )
        return {"message": "Scheduled sync process completed", **result}
    except Exception as e:
        log.error(f"Scheduled sync error: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/disconnect")
async def disconnect_account(
    request: DisconnectRequest,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Deactivate an account and clear its tokens; synced data is kept."""
    try:
        account = AccountService(db).disconnect(request.account_id, user_id)
        return {
            "ok": True,
            "account_id": account.id,
            "disconnected_at": account.disconnected_at.isoformat(),
        }
    except SyncError as e:
        return sync_error_response(e)
