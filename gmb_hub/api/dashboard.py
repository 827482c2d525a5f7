"""
Dashboard endpoints
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from gmb_hub.api.deps import require_user
from gmb_hub.models.base import get_db
from gmb_hub.services.dashboard_service import DashboardService
from gmb_hub.utils.logger import log

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/overview")
async def get_overview(user_id: str = Depends(require_user), db: Session = Depends(get_db)):
    """
    Health score, bottlenecks, trends and location highlights for the caller.

    Everything is computed from already-synced rows; no Google calls are made.
    """
    try:
        return DashboardService(db).build_overview(user_id)
    except Exception as e:
        log.error(f"Dashboard overview error: {str(e)}")
        raise HTTPException(status_code=500, detail="Unexpected error while building dashboard overview")
