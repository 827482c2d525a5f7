"""
Review reply endpoints
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from gmb_hub.api.deps import require_user
from gmb_hub.api.sync import sync_error_response
from gmb_hub.errors import ReviewReplyError, SyncError
from gmb_hub.models.base import get_db
from gmb_hub.services.review_reply_service import ReviewReplyService

router = APIRouter(prefix="/reviews", tags=["reviews"])


class ReplyRequest(BaseModel):
    text: str


class BulkReplyRequest(BaseModel):
    review_ids: List[int]
    text: str


@router.post("/{review_id}/reply")
async def reply_to_review(
    review_id: int,
    request: ReplyRequest,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    try:
        result = await ReviewReplyService(db).reply_to_review(review_id, request.text, user_id=user_id)
        return {"ok": True, **result}
    except ReviewReplyError as e:
        raise HTTPException(status_code=e.status or 400, detail=e.message)
    except SyncError as e:
        return sync_error_response(e)


@router.post("/bulk-reply")
async def bulk_reply(
    request: BulkReplyRequest,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Reply to up to 50 reviews with the same text, paced to avoid bursts."""
    try:
        result = await ReviewReplyService(db).bulk_reply(request.review_ids, request.text, user_id=user_id)
        return {"ok": True, **result}
    except ReviewReplyError as e:
        raise HTTPException(status_code=e.status or 400, detail=e.message)
