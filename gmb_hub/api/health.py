"""
Health check and status endpoints
"""
from fastapi import APIRouter

from gmb_hub import __version__
from gmb_hub.config import get_settings
from gmb_hub.services.auto_reply_service import auto_reply_dispatcher
from gmb_hub.utils.helpers import utcnow

settings = get_settings()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "version": __version__
    }


@router.get("/status")
async def get_status():
    """Get system status"""
    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "scheduler_enabled": settings.enable_scheduler,
        "auto_reply_pending": auto_reply_dispatcher.pending,
        "timestamp": utcnow().isoformat()
    }
