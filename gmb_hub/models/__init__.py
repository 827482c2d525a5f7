"""Database models for GMB Hub"""

from gmb_hub.models.gmb import (
    GMBAccount,
    GMBLocation,
    GMBReview,
    GMBMedia,
    GMBPerformanceMetric,
    GMBSearchKeyword,
    GMBQuestion,
    GMBSyncLog,
)

__all__ = [
    "GMBAccount",
    "GMBLocation",
    "GMBReview",
    "GMBMedia",
    "GMBPerformanceMetric",
    "GMBSearchKeyword",
    "GMBQuestion",
    "GMBSyncLog",
]
