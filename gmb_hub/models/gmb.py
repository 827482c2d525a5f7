"""
Google Business Profile Data Models

Relational copy of each tenant's GBP accounts, locations, reviews, media,
daily performance metrics and monthly search keyword impressions.
"""
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Date, Text, JSON,
    ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from gmb_hub.models.base import Base
from gmb_hub.utils.helpers import utcnow


class GMBAccount(Base):
    """
    A connected Google Business Profile account (one tenant's OAuth grant)

    Created by the OAuth callback, updated on every token refresh and every
    sync, deactivated (tokens cleared, row kept) on disconnect.
    """
    __tablename__ = "gmb_accounts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)

    account_name = Column(String, nullable=True)
    account_id = Column(String, nullable=True, index=True)
    # Provider resource name, "accounts/{id}"; resolved lazily on first sync
    email = Column(String, nullable=True)

    # OAuth credentials
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime, nullable=True)

    is_active = Column(Boolean, default=True, index=True)
    last_sync = Column(DateTime, nullable=True)
    disconnected_at = Column(DateTime, nullable=True)

    # {"syncSchedule": "daily", "auto_reply": {...}}
    settings = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    locations = relationship("GMBLocation", back_populates="account")

    def __repr__(self):
        return f"<GMBAccount {self.id} {self.account_id or self.account_name}>"


class GMBLocation(Base):
    """A business location under a GBP account"""
    __tablename__ = "gmb_locations"
    __table_args__ = (
        UniqueConstraint("gmb_account_id", "location_id", name="uq_gmb_locations_account_location"),
    )

    id = Column(Integer, primary_key=True, index=True)
    gmb_account_id = Column(Integer, ForeignKey("gmb_accounts.id"), index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)

    location_id = Column(String, nullable=False, index=True)
    # Provider resource name, "locations/{id}" or "accounts/{a}/locations/{id}"
    location_name = Column(String, nullable=True)
    address = Column(Text, nullable=True)
    phone = Column(String, nullable=True)
    category = Column(String, nullable=True)
    website = Column(String, nullable=True)

    # Raw provider payload plus derived sync stats; read through LocationMetadata
    location_metadata = Column(JSON, nullable=True)

    is_active = Column(Boolean, default=True, index=True)
    is_archived = Column(Boolean, default=False, index=True)
    last_synced_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    account = relationship("GMBAccount", back_populates="locations")

    def __repr__(self):
        return f"<GMBLocation '{self.location_name}' ({self.location_id})>"


class GMBReview(Base):
    """A customer review of a location"""
    __tablename__ = "gmb_reviews"

    id = Column(Integer, primary_key=True, index=True)
    gmb_account_id = Column(Integer, ForeignKey("gmb_accounts.id"), index=True, nullable=False)
    location_id = Column(Integer, ForeignKey("gmb_locations.id"), index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)

    external_review_id = Column(String, unique=True, nullable=False, index=True)
    reviewer_name = Column(String, nullable=True)
    rating = Column(Integer, nullable=False, index=True)  # 1-5
    review_text = Column(Text, nullable=True)
    review_date = Column(DateTime, nullable=True, index=True)

    reply_text = Column(Text, nullable=True)
    reply_date = Column(DateTime, nullable=True)
    has_reply = Column(Boolean, default=False, index=True)
    status = Column(String, default="pending", index=True)
    # pending, replied, in_progress, flagged, archived

    ai_sentiment = Column(String, nullable=True)  # positive, neutral, negative
    ai_suggested_reply = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<GMBReview {self.external_review_id} rating={self.rating}>"


class GMBMedia(Base):
    """Photo or video attached to a location"""
    __tablename__ = "gmb_media"

    id = Column(Integer, primary_key=True, index=True)
    gmb_account_id = Column(Integer, ForeignKey("gmb_accounts.id"), index=True, nullable=False)
    location_id = Column(Integer, ForeignKey("gmb_locations.id"), index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)

    external_media_id = Column(String, unique=True, nullable=False, index=True)
    type = Column(String, nullable=True)  # PHOTO, VIDEO
    url = Column(Text, nullable=True)
    thumbnail_url = Column(Text, nullable=True)
    create_time = Column(DateTime, nullable=True)
    update_time = Column(DateTime, nullable=True)
    media_metadata = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<GMBMedia {self.external_media_id} {self.type}>"


class GMBPerformanceMetric(Base):
    """One daily value of one performance metric for a location"""
    __tablename__ = "gmb_performance_metrics"
    __table_args__ = (
        UniqueConstraint("location_id", "metric_date", "metric_type", name="uq_gmb_metrics_location_date_type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    gmb_account_id = Column(Integer, ForeignKey("gmb_accounts.id"), index=True, nullable=False)
    location_id = Column(Integer, ForeignKey("gmb_locations.id"), index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)

    metric_date = Column(Date, index=True, nullable=False)
    metric_type = Column(String, index=True, nullable=False)
    # e.g. BUSINESS_IMPRESSIONS_MOBILE_SEARCH, CALL_CLICKS, WEBSITE_CLICKS
    metric_value = Column(Integer, default=0)
    sub_entity_type = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<GMBPerformanceMetric {self.metric_type} {self.metric_date}={self.metric_value}>"


class GMBSearchKeyword(Base):
    """Monthly search impressions for one keyword at one location"""
    __tablename__ = "gmb_search_keywords"
    __table_args__ = (
        UniqueConstraint("location_id", "search_keyword", "month_year", name="uq_gmb_keywords_location_keyword_month"),
    )

    id = Column(Integer, primary_key=True, index=True)
    gmb_account_id = Column(Integer, ForeignKey("gmb_accounts.id"), index=True, nullable=False)
    location_id = Column(Integer, ForeignKey("gmb_locations.id"), index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)

    search_keyword = Column(String, nullable=False, index=True)
    month_year = Column(Date, nullable=False, index=True)  # first day of month
    impressions_count = Column(Integer, default=0)
    # Provider suppresses low volumes and reports "fewer than threshold_value"
    threshold_value = Column(Integer, nullable=True)
    is_thresholded = Column(Boolean, default=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<GMBSearchKeyword '{self.search_keyword}' {self.month_year}>"


class GMBQuestion(Base):
    """Customer question on a location (read by the dashboard only)"""
    __tablename__ = "gmb_questions"

    id = Column(Integer, primary_key=True, index=True)
    location_id = Column(Integer, ForeignKey("gmb_locations.id"), index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)

    external_question_id = Column(String, unique=True, nullable=False)
    question_text = Column(Text, nullable=True)
    answer_status = Column(String, default="pending", index=True)  # pending, answered
    upvote_count = Column(Integer, default=0)

    created_at = Column(DateTime, default=utcnow)


class GMBSyncLog(Base):
    """One row per orchestrator run"""
    __tablename__ = "gmb_sync_logs"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, index=True, nullable=False)
    sync_type = Column(String, nullable=False)  # full, incremental
    status = Column(String, index=True)  # success, failed

    counts = Column(JSON, nullable=True)
    error_code = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)

    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    duration_ms = Column(Float, nullable=True)

    def __repr__(self):
        return f"<GMBSyncLog account={self.account_id} {self.sync_type} {self.status}>"
