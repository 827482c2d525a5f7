"""
Configuration management for the GMB Hub sync and analytics service
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "GMB Hub"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Database
    database_url: str = "sqlite:///./gmb_hub.db"

    # Google OAuth client (token refresh only, consent happens elsewhere)
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    google_token_url: str = "https://oauth2.googleapis.com/token"
    token_refresh_buffer_minutes: int = 10

    # Google Business Profile API bases
    gmb_account_management_base: str = "https://mybusinessaccountmanagement.googleapis.com/v1"
    gmb_business_info_base: str = "https://mybusinessbusinessinformation.googleapis.com/v1"
    gmb_v4_base: str = "https://mybusiness.googleapis.com/v4"
    gmb_performance_base: str = "https://mybusinessperformance.googleapis.com/v1"
    http_timeout_seconds: float = 30.0

    # Sync behaviour
    upsert_chunk_size: int = 100
    sync_location_concurrency: int = 1  # 1 = locations processed one at a time
    metrics_window_days: int = 30
    keywords_window_months: int = 3
    hourly_sync_min_interval_minutes: int = 30

    # Analytics
    stale_location_hours: int = 24
    comparison_window_days: int = 30

    # Review replies
    bulk_reply_max_reviews: int = 50
    bulk_reply_delay_seconds: float = 0.5
    reply_max_length: int = 4096

    # Reply generator (external HTTP collaborator)
    reply_generator_url: Optional[str] = None
    reply_generator_api_key: Optional[str] = None

    # Internal trigger / cron
    cron_secret: Optional[str] = None
    enable_scheduler: bool = True
    scheduled_sync_cron: str = "5 * * * *"

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
