"""Application configuration from environment variables."""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "postgresql+asyncpg://localhost/predmarket"

    # Polymarket APIs
    gamma_api_url: str = "https://gamma-api.polymarket.com"
    clob_api_url: str = "https://clob.polymarket.com"
    http_timeout_seconds: float = 30.0

    # Shared secret for the cron-triggered sync endpoint
    cron_secret: Optional[str] = None

    # Event sync
    sync_page_size: int = 50
    # "best_effort" logs rejected batches and keeps going, "fail_fast" aborts the run
    upsert_failure_policy: str = "best_effort"

    # Scheduler settings
    enable_scheduler: bool = False  # Set ENABLE_SCHEDULER=true on ONE worker only
    sync_interval_minutes: int = 10

    # Pricing
    price_batch_size: int = 500
    fallback_price: float = 0.5

    # Event listing
    events_page_size: int = 40
    trending_window_days: int = 3

    # Logging
    log_level: str = "INFO"

    # System status endpoint access control
    enable_system_status: bool = True  # Set ENABLE_SYSTEM_STATUS=false to disable

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
