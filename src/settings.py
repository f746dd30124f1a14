"""Centralized settings for the alert reminder service.

Uses pydantic-settings to load from environment variables (prefixed
REMINDERS_) with defaults suitable for local development.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Reminder service settings loaded from environment variables."""

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "json"
    service_name: str = "alert-reminders"

    # --- Delivery ---
    default_channels: list[str] = ["inapp"]
    email_enabled: bool = False
    sms_enabled: bool = False

    # --- Scheduling ---
    scheduler_poll_seconds: float = 1.0
    snooze_timezone: str = "UTC"

    # --- Analytics ---
    high_engagement_threshold: float = 80.0
    low_engagement_threshold: float = 20.0
    effectiveness_top_n: int = 5

    # --- Persistence ---
    database_url: str = "sqlite:///reminders.db"

    model_config = {
        "env_prefix": "REMINDERS_",
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
