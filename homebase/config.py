"""
Configuration and settings for the household API service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Database (Postgres expected; any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None, env="DATABASE_URL")

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, env="HOMEBASE_USE_IN_MEMORY_BACKENDS"
    )

    # Shared secret the platform scheduler sends as a bearer token.
    cron_secret: Optional[str] = Field(default=None, env="CRON_SECRET")

    # Redirect targets
    app_base_url: str = Field(default="http://localhost:3000", env="APP_BASE_URL")
    login_path: str = Field(default="/login")
    default_redirect_path: str = Field(default="/dashboard")
    settings_integrations_path: str = Field(default="/settings?tab=integrations")

    # Request context
    household_header: str = Field(default="x-household-id")
    household_cookie: str = Field(default="household-id")

    # Background sweeps
    webhook_renewal_window_hours: int = Field(
        default=24, env="WEBHOOK_RENEWAL_WINDOW_HOURS"
    )
    reminder_interval_minutes: int = Field(
        default=5, env="REMINDER_INTERVAL_MINUTES"
    )
    full_sync_horizon_days: int = Field(default=90, env="FULL_SYNC_HORIZON_DAYS")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
