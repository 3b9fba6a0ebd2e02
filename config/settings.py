"""
Configuration settings for the ledger service
"""
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LOGS_DIR = Path("./logs")

# User classifications supplied by the auth/session collaborator
CLASSIFICATION_GUEST = "guest"
CLASSIFICATION_REGULAR = "regular"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Infrastructure configuration
    database_url: Optional[str] = Field(default="sqlite+aiosqlite:///./ledger.db", alias="DATABASE_URL")
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")

    # Shared secrets for collaborator-facing endpoints
    payment_webhook_secret: Optional[str] = Field(default=None, alias="PAYMENT_WEBHOOK_SECRET")
    admin_secret: Optional[str] = Field(default=None, alias="ADMIN_SECRET")
    ledger_service_secret: Optional[str] = Field(default=None, alias="LEDGER_SERVICE_SECRET")

    # Frontend configuration
    frontend_url: Optional[str] = Field(default="http://localhost:5173", alias="FRONTEND_URL")

    # Daily trial sizes and legacy rolling limits per classification
    guest_trial_messages: int = Field(default=2, alias="GUEST_TRIAL_MESSAGES", gt=0)
    regular_trial_messages: int = Field(default=5, alias="REGULAR_TRIAL_MESSAGES", gt=0)
    guest_legacy_daily_limit: int = Field(default=20, alias="GUEST_LEGACY_DAILY_LIMIT", gt=0)
    regular_legacy_daily_limit: int = Field(default=100, alias="REGULAR_LEGACY_DAILY_LIMIT", gt=0)

    # Storage retry policy for the request gate
    storage_retry_attempts: int = Field(default=3, alias="STORAGE_RETRY_ATTEMPTS", ge=1)
    storage_retry_backoff_seconds: float = Field(default=0.1, alias="STORAGE_RETRY_BACKOFF_SECONDS", ge=0)
    ledger_lock_timeout_seconds: float = Field(default=10.0, alias="LEDGER_LOCK_TIMEOUT_SECONDS", gt=0)

    balance_cache_ttl_seconds: int = Field(default=60, alias="BALANCE_CACHE_TTL_SECONDS", gt=0)

    # Render.com deployment configuration
    render: Optional[str] = Field(default=None, alias="RENDER")

    # Environment configuration
    env: Optional[str] = Field(default=None, alias="ENV")


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = bool(settings.render) or bool(settings.env and settings.env.lower() == "production")
