"""
Configuration and settings for the MediScan backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    cors_origins: List[str] = Field(default=["http://localhost:3000"])
    log_level: str = Field(default="INFO")

    # Row storage (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible object storage
    storage_bucket: Optional[str] = Field(default=None)
    storage_endpoint: Optional[str] = Field(default=None)
    storage_region: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    storage_public_base_url: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Credential auth
    secret_key: str = Field(default="dev-secret-change-me")
    algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60)
    confirmation_token_expire_hours: int = Field(default=24)
    require_email_confirmation: bool = Field(default=True)
    site_url: str = Field(default="http://localhost:3000")

    # Simulated analysis timing
    analysis_min_delay_seconds: float = Field(default=3.0, ge=0)
    analysis_max_delay_seconds: float = Field(default=5.0, ge=0)
    progress_tick_seconds: float = Field(default=0.3, gt=0)
    analysis_seed: Optional[int] = Field(default=None)

    # The profile row is written by the backend right after sign-up and can lag.
    profile_retry_delay_seconds: float = Field(default=0.5, ge=0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
