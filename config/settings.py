"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. App-specific
settings use the ``GRS_`` prefix; infrastructure settings use their
canonical environment variable names via ``validation_alias``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Central configuration for the GRS portal.

    Environment variables are loaded from a ``.env`` file when present.
    App-specific keys are prefixed with ``GRS_``; infra keys use their
    standard names (configured via ``validation_alias``).
    """

    model_config = SettingsConfigDict(
        env_prefix="GRS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"

    # ── Redis ──────────────────────────────────────────────────────────
    # Empty string disables Redis and keeps everything in process memory.
    redis_url: str = Field(default="", validation_alias="REDIS_URL")
    storage_namespace: str = "grs:"

    # ── API ────────────────────────────────────────────────────────────
    cors_origins: str = Field(default="", validation_alias="CORS_ORIGINS")

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    # ── Sessions & accounts ────────────────────────────────────────────
    session_ttl_seconds: int = Field(default=86_400, ge=60)  # 1 day
    min_password_length: int = Field(default=6, ge=1)
    password_hash_iterations: int = Field(default=200_000, ge=1)

    # ── Dashboard ──────────────────────────────────────────────────────
    recent_complaints_limit: int = Field(default=5, ge=1)
    notification_history_size: int = Field(default=50, ge=1)

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# Module-level singleton; import ``settings`` everywhere.
settings = Settings()
