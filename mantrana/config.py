"""
Shaadi Mantrana — Application Configuration

Every knob comes from the environment or a local ``.env`` file and is
validated once by Pydantic Settings; ``get_settings()`` hands out the cached
instance.

Services accept an explicit ``Settings`` instance at construction and only
fall back to ``get_settings()`` when none is given.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Shaadi Mantrana match core."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Database
    # ------------------------------------------------------------------ #
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800
    DB_CONNECT_ATTEMPTS: int = 5

    # ------------------------------------------------------------------ #
    # Likes & matching
    # ------------------------------------------------------------------ #
    DAILY_LIKE_LIMIT: int = 5
    LIKE_RETENTION_DAYS: int = 90
    TOAST_ACK_RETENTION_HOURS: int = 24

    # ------------------------------------------------------------------ #
    # Access control (allow-list & invitations)
    # ------------------------------------------------------------------ #
    INVITATION_TTL_DAYS: int = 30
    INVITATION_MAX_ATTEMPTS: int = 5
    APPROVED_DOMAINS: str = ""

    # ------------------------------------------------------------------ #
    # Runtime environment
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # ------------------------------------------------------------------ #
    # CORS
    # ------------------------------------------------------------------ #
    ALLOWED_ORIGINS: str = "*"

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list split on commas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def approved_domains_set(self) -> set[str]:
        """Return APPROVED_DOMAINS as a set of lower-cased domains."""
        return {
            d.strip().lower()
            for d in self.APPROVED_DOMAINS.split(",")
            if d.strip()
        }

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @field_validator(
        "DAILY_LIKE_LIMIT",
        "LIKE_RETENTION_DAYS",
        "TOAST_ACK_RETENTION_HOURS",
        "INVITATION_TTL_DAYS",
        "INVITATION_MAX_ATTEMPTS",
        "DB_CONNECT_ATTEMPTS",
    )
    @classmethod
    def _must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be a positive integer, got {v}")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """The process-wide ``Settings``, parsed on first call::

        from mantrana.config import get_settings
        settings = get_settings()
    """
    return Settings()  # type: ignore[call-arg]
