"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database (SQLite locally, PostgreSQL in production)
    DATABASE_URL: str = "sqlite:///./players.db"

    # Logging
    LOG_LEVEL: str = "INFO"

    # ═══════════════════════════════════════════════════════════════
    # Event bus (upload + player update notifications)
    # ═══════════════════════════════════════════════════════════════

    EVENT_BUS_MAX_QUEUE: int = 1000
    EVENT_BUS_STOP_TIMEOUT_SECONDS: float = 10.0
    # Events dispatched at once; each pipeline run holds one slot while it backs off
    EVENT_BUS_MAX_CONCURRENCY: int = 8

    # Sweeper: re-announce photos of players pending longer than this
    AVATAR_SWEEPER_ENABLED: bool = True
    AVATAR_SWEEPER_INTERVAL_SECONDS: int = 300
    AVATAR_SWEEPER_PENDING_AGE_SECONDS: int = 600

    # ═══════════════════════════════════════════════════════════════
    # Regeneration callable
    # ═══════════════════════════════════════════════════════════════

    # "flag": set regenerateRequested and let the trigger re-drive the pipeline
    # "direct": run the pipeline inline and answer with the avatar URL
    AVATAR_REGENERATE_MODE: str = "flag"

    # Timeout for fetching originalPhotoUrl when the canonical photo is missing
    ORIGINAL_PHOTO_FETCH_TIMEOUT_SECONDS: float = 15.0

    # Upload limits for the admin API
    PLAYER_PHOTO_MAX_BYTES: int = 5 * 1024 * 1024  # 5MB
    PLAYER_PHOTO_ALLOWED_TYPES: list[str] = ["image/jpeg", "image/png", "image/webp"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
