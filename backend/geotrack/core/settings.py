from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="GEOTRACK_",
        case_sensitive=False,
    )

    # Design default: local async sqlite database.
    db_url: str = "sqlite+aiosqlite:///./data/dev.db"

    # Fixes are stored with a 9-char geohash (~5m cell).
    geohash_precision: int = 9

    # Enrichment worker
    enrichment_enabled: bool = True
    enrichment_interval_s: float = 1.0

    # Celery (backfill sweeps)
    # Default dev behavior: run tasks inline unless explicitly disabled.
    celery_eager: bool = True
    redis_url: str | None = None

    # CORS (dev defaults)
    cors_allow_origin: str = "http://localhost:3000"
    cors_allow_credentials: bool = True

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
