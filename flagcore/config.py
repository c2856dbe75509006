"""Runtime settings for feature resolution."""

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class FeatureSettings(BaseSettings):
    # memory|database|redis
    DEFAULT_STORE: str = "memory"

    DATABASE_PATH: str = "features.db"

    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_PREFIX: str = "features"
    # Seconds; None keeps stored values forever
    CACHE_TTL: Optional[int] = None

    EVENTS_ENABLED: bool = True
    # Definitions expiring within this many days log a warning
    EXPIRY_WARN_DAYS: int = 7

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    model_config = {
        "env_prefix": "FLAGCORE_",
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @field_validator("CACHE_TTL")
    @classmethod
    def _ttl_not_negative(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            raise ValueError("CACHE_TTL must be a non-negative number of seconds")
        return value

    @field_validator("EXPIRY_WARN_DAYS")
    @classmethod
    def _warn_days_not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("EXPIRY_WARN_DAYS must not be negative")
        return value

    @field_validator("DEFAULT_STORE")
    @classmethod
    def _normalize_store(cls, value: str) -> str:
        return value.strip().lower()


_settings_cache: Optional[FeatureSettings] = None


def get_settings() -> FeatureSettings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = FeatureSettings()
    return _settings_cache


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings_cache
    _settings_cache = None
