"""Configuration for the fan-out gateway HTTP service."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..config import config


class Settings(BaseSettings):
    """Service settings loaded from environment variables."""

    # Empty values (e.g. ITEM_TIMEOUT_SECONDS=) read as None
    model_config = SettingsConfigDict(env_parse_none_str="")

    # Listener
    LISTEN_HOST: str = "0.0.0.0"
    LISTEN_PORT: int = Field(default=1234, ge=1, le=65535)

    # Fan-out bounds (0 = unbounded, None = no deadline)
    MAX_CONCURRENCY: int = Field(default=config.MAX_CONCURRENCY, ge=0)
    ITEM_TIMEOUT_SECONDS: float | None = Field(default=config.ITEM_TIMEOUT_SECONDS, gt=0)
    BATCH_TIMEOUT_SECONDS: float | None = Field(default=config.BATCH_TIMEOUT_SECONDS, gt=0)
    FOLLOW_REDIRECTS: bool = False

    # Request log (optional)
    DATABASE_URL: str | None = None

    # Auth (optional; POST routes are open when unset)
    GATEWAY_API_KEY: str | None = None


@lru_cache
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
