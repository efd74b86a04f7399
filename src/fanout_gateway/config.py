"""
Configuration management for the request fan-out gateway.

Loads settings from environment variables with sensible defaults.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / '.env'
if _env_file.exists():
    load_dotenv(_env_file)


def _optional_float(name: str, default: str = '') -> float | None:
    """Read a float setting; an empty value disables it."""
    raw = os.getenv(name, default).strip()
    return float(raw) if raw else None


class Config:
    """Configuration settings loaded from environment."""

    # Logging
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')
    LOG_JSON: bool = os.getenv('LOG_JSON', 'false').lower() in ('1', 'true', 'yes')

    # Dispatch defaults (0 = no concurrency bound, empty = no deadline)
    MAX_CONCURRENCY: int = int(os.getenv('MAX_CONCURRENCY', '64'))
    ITEM_TIMEOUT_SECONDS: float | None = _optional_float('ITEM_TIMEOUT_SECONDS', '30')
    BATCH_TIMEOUT_SECONDS: float | None = _optional_float('BATCH_TIMEOUT_SECONDS')

    @classmethod
    def validate(cls) -> list[str]:
        """
        Validate configuration values.

        Returns:
            List of problems found (empty when valid)
        """
        problems = []
        if cls.MAX_CONCURRENCY < 0:
            problems.append('MAX_CONCURRENCY must be >= 0')
        if cls.ITEM_TIMEOUT_SECONDS is not None and cls.ITEM_TIMEOUT_SECONDS <= 0:
            problems.append('ITEM_TIMEOUT_SECONDS must be > 0')
        if cls.BATCH_TIMEOUT_SECONDS is not None and cls.BATCH_TIMEOUT_SECONDS <= 0:
            problems.append('BATCH_TIMEOUT_SECONDS must be > 0')
        return problems


# Singleton config instance
config = Config()
