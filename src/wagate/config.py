"""Centralized configuration: Pydantic BaseSettings with dotenv support.

The runtime surface is deliberately small: listen address, webhook
destination, history capacity and log verbosity. Environment variables
override ``.env``.

Priority (highest wins): init args > env vars > .env

Usage::

    from wagate.config import get_settings

    s = get_settings()
    print(s.port)
"""

from __future__ import annotations

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Not configurable at runtime: pairing credentials always live here.
AUTH_DIR = Path("auth")

GROUP_CACHE_TTL: float = 300.0  # seconds
DEFAULT_MESSAGE_LIMIT = 50
MAX_MESSAGE_LIMIT = 200  # per request, whatever the history capacity


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 3000
    webhook_url: str = ""  # empty disables forwarding
    history_capacity: int = 200
    log_level: str = "INFO"

    @field_validator("history_capacity")
    @classmethod
    def validate_capacity(cls, v: int) -> int:
        if v < 1:
            raise ValueError("history_capacity must be a positive integer")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()

    @field_validator("webhook_url")
    @classmethod
    def strip_webhook_url(cls, v: str) -> str:
        return v.strip()


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_settings: Settings | None = None


def get_settings() -> Settings:
    """Lazy cached singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached singleton (for tests)."""
    global _settings
    _settings = None
