"""Runtime settings, read from the environment."""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, Field, field_validator

_PREFIX = "LESSONSCHED_"


class Settings(BaseModel):
    storage_timezone: str = "America/Los_Angeles"
    buffer_minutes: int = Field(default=0, ge=0)
    events_url: str | None = None
    http_timeout: float = Field(default=20.0, gt=0)
    retry_delay: float = Field(default=1.0, ge=0)
    log_level: str = "INFO"

    @field_validator("events_url")
    @classmethod
    def _blank_url_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Settings:
        """Build settings from ``LESSONSCHED_*`` variables, ignoring unset ones."""
        env = os.environ if environ is None else environ
        fields = {
            "storage_timezone": "STORAGE_TZ",
            "buffer_minutes": "BUFFER_MINUTES",
            "events_url": "EVENTS_URL",
            "http_timeout": "HTTP_TIMEOUT",
            "retry_delay": "RETRY_DELAY",
            "log_level": "LOG_LEVEL",
        }
        values = {
            name: env[_PREFIX + key]
            for name, key in fields.items()
            if _PREFIX + key in env
        }
        return cls(**values)


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
