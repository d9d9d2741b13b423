# config.py

"""Application configuration utilities.

Values are loaded from an optional ``config.json`` next to this file and may
be overridden by environment variables. The :func:`get_settings` helper
merges the two sources and caches the result.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings merged from JSON and environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite+aiosqlite:///./tableside.db"
    redis_url: str | None = None
    log_level: str = "INFO"
    # per-viewer write timeout; a slower viewer is dropped
    broadcast_write_timeout_secs: float = 5.0
    viewer_queue_max: int = 100
    viewer_timeout_secs: float = 1800
    sse_keepalive_secs: float = 15
    max_conn_per_ip: int = 20
    conflict_retries: int = 3
    receipt_restaurant_name: str = "Tableside"


# Cached singleton to avoid repeated file reads
@lru_cache
def get_settings() -> Settings:
    """Return merged settings with environment variable precedence.

    ``config.json`` is optional; when present its values are fed into
    :class:`Settings` and environment variables override any of them.
    """

    config_path = Path(__file__).with_name("config.json")
    data = json.loads(config_path.read_text()) if config_path.exists() else {}
    env_override = {
        k.lower(): v
        for k, v in os.environ.items()
        if k.lower() in Settings.model_fields
    }
    merged = {**data, **env_override}
    return Settings(**merged)
