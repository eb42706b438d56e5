"""
Central configuration for the reconciliation services.
Uses pydantic-settings for env-based config with validation.
"""
from __future__ import annotations

from enum import Enum
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Root settings shared across services."""

    model_config = SettingsConfigDict(
        env_prefix="RM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────
    environment: Environment = Environment.DEV
    debug: bool = False
    log_level: str = "INFO"
    instance_id: str = Field(default="", description="Unique pod/container ID bound to every log line")

    # ── Redis (durable verification cache) ──────────────────
    redis_url: RedisDsn = Field(default="redis://redis:6379/0")
    redis_max_connections: int = 20

    # ── Observability ────────────────────────────────────────
    metrics_enabled: bool = True

    @property
    def redis_url_str(self) -> str:
        return str(self.redis_url)

    @property
    def redis_url_safe_log(self) -> str:
        """URL with password redacted, for logging only."""
        try:
            u = urlparse(str(self.redis_url))
            netloc = (u.hostname or "?") + (f":{u.port}" if u.port else "")
            if u.password:
                netloc = f"***@{netloc}"
            return f"{u.scheme}://{netloc}{u.path or ''}"
        except ValueError:
            return "redis://***"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton access to validated settings."""
    return Settings()
