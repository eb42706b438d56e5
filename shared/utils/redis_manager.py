"""
Redis connection manager for the reconciliation services.
Provides the async connection pool and key namespace utilities for the
durable verification cache.
"""
from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Key namespaces ──────────────────────────────────────────────────────
VERIFICATION_CACHE_KEY = "reconcile:cache:{key}"
VERIFICATION_CACHE_INDEX = "reconcile:cache:index"


def _fmt(template: str, **kwargs: Any) -> str:
    return template.format(**kwargs)


class RedisManager:
    """Manages async Redis connection pool and provides typed helpers."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._pool: Optional[Redis] = None

    async def connect(self) -> None:
        """Initialize the connection pool."""
        self._pool = aioredis.from_url(
            self._settings.redis_url_str,
            max_connections=self._settings.redis_max_connections,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
            retry_on_timeout=True,
        )
        await self._pool.ping()
        logger.info("redis_connected", url=self._settings.redis_url_safe_log)

    async def disconnect(self) -> None:
        """Graceful shutdown."""
        if self._pool:
            await self._pool.aclose()
            logger.info("redis_disconnected")

    @property
    def client(self) -> Redis:
        if self._pool is None:
            raise RuntimeError("RedisManager not connected. Call connect() first.")
        return self._pool

    # ── Verification cache helpers ──────────────────────────────────────
    async def set_cache_entry(self, key: str, data: str, created_at: float, ttl_s: int) -> None:
        """Store a serialized cache entry with TTL and index it by creation time."""
        pipe = self.client.pipeline(transaction=True)
        pipe.set(_fmt(VERIFICATION_CACHE_KEY, key=key), data, ex=max(1, ttl_s))
        pipe.zadd(VERIFICATION_CACHE_INDEX, {key: created_at})
        await pipe.execute()

    async def get_cache_entry(self, key: str) -> Optional[str]:
        return await self.client.get(_fmt(VERIFICATION_CACHE_KEY, key=key))

    async def delete_cache_entry(self, key: str) -> None:
        pipe = self.client.pipeline(transaction=True)
        pipe.delete(_fmt(VERIFICATION_CACHE_KEY, key=key))
        pipe.zrem(VERIFICATION_CACHE_INDEX, key)
        await pipe.execute()

    async def list_cache_keys(self) -> list[str]:
        """Cache keys ordered oldest first."""
        return list(await self.client.zrange(VERIFICATION_CACHE_INDEX, 0, -1))

    async def get_cache_entries(self, keys: list[str]) -> list[Optional[str]]:
        if not keys:
            return []
        return list(await self.client.mget([_fmt(VERIFICATION_CACHE_KEY, key=k) for k in keys]))
