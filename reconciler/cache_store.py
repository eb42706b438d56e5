"""
Durable verification cache stores.
RedisCacheStore persists entries through the shared RedisManager; MemoryCacheStore
is a bounded in-process store for single-process runs.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError
from redis.exceptions import OutOfMemoryError, RedisError

from shared.models.domain import CacheEntry
from shared.utils.logging import get_logger
from shared.utils.redis_manager import RedisManager

from reconciler.exceptions import CacheQuotaExceeded, CacheStoreError
from reconciler.sources.base import PersistentCacheStore

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RedisCacheStore(PersistentCacheStore):
    """Entries as JSON under reconcile:cache:{key}, indexed by creation time."""

    def __init__(self, redis: RedisManager, clock: Callable[[], datetime] = _utcnow) -> None:
        self._redis = redis
        self._clock = clock

    async def get(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = await self._redis.get_cache_entry(key)
        except RedisError as e:
            raise CacheStoreError(f"redis get failed: {e}") from e
        if raw is None:
            return None
        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError:
            logger.warning("cache_entry_corrupt", key=key)
            await self.delete(key)
            return None

    async def put(self, entry: CacheEntry) -> None:
        ttl_s = int((entry.expires_at - self._clock()).total_seconds())
        try:
            await self._redis.set_cache_entry(
                entry.key,
                entry.model_dump_json(),
                created_at=entry.created_at.timestamp(),
                ttl_s=ttl_s,
            )
        except OutOfMemoryError as e:
            raise CacheQuotaExceeded(str(e)) from e
        except RedisError as e:
            raise CacheStoreError(f"redis put failed: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete_cache_entry(key)
        except RedisError as e:
            raise CacheStoreError(f"redis delete failed: {e}") from e

    async def list_entries(self) -> list[CacheEntry]:
        try:
            keys = await self._redis.list_cache_keys()
            raws = await self._redis.get_cache_entries(keys)
        except RedisError as e:
            raise CacheStoreError(f"redis scan failed: {e}") from e
        entries: list[CacheEntry] = []
        stale: list[str] = []
        for key, raw in zip(keys, raws):
            if raw is None:
                # Redis TTL already dropped the value; index entry is stale
                stale.append(key)
                continue
            try:
                entries.append(CacheEntry.model_validate_json(raw))
            except ValidationError:
                stale.append(key)
        for key in stale:
            await self.delete(key)
        return entries


class MemoryCacheStore(PersistentCacheStore):
    """Bounded in-process store; rejects writes beyond max_entries like a full quota."""

    def __init__(self, max_entries: Optional[int] = None) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._max_entries = max_entries

    async def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    async def put(self, entry: CacheEntry) -> None:
        if (
            self._max_entries is not None
            and entry.key not in self._entries
            and len(self._entries) >= self._max_entries
        ):
            raise CacheQuotaExceeded(f"memory cache full ({self._max_entries} entries)")
        self._entries[entry.key] = entry

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def list_entries(self) -> list[CacheEntry]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)
