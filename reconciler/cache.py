"""
Two-tier verification cache: in-process dict in front of a durable store.
Expired entries are dropped lazily on read; a quota rejection evicts the
oldest third of the durable tier and the write is retried once.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from shared.models.domain import CacheEntry, ReconciledItem
from shared.models.enums import ReconcileStatus
from shared.utils.logging import get_logger
from shared.utils.metrics import CACHE_EVICTIONS, CACHE_LOOKUPS

from reconciler.config import ReconcilerSettings, get_reconciler_settings
from reconciler.exceptions import CacheQuotaExceeded, CacheStoreError
from reconciler.sources.base import PersistentCacheStore

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VerificationCache:
    def __init__(
        self,
        store: Optional[PersistentCacheStore] = None,
        settings: Optional[ReconcilerSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._settings = settings or get_reconciler_settings()
        self._clock = clock or _utcnow
        self._fast: dict[str, CacheEntry] = {}

    def ttl_for(self, status: ReconcileStatus) -> float:
        """TTL in hours for an outcome status."""
        return self._settings.ttl_hours_for(status)

    async def get(self, key: str) -> Optional[ReconciledItem]:
        now = self._clock()
        entry = self._fast.get(key)
        if entry is not None:
            if not entry.is_expired(now):
                CACHE_LOOKUPS.labels(tier="fast", result="hit").inc()
                return entry.payload
            del self._fast[key]
            CACHE_LOOKUPS.labels(tier="fast", result="expired").inc()

        if self._store is None:
            CACHE_LOOKUPS.labels(tier="fast", result="miss").inc()
            return None

        try:
            entry = await self._store.get(key)
        except CacheStoreError as e:
            logger.warning("cache_durable_read_failed", key=key, error=str(e))
            CACHE_LOOKUPS.labels(tier="durable", result="error").inc()
            return None
        if entry is None:
            CACHE_LOOKUPS.labels(tier="durable", result="miss").inc()
            return None
        if entry.is_expired(now):
            CACHE_LOOKUPS.labels(tier="durable", result="expired").inc()
            await self._delete_durable(key)
            return None

        self._fast[key] = entry
        CACHE_LOOKUPS.labels(tier="durable", result="hit").inc()
        return entry.payload

    async def put(self, key: str, payload: ReconciledItem, ttl_hours: float) -> bool:
        """Store in both tiers. Returns False when the durable write was dropped."""
        now = self._clock()
        entry = CacheEntry(
            key=key,
            payload=payload,
            created_at=now,
            expires_at=now + timedelta(hours=ttl_hours),
        )
        self._fast[key] = entry
        if self._store is None:
            return True

        try:
            await self._store.put(entry)
            return True
        except CacheQuotaExceeded:
            logger.info("cache_quota_exceeded", key=key)
        except CacheStoreError as e:
            logger.warning("cache_durable_write_failed", key=key, error=str(e))
            return False

        try:
            await self._evict_oldest()
            await self._store.put(entry)
            return True
        except CacheStoreError as e:
            logger.warning("cache_write_dropped", key=key, error=str(e))
            return False

    async def purge_expired(self) -> int:
        """Remove expired entries from both tiers; returns how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._fast.items() if e.is_expired(now)]
        for key in expired:
            del self._fast[key]
        removed = set(expired)

        if self._store is not None:
            try:
                entries = await self._store.list_entries()
            except CacheStoreError as e:
                logger.warning("cache_purge_scan_failed", error=str(e))
                entries = []
            for entry in entries:
                if entry.is_expired(now):
                    await self._delete_durable(entry.key)
                    removed.add(entry.key)

        if removed:
            logger.info("cache_purged", removed=len(removed))
        return len(removed)

    async def _evict_oldest(self) -> None:
        entries = await self._store.list_entries()
        entries.sort(key=lambda e: e.created_at)
        # Never zero, so a store of one or two entries still frees a slot
        victims = entries[: max(1, len(entries) // 3)]
        for entry in victims:
            await self._store.delete(entry.key)
            self._fast.pop(entry.key, None)
        CACHE_EVICTIONS.inc(len(victims))
        logger.info("cache_evicted", evicted=len(victims), remaining=len(entries) - len(victims))

    async def _delete_durable(self, key: str) -> None:
        try:
            await self._store.delete(key)
        except CacheStoreError as e:
            logger.warning("cache_durable_delete_failed", key=key, error=str(e))

    def __len__(self) -> int:
        return len(self._fast)
