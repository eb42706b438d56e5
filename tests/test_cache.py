"""
Unit tests for the two-tier verification cache: TTL expiry, durable fallback,
quota eviction and purge.

Run: pytest tests/test_cache.py -v
"""
from __future__ import annotations

from datetime import timedelta
from typing import Optional
from unittest.mock import AsyncMock

import pytest

from shared.models.domain import CacheEntry, ReconciledItem, RecommendationStub
from shared.models.enums import ReconcileStatus

from reconciler.cache import VerificationCache
from reconciler.cache_store import MemoryCacheStore
from reconciler.config import ReconcilerSettings
from reconciler.exceptions import CacheQuotaExceeded, CacheStoreError
from reconciler.sources.base import PersistentCacheStore
from tests.conftest import FixedClock


def _unverified(title: str = "Dark") -> ReconciledItem:
    return ReconciledItem(source_stub=RecommendationStub(title=title), status=ReconcileStatus.UNVERIFIED)


class AlwaysFullStore(MemoryCacheStore):
    """Rejects every write; reads and deletes behave normally."""

    def __init__(self) -> None:
        super().__init__()
        self.put_attempts = 0

    async def put(self, entry: CacheEntry) -> None:
        self.put_attempts += 1
        raise CacheQuotaExceeded("quota exceeded")


class BrokenStore(PersistentCacheStore):
    async def get(self, key: str) -> Optional[CacheEntry]:
        raise CacheStoreError("connection refused")

    async def put(self, entry: CacheEntry) -> None:
        raise CacheStoreError("connection refused")

    async def delete(self, key: str) -> None:
        raise CacheStoreError("connection refused")

    async def list_entries(self) -> list[CacheEntry]:
        raise CacheStoreError("connection refused")


# ── TTL ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_fresh_entry_returned_before_expiry(settings: ReconcilerSettings, clock: FixedClock) -> None:
    cache = VerificationCache(settings=settings, clock=clock)
    await cache.put("dark|", _unverified(), ttl_hours=1)

    clock.advance(minutes=59)
    cached = await cache.get("dark|")

    assert cached is not None
    assert cached.status == ReconcileStatus.UNVERIFIED


@pytest.mark.asyncio
async def test_expired_entry_is_a_miss_and_removed(settings: ReconcilerSettings, clock: FixedClock) -> None:
    store = MemoryCacheStore()
    cache = VerificationCache(store, settings, clock)
    await cache.put("dark|", _unverified(), ttl_hours=1)

    clock.advance(minutes=61)

    assert await cache.get("dark|") is None
    assert len(cache) == 0
    assert len(store) == 0


def test_ttl_for_status(settings: ReconcilerSettings) -> None:
    cache = VerificationCache(settings=settings)
    assert cache.ttl_for(ReconcileStatus.VERIFIED) == 48
    assert cache.ttl_for(ReconcileStatus.NEEDS_USER_SELECTION) == 24
    assert cache.ttl_for(ReconcileStatus.UNVERIFIED) == 12
    assert cache.ttl_for(ReconcileStatus.FAILED) == 6


@pytest.mark.asyncio
async def test_entry_timestamps_follow_clock(settings: ReconcilerSettings, clock: FixedClock) -> None:
    store = MemoryCacheStore()
    cache = VerificationCache(store, settings, clock)
    await cache.put("dark|", _unverified(), ttl_hours=12)

    entry = await store.get("dark|")

    assert entry.created_at == clock.now
    assert entry.expires_at == clock.now + timedelta(hours=12)


# ── Durable tier ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_durable_hit_repopulates_fast_tier(settings: ReconcilerSettings, clock: FixedClock) -> None:
    store = MemoryCacheStore()
    writer = VerificationCache(store, settings, clock)
    await writer.put("dark|", _unverified(), ttl_hours=12)

    # Fresh process: empty fast tier, same durable store
    reader = VerificationCache(store, settings, clock)
    assert len(reader) == 0

    assert await reader.get("dark|") is not None
    assert len(reader) == 1


@pytest.mark.asyncio
async def test_durable_read_error_is_a_miss(settings: ReconcilerSettings, clock: FixedClock) -> None:
    cache = VerificationCache(BrokenStore(), settings, clock)
    assert await cache.get("dark|") is None


@pytest.mark.asyncio
async def test_durable_write_error_keeps_fast_tier(settings: ReconcilerSettings, clock: FixedClock) -> None:
    cache = VerificationCache(BrokenStore(), settings, clock)

    stored = await cache.put("dark|", _unverified(), ttl_hours=12)

    assert stored is False
    assert await cache.get("dark|") is not None


# ── Quota eviction ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_quota_evicts_oldest_third_then_retries(settings: ReconcilerSettings, clock: FixedClock) -> None:
    store = MemoryCacheStore(max_entries=6)
    cache = VerificationCache(store, settings, clock)
    for i in range(6):
        await cache.put(f"title{i}|", _unverified(f"Title {i}"), ttl_hours=12)
        clock.advance(minutes=1)

    stored = await cache.put("newest|", _unverified("Newest"), ttl_hours=12)

    assert stored is True
    remaining = {e.key for e in await store.list_entries()}
    assert remaining == {"title2|", "title3|", "title4|", "title5|", "newest|"}


@pytest.mark.asyncio
async def test_quota_on_small_store_evicts_one(settings: ReconcilerSettings, clock: FixedClock) -> None:
    store = MemoryCacheStore(max_entries=2)
    cache = VerificationCache(store, settings, clock)
    for key in ("old|", "mid|"):
        await cache.put(key, _unverified(), ttl_hours=12)
        clock.advance(minutes=1)

    stored = await cache.put("new|", _unverified(), ttl_hours=12)

    assert stored is True
    assert {e.key for e in await store.list_entries()} == {"mid|", "new|"}


@pytest.mark.asyncio
async def test_second_quota_failure_is_logged_not_raised(settings: ReconcilerSettings, clock: FixedClock) -> None:
    store = AlwaysFullStore()
    cache = VerificationCache(store, settings, clock)

    stored = await cache.put("dark|", _unverified(), ttl_hours=12)

    assert stored is False
    assert store.put_attempts == 2
    # Still served from the fast tier
    assert await cache.get("dark|") is not None


@pytest.mark.asyncio
async def test_eviction_uses_store_listing(settings: ReconcilerSettings, clock: FixedClock) -> None:
    entries = [
        CacheEntry(
            key=f"k{i}|",
            payload=_unverified(),
            created_at=clock.now - timedelta(hours=i),
            expires_at=clock.now + timedelta(hours=1),
        )
        for i in range(3)
    ]
    store = AsyncMock(spec=PersistentCacheStore)
    store.put.side_effect = [CacheQuotaExceeded("full"), None]
    store.list_entries.return_value = entries
    cache = VerificationCache(store, settings, clock)

    assert await cache.put("new|", _unverified(), ttl_hours=1) is True

    # Oldest of three is k2| (created two hours ago)
    store.delete.assert_awaited_once_with("k2|")
    assert store.put.await_count == 2


# ── purge_expired ───────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_purge_expired_sweeps_both_tiers(settings: ReconcilerSettings, clock: FixedClock) -> None:
    store = MemoryCacheStore()
    cache = VerificationCache(store, settings, clock)
    await cache.put("short|", _unverified("Short"), ttl_hours=1)
    await cache.put("long|", _unverified("Long"), ttl_hours=48)

    clock.advance(hours=2)
    removed = await cache.purge_expired()

    assert removed == 1
    assert {e.key for e in await store.list_entries()} == {"long|"}
    assert len(cache) == 1


@pytest.mark.asyncio
async def test_purge_with_unreachable_store_still_clears_fast_tier(
    settings: ReconcilerSettings,
    clock: FixedClock,
) -> None:
    cache = VerificationCache(BrokenStore(), settings, clock)
    await cache.put("short|", _unverified("Short"), ttl_hours=1)

    clock.advance(hours=2)

    assert await cache.purge_expired() == 1
    assert len(cache) == 0
