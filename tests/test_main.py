"""Tests for the cache maintenance loop."""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from reconciler.main import run_purge_loop


@pytest.mark.asyncio
async def test_purge_loop_survives_failed_sweep() -> None:
    cache = MagicMock()
    cache.purge_expired = AsyncMock(side_effect=[RuntimeError("redis gone"), 3])
    delays: list[float] = []

    async def sleep(delay: float) -> None:
        delays.append(delay)
        if len(delays) == 2:
            raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await run_purge_loop(cache, interval_s=60.0, sleep=sleep)

    assert cache.purge_expired.await_count == 2
    assert delays == [60.0, 60.0]
