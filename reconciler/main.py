"""
Reconciler cache maintenance entrypoint.
Connects the durable cache, exposes Prometheus metrics and periodically sweeps
expired verification entries until signalled.
"""
from __future__ import annotations

import asyncio
import signal
from typing import Awaitable, Callable

from prometheus_client import start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger, setup_logging
from shared.utils.redis_manager import RedisManager

from reconciler.cache import VerificationCache
from reconciler.cache_store import RedisCacheStore
from reconciler.config import get_reconciler_settings

logger = get_logger(__name__)


async def run_purge_loop(
    cache: VerificationCache,
    interval_s: float,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Sweep expired entries every interval_s; a failed sweep is logged and retried next round."""
    while True:
        try:
            removed = await cache.purge_expired()
            logger.debug("purge_sweep_done", removed=removed)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("purge_sweep_error", error=str(e))
        await sleep(interval_s)


async def main() -> None:
    setup_logging("reconciler")
    settings = get_settings()
    reconciler_settings = get_reconciler_settings()

    redis = RedisManager(settings)
    try:
        await redis.connect()
    except Exception as e:
        logger.exception("startup_connect_failed", error=str(e))
        raise

    if settings.metrics_enabled:
        start_http_server(reconciler_settings.metrics_port)
        logger.info("metrics_server_started", port=reconciler_settings.metrics_port)

    cache = VerificationCache(RedisCacheStore(redis), reconciler_settings)
    purge_task = asyncio.create_task(run_purge_loop(cache, reconciler_settings.purge_interval_s))

    shutdown = asyncio.Event()

    def on_signal() -> None:
        shutdown.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            asyncio.get_running_loop().add_signal_handler(sig, on_signal)
        except NotImplementedError:
            pass

    logger.info("reconciler_started", purge_interval_s=reconciler_settings.purge_interval_s)
    await shutdown.wait()

    purge_task.cancel()
    try:
        await purge_task
    except asyncio.CancelledError:
        pass

    await redis.disconnect()
    logger.info("reconciler_stopped")


if __name__ == "__main__":
    asyncio.run(main())
