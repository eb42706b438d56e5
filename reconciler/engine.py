"""
Recommendation Reconciliation Engine.
Turns a loosely specified recommendation stub into a verified match, a set of
candidates for the user, or an explicit unverified / failed outcome.
Pipeline per stub: in-flight dedup -> cache -> tiered search -> classify -> cache.
"""
from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Awaitable, Callable, Optional

from shared.models.domain import ReconciledItem, RecommendationStub
from shared.models.enums import ErrorKind, SkipReason
from shared.utils.logging import get_logger
from shared.utils.metrics import RECONCILE_LATENCY, RECONCILIATIONS

from reconciler.cache import VerificationCache
from reconciler.confidence import ConfidenceClassifier
from reconciler.config import ReconcilerSettings, get_reconciler_settings
from reconciler.exceptions import MalformedStub
from reconciler.normalizer import stub_identity
from reconciler.resolver import CandidateResolver
from reconciler.retry import RetryOrchestrator
from reconciler.similarity import SimilarityScorer
from reconciler.sources.base import MetadataLookupService

logger = get_logger(__name__)


class ReconciliationEngine:
    """
    Owns the in-flight map, the verification cache and the matching pipeline.
    One engine instance per process (or per test); nothing is module-global.
    """

    def __init__(
        self,
        lookup: MetadataLookupService,
        cache: Optional[VerificationCache] = None,
        settings: Optional[ReconcilerSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings or get_reconciler_settings()
        self._cache = cache if cache is not None else VerificationCache(settings=self._settings, clock=clock)
        scorer = SimilarityScorer(self._settings)
        self._resolver = CandidateResolver(lookup, scorer, self._settings)
        self._classifier = ConfidenceClassifier(scorer, self._settings)
        self._retry = RetryOrchestrator(self._settings, sleep=sleep)
        self._in_flight: dict[str, asyncio.Future[ReconciledItem]] = {}

    @property
    def cache(self) -> VerificationCache:
        return self._cache

    def identity(self, stub: RecommendationStub) -> str:
        if not stub.has_title:
            raise MalformedStub("recommendation stub has no title")
        return stub_identity(stub)

    def is_in_flight(self, stub: RecommendationStub) -> bool:
        return self.identity(stub) in self._in_flight

    async def reconcile(self, stub: RecommendationStub) -> ReconciledItem:
        item, _ = await self.process(stub)
        return item

    async def process(self, stub: RecommendationStub) -> tuple[ReconciledItem, Optional[SkipReason]]:
        """
        Reconcile one stub and report why work was skipped, if it was.
        Raises MalformedStub for a stub without a title.
        """
        key = self.identity(stub)

        pending = self._in_flight.get(key)
        if pending is not None:
            logger.debug("reconcile_in_flight", key=key)
            shared = await asyncio.shield(pending)
            return (
                shared.model_copy(update={"source_stub": stub, "skip_reason": SkipReason.IN_FLIGHT}),
                SkipReason.IN_FLIGHT,
            )

        # Claimed before the first await so concurrent duplicates see it
        future: asyncio.Future[ReconciledItem] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            cached = await self._cache.get(key)
            if cached is not None:
                logger.debug("reconcile_cache_hit", key=key, status=cached.status.value)
                item = cached.model_copy(
                    update={"source_stub": stub, "from_cache": True, "skip_reason": SkipReason.CACHED}
                )
                future.set_result(item)
                return item, SkipReason.CACHED

            item = await self._reconcile_uncached(stub, key)
            future.set_result(item)
            return item, None
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Waiters re-raise it; mark retrieved so an unawaited future stays quiet
            future.exception()
            raise
        finally:
            self._in_flight.pop(key, None)

    async def _reconcile_uncached(self, stub: RecommendationStub, key: str) -> ReconciledItem:
        started = time.perf_counter()
        outcome = await self._retry.run(
            lambda: self._resolve_and_classify(stub),
            label=key,
        )
        if outcome.ok:
            item = outcome.value.model_copy(update={"attempts": outcome.attempts})
        else:
            item = ReconciledItem.failed(
                stub,
                error=str(outcome.error) or type(outcome.error).__name__,
                error_kind=outcome.error_kind or ErrorKind.INTERNAL,
                attempts=outcome.attempts,
            )

        elapsed = time.perf_counter() - started
        RECONCILIATIONS.labels(status=item.status.value).inc()
        RECONCILE_LATENCY.labels(status=item.status.value).observe(elapsed)
        logger.info(
            "reconcile_done",
            title=stub.title,
            year=stub.year,
            status=item.status.value,
            confidence=round(item.confidence_score, 3),
            tier=item.tier.value if item.tier else None,
            attempts=item.attempts,
            elapsed_ms=round(elapsed * 1000, 1),
        )

        await self._cache.put(key, item, self._cache.ttl_for(item.status))
        return item

    async def _resolve_and_classify(self, stub: RecommendationStub) -> ReconciledItem:
        resolution = await self._resolver.resolve(stub)
        return self._classifier.classify(resolution, stub)
