"""
Batch reconciliation with fixed-size concurrent batches and inter-batch pacing.
Every submitted stub yields exactly one item, in input order.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Sequence

from shared.models.domain import BatchResult, ReconciledItem, RecommendationStub
from shared.models.enums import ErrorKind, ReconcileStatus, SkipReason
from shared.utils.logging import batch_log_context, get_logger
from shared.utils.metrics import BATCH_SIZE, RECONCILE_SKIPS

from reconciler.config import ReconcilerSettings, get_reconciler_settings
from reconciler.engine import ReconciliationEngine
from reconciler.exceptions import MalformedStub

logger = get_logger(__name__)


class BatchReconciler:
    def __init__(
        self,
        engine: ReconciliationEngine,
        settings: Optional[ReconcilerSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._engine = engine
        self._settings = settings or get_reconciler_settings()
        self._sleep = sleep

    async def reconcile_batch(
        self,
        stubs: Sequence[RecommendationStub],
        batch_size: Optional[int] = None,
        per_batch_delay_s: Optional[float] = None,
    ) -> BatchResult:
        size = max(1, batch_size or self._settings.batch_size)
        delay = self._settings.per_batch_delay_s if per_batch_delay_s is None else per_batch_delay_s
        BATCH_SIZE.observe(len(stubs))

        with batch_log_context() as batch_id:
            outcomes: list[tuple[ReconciledItem, Optional[SkipReason]]] = []
            for start in range(0, len(stubs), size):
                if start > 0 and delay > 0:
                    await self._sleep(delay)
                chunk = stubs[start:start + size]
                logger.debug("batch_chunk_start", offset=start, size=len(chunk), total=len(stubs))
                outcomes.extend(await asyncio.gather(*(self._reconcile_one(s) for s in chunk)))

            result = _summarize(outcomes)
            result.batch_id = batch_id
            logger.info(
                "batch_reconciled",
                total=result.total,
                verified=result.verified,
                needs_user_selection=result.needs_user_selection,
                unverified=result.unverified,
                failed=result.failed,
                skipped=result.skipped,
            )
        return result

    async def _reconcile_one(
        self,
        stub: RecommendationStub,
    ) -> tuple[ReconciledItem, Optional[SkipReason]]:
        try:
            item, skip = await self._engine.process(stub)
        except MalformedStub as e:
            logger.warning("batch_stub_malformed", stub=stub.model_dump(exclude_none=True))
            item = ReconciledItem.failed(stub, str(e), error_kind=ErrorKind.MALFORMED_STUB)
            item.skip_reason = SkipReason.MALFORMED
            skip = SkipReason.MALFORMED
        except Exception as e:
            logger.exception("batch_item_error", title=stub.title, error=str(e))
            item = ReconciledItem.failed(stub, str(e) or type(e).__name__)
            skip = None
        if skip is not None:
            RECONCILE_SKIPS.labels(reason=skip.value).inc()
        return item, skip


def _summarize(outcomes: list[tuple[ReconciledItem, Optional[SkipReason]]]) -> BatchResult:
    """
    Status counts cover every item that carries a reconciliation outcome
    (including cached and shared in-flight ones); malformed stubs count only
    as skipped.
    """
    result = BatchResult(total=len(outcomes), items=[item for item, _ in outcomes])
    for item, skip in outcomes:
        if skip is not None:
            result.skipped += 1
        if skip == SkipReason.MALFORMED:
            continue
        if item.status == ReconcileStatus.VERIFIED:
            result.verified += 1
        elif item.status == ReconcileStatus.NEEDS_USER_SELECTION:
            result.needs_user_selection += 1
        elif item.status == ReconcileStatus.UNVERIFIED:
            result.unverified += 1
        else:
            result.failed += 1
    return result
