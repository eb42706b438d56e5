"""
Bounded retry with per-attempt timeout and exponential backoff.
Transient lookup failures are retried; anything else ends the loop at once.
The orchestrator reports failures through RetryOutcome instead of raising.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

import httpx

from shared.models.enums import ErrorKind
from shared.utils.logging import get_logger
from shared.utils.metrics import LOOKUP_RETRIES

from reconciler.config import ReconcilerSettings, get_reconciler_settings
from reconciler.exceptions import LookupUnavailable, MalformedStub, RateLimited

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({429, 503})


@dataclass
class RetryOutcome(Generic[T]):
    value: Optional[T] = None
    error: Optional[BaseException] = None
    error_kind: Optional[ErrorKind] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def classify_error(exc: BaseException) -> tuple[ErrorKind, bool]:
    """Map an exception to (error kind, retryable)."""
    if isinstance(exc, RateLimited):
        return ErrorKind.RATE_LIMITED, True
    if isinstance(exc, LookupUnavailable):
        return ErrorKind.LOOKUP_UNAVAILABLE, True
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return ErrorKind.TIMEOUT, True
    if isinstance(exc, httpx.NetworkError):
        return ErrorKind.LOOKUP_UNAVAILABLE, True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 429:
            return ErrorKind.RATE_LIMITED, True
        return ErrorKind.LOOKUP_UNAVAILABLE, status in RETRYABLE_STATUS_CODES
    if isinstance(exc, MalformedStub):
        return ErrorKind.MALFORMED_STUB, False
    return ErrorKind.INTERNAL, False


def _retry_after(exc: BaseException) -> Optional[float]:
    if isinstance(exc, RateLimited):
        return exc.retry_after
    if isinstance(exc, httpx.HTTPStatusError):
        header = exc.response.headers.get("Retry-After")
        try:
            return float(header) if header is not None else None
        except ValueError:
            return None
    return None


class RetryOrchestrator:
    def __init__(
        self,
        settings: Optional[ReconcilerSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings or get_reconciler_settings()
        self._sleep = sleep

    async def run(
        self,
        op: Callable[[], Awaitable[T]],
        max_retries: Optional[int] = None,
        timeout_s: Optional[float] = None,
        backoff_base_s: Optional[float] = None,
        label: str = "",
    ) -> RetryOutcome[T]:
        max_retries = self._settings.max_retries if max_retries is None else max_retries
        timeout_s = self._settings.attempt_timeout_s if timeout_s is None else timeout_s
        base = self._settings.backoff_base_s if backoff_base_s is None else backoff_base_s

        attempt = 0
        while True:
            attempt += 1
            try:
                value = await asyncio.wait_for(op(), timeout=timeout_s)
                return RetryOutcome(value=value, attempts=attempt)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                kind, retryable = classify_error(e)
                if not retryable or attempt > max_retries:
                    logger.warning(
                        "retry_gave_up",
                        label=label,
                        attempts=attempt,
                        error_kind=kind.value,
                        error=str(e) or type(e).__name__,
                        retryable=retryable,
                    )
                    return RetryOutcome(error=e, error_kind=kind, attempts=attempt)

                delay = base * (2 ** (attempt - 1))
                hint = _retry_after(e)
                if hint is not None:
                    delay = max(delay, hint)
                LOOKUP_RETRIES.labels(error_kind=kind.value).inc()
                logger.debug(
                    "retry_scheduled",
                    label=label,
                    attempt=attempt,
                    error_kind=kind.value,
                    delay_s=delay,
                )
                await self._sleep(delay)
