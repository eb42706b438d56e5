"""Reconciler exception types."""
from __future__ import annotations

from typing import Optional


class ReconcilerError(Exception):
    """Base for errors raised inside the reconciliation engine."""


class MalformedStub(ReconcilerError):
    """Stub cannot be reconciled (no title); rejected before any lookup."""


class LookupUnavailable(ReconcilerError):
    """Metadata collaborator failed with a 5xx or network error. Retryable."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class RateLimited(LookupUnavailable):
    """Metadata collaborator answered 429. Retryable after backoff."""

    def __init__(self, message: str = "rate limited", retry_after: Optional[float] = None) -> None:
        self.retry_after = retry_after
        super().__init__(message, status_code=429)


class CacheStoreError(ReconcilerError):
    """Durable cache store could not complete a read or write."""


class CacheQuotaExceeded(CacheStoreError):
    """Durable cache store rejected a write for size or quota."""
