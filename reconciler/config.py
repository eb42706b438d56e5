"""
Reconciler configuration.
Uses RM_ prefix and the same Redis env as other services; adds matching thresholds,
cache TTLs, batch pacing and retry limits.
"""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.models.enums import ReconcileStatus


class ReconcilerSettings(BaseSettings):
    """Reconciler-specific settings; use get_settings() for Redis."""

    model_config = SettingsConfigDict(
        env_prefix="RM_RECONCILER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Matching thresholds
    verify_threshold: float = Field(default=0.8, description="Best combined score above this: verified")
    id_low_confidence_threshold: float = Field(default=0.8, description="Id-tier title score below this: low confidence flag")
    suspicious_title_length: int = Field(default=50, description="Titles longer than this are treated as suspicious")
    suspicious_score: float = Field(default=0.5, description="Score returned when either title is suspicious")
    containment_score: float = Field(default=0.7, description="Score when one title contains the other")
    containment_max_length_ratio: float = Field(default=0.7, description="Containment only applies below this length ratio")

    # Combined similarity weights
    text_weight: float = 0.3
    keyword_weight: float = 0.4
    title_weight: float = 0.3
    keyword_limit: int = Field(default=20, description="Top-N keywords extracted per text")

    # Candidate limits
    detail_fetch_limit: int = Field(default=5, description="Max detail records fetched per multi-candidate result")
    potential_matches_limit: int = Field(default=5, description="Max candidates offered for user selection")

    # Batch pacing
    batch_size: int = Field(default=5, description="Stubs reconciled concurrently per batch")
    per_batch_delay_s: float = Field(default=0.5, description="Pause between batches (rate-limit backpressure)")

    # Timeouts and retries
    max_retries: int = Field(default=2, description="Retries after the first attempt on transient failure")
    attempt_timeout_s: float = Field(default=15.0, description="Timeout per reconciliation attempt")
    backoff_base_s: float = Field(default=1.0, description="Base delay for exponential backoff")

    # Cache TTLs (hours)
    verified_ttl_hours: float = 48.0
    needs_selection_ttl_hours: float = 24.0
    unverified_ttl_hours: float = 12.0
    failed_ttl_hours: float = 6.0

    # Cache maintenance worker
    purge_interval_s: float = Field(default=3600.0, description="Seconds between expired-entry sweeps")
    metrics_port: int = Field(default=9108, description="Prometheus scrape port for the worker")

    def ttl_hours_for(self, status: ReconcileStatus) -> float:
        return {
            ReconcileStatus.VERIFIED: self.verified_ttl_hours,
            ReconcileStatus.NEEDS_USER_SELECTION: self.needs_selection_ttl_hours,
            ReconcileStatus.UNVERIFIED: self.unverified_ttl_hours,
            ReconcileStatus.FAILED: self.failed_ttl_hours,
        }[status]


def get_reconciler_settings() -> ReconcilerSettings:
    """Load reconciler settings. Call get_settings() before run if using shared Redis."""
    return ReconcilerSettings()
