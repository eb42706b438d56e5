"""
Lightweight metrics collection for the reconciliation services.
Module-level prometheus_client collectors; label values are enum values.
"""
from __future__ import annotations

from prometheus_client import Counter, Histogram

# ── Counters ────────────────────────────────────────────────────────────
RECONCILIATIONS = Counter(
    "rm_reconciliations_total",
    "Reconciliation outcomes by status",
    ["status"],
)
RECONCILE_SKIPS = Counter(
    "rm_reconcile_skips_total",
    "Stubs skipped by the batch reconciler",
    ["reason"],
)
CACHE_LOOKUPS = Counter(
    "rm_cache_lookups_total",
    "Verification cache lookups by tier and result",
    ["tier", "result"],
)
CACHE_EVICTIONS = Counter(
    "rm_cache_evictions_total",
    "Durable cache entries evicted after a quota rejection",
)
LOOKUP_RETRIES = Counter(
    "rm_lookup_retries_total",
    "Retried reconciliation attempts by error kind",
    ["error_kind"],
)
SEARCH_TIER_HITS = Counter(
    "rm_search_tier_hits_total",
    "Search tier that produced the first non-empty candidate set",
    ["tier"],
)

# ── Histograms ──────────────────────────────────────────────────────────
RECONCILE_LATENCY = Histogram(
    "rm_reconcile_latency_seconds",
    "Time to reconcile a single stub (excluding cache hits)",
    ["status"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 15.0, 30.0),
)
BATCH_SIZE = Histogram(
    "rm_batch_stubs",
    "Number of stubs submitted per reconcile_batch call",
    buckets=(1, 5, 10, 20, 50, 100),
)

