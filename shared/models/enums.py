"""Domain enumerations for the reconciliation engine."""
from __future__ import annotations

from enum import Enum


class MediaType(str, Enum):
    MOVIE = "movie"
    TV = "tv"
    UNKNOWN = "unknown"


class ReconcileStatus(str, Enum):
    VERIFIED = "verified"
    NEEDS_USER_SELECTION = "needs_user_selection"
    UNVERIFIED = "unverified"
    FAILED = "failed"


class SearchTier(str, Enum):
    """Candidate search tiers, in the order they are attempted."""
    EXTERNAL_ID = "external_id"
    TITLE_YEAR = "title_year"
    TITLE_ONLY = "title_only"
    SIMPLIFIED = "simplified"


class ErrorKind(str, Enum):
    LOOKUP_UNAVAILABLE = "lookup_unavailable"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    AMBIGUOUS_MATCH = "ambiguous_match"
    MALFORMED_STUB = "malformed_stub"
    INTERNAL = "internal"


class SkipReason(str, Enum):
    MALFORMED = "malformed"
    CACHED = "cached"
    IN_FLIGHT = "in_flight"
