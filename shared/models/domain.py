"""
Pydantic v2 domain models shared by the reconciliation services.
These are the canonical internal representations at the collaborator boundary;
field-name translation from any provider payload happens in the adapters.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from shared.models.enums import ErrorKind, MediaType, ReconcileStatus, SearchTier, SkipReason

_YEAR_RE = re.compile(r"(\d{4})")


def start_year(year: Optional[str]) -> Optional[str]:
    """First four-digit run of a year field; "2019-2022" -> "2019"."""
    if not year:
        return None
    m = _YEAR_RE.search(year)
    return m.group(1) if m else None


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ── Inputs ──────────────────────────────────────────────────────────────
class RecommendationStub(DomainModel):
    """A loosely specified recommendation awaiting reconciliation."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True, frozen=True)

    title: Optional[str] = None
    year: Optional[str] = None
    external_id: Optional[str] = None
    external_url: Optional[str] = None
    reason: Optional[str] = None
    synopsis: Optional[str] = None
    media_type_hint: Optional[MediaType] = None

    @field_validator("year", mode="before")
    @classmethod
    def _coerce_year(cls, v: object) -> object:
        if isinstance(v, int):
            return str(v)
        return v

    @property
    def has_title(self) -> bool:
        return bool(self.title and self.title.strip())


class CandidateRecord(DomainModel):
    """Authoritative metadata entry returned by the lookup collaborator."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True, frozen=True)

    external_id: str
    title: str
    year: Optional[str] = None
    media_type: MediaType = MediaType.UNKNOWN
    plot: str = ""
    genres: list[str] = Field(default_factory=list)
    actors: Optional[str] = None
    director: Optional[str] = None

    @field_validator("year", mode="before")
    @classmethod
    def _coerce_year(cls, v: object) -> object:
        if isinstance(v, int):
            return str(v)
        return v

    @property
    def start_year(self) -> Optional[str]:
        return start_year(self.year)


# ── Scoring ─────────────────────────────────────────────────────────────
class ScoredCandidate(DomainModel):
    record: CandidateRecord
    title_similarity: float = Field(ge=0.0, le=1.0)
    text_similarity: float = Field(default=0.0, ge=0.0, le=1.0)
    keyword_similarity: float = Field(default=0.0, ge=0.0, le=1.0)
    combined_similarity: float = Field(default=0.0, ge=0.0, le=1.0)


class CandidateResolution(DomainModel):
    """Ranked candidates and the search tier that produced them."""
    tier: Optional[SearchTier] = None
    candidates: list[ScoredCandidate] = Field(default_factory=list)

    @property
    def best(self) -> Optional[ScoredCandidate]:
        return self.candidates[0] if self.candidates else None


# ── Outcomes ────────────────────────────────────────────────────────────
class ReconciledItem(DomainModel):
    """Outcome of reconciling one stub."""
    source_stub: RecommendationStub
    status: ReconcileStatus
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    matched_record: Optional[CandidateRecord] = None
    potential_matches: list[ScoredCandidate] = Field(default_factory=list)
    low_confidence_match: Optional[bool] = None
    tier: Optional[SearchTier] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    attempts: int = 0
    from_cache: bool = False
    skip_reason: Optional[SkipReason] = None

    @model_validator(mode="after")
    def _check_status_invariants(self) -> "ReconciledItem":
        if self.status == ReconcileStatus.VERIFIED and self.matched_record is None:
            raise ValueError("verified outcome requires matched_record")
        if self.status == ReconcileStatus.NEEDS_USER_SELECTION and not self.potential_matches:
            raise ValueError("needs_user_selection outcome requires potential_matches")
        return self

    @classmethod
    def failed(
        cls,
        stub: RecommendationStub,
        error: str,
        error_kind: ErrorKind = ErrorKind.INTERNAL,
        attempts: int = 0,
    ) -> "ReconciledItem":
        return cls(
            source_stub=stub,
            status=ReconcileStatus.FAILED,
            error=error,
            error_kind=error_kind,
            attempts=attempts,
        )


class CacheEntry(DomainModel):
    key: str
    payload: ReconciledItem
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now


class BatchResult(DomainModel):
    batch_id: Optional[str] = None
    total: int = 0
    verified: int = 0
    needs_user_selection: int = 0
    unverified: int = 0
    failed: int = 0
    skipped: int = 0
    items: list[ReconciledItem] = Field(default_factory=list)
