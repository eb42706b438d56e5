"""
Collaborator interfaces consumed by the reconciliation engine.
Adapters (OMDB, TMDB, LLM providers, Supabase, ...) translate their payloads into
CandidateRecord / RecommendationStub before anything reaches the core.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from shared.models.domain import CacheEntry, CandidateRecord, RecommendationStub
from shared.models.enums import MediaType


class MetadataLookupService(ABC):
    """Authoritative metadata lookup."""

    @abstractmethod
    async def get_by_id(self, external_id: str) -> Optional[CandidateRecord]:
        """
        Full record for an external id, or None if unknown.
        Raise LookupUnavailable / RateLimited (or let httpx errors escape) on
        transient failure; never return None for an outage.
        """

    @abstractmethod
    async def search_by_title(
        self,
        title: str,
        year_hint: Optional[str] = None,
    ) -> list[CandidateRecord]:
        """Summary records matching a title query; empty list when nothing matches."""


class AiSuggestionService(ABC):
    """Upstream producer of recommendation stubs."""

    @abstractmethod
    async def suggest(
        self,
        seed_title: str,
        seed_overview: str,
        media_type: MediaType,
        limit: int,
    ) -> list[RecommendationStub]:
        pass


class PersistentCacheStore(ABC):
    """Durable tier of the verification cache."""

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        pass

    @abstractmethod
    async def put(self, entry: CacheEntry) -> None:
        """Persist an entry. Raise CacheQuotaExceeded when the store is full."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def list_entries(self) -> list[CacheEntry]:
        """All stored entries; used for eviction and expiry sweeps."""
