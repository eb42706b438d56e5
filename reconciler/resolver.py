"""
Tiered candidate search against the metadata lookup collaborator.
External id -> title + year -> title only -> simplified title; the first tier
that yields candidates wins. Search and id lookup errors propagate to the
retry layer; a failed detail fetch falls back to the summary record.
"""
from __future__ import annotations

import asyncio
from typing import Optional

import httpx

from shared.models.domain import (
    CandidateRecord,
    CandidateResolution,
    RecommendationStub,
    ScoredCandidate,
    start_year,
)
from shared.models.enums import SearchTier
from shared.utils.logging import get_logger
from shared.utils.metrics import SEARCH_TIER_HITS

from reconciler.config import ReconcilerSettings, get_reconciler_settings
from reconciler.exceptions import LookupUnavailable
from reconciler.normalizer import extract_external_id, simplified_title
from reconciler.similarity import SimilarityScorer
from reconciler.sources.base import MetadataLookupService

logger = get_logger(__name__)


def filter_by_year(records: list[CandidateRecord], year: Optional[str]) -> list[CandidateRecord]:
    """
    Keep records whose start year matches; if none match, keep everything
    rather than discard the whole candidate set.
    """
    wanted = start_year(year)
    if not wanted:
        return records
    matching = [r for r in records if r.start_year == wanted]
    return matching or records


class CandidateResolver:
    """Runs the search tiers for a stub and ranks the winning tier's candidates."""

    def __init__(
        self,
        lookup: MetadataLookupService,
        scorer: Optional[SimilarityScorer] = None,
        settings: Optional[ReconcilerSettings] = None,
    ) -> None:
        self._lookup = lookup
        self._settings = settings or get_reconciler_settings()
        self._scorer = scorer or SimilarityScorer(self._settings)

    def candidate_ids(self, stub: RecommendationStub) -> list[str]:
        """Unique external ids from the stub, explicit id first."""
        ids: list[str] = []
        url_id = extract_external_id(stub.external_url)
        if stub.external_id and url_id and stub.external_id != url_id:
            logger.warning(
                "external_id_mismatch",
                title=stub.title,
                external_id=stub.external_id,
                url_id=url_id,
            )
        for candidate in (stub.external_id, url_id):
            if candidate and candidate not in ids:
                ids.append(candidate)
        return ids

    async def resolve(self, stub: RecommendationStub) -> CandidateResolution:
        resolution = await self._resolve_by_id(stub)
        if resolution is None:
            resolution = await self._resolve_by_title(stub)
        if resolution.tier is not None:
            SEARCH_TIER_HITS.labels(tier=resolution.tier.value).inc()
        return resolution

    async def _resolve_by_id(self, stub: RecommendationStub) -> Optional[CandidateResolution]:
        for external_id in self.candidate_ids(stub):
            record = await self._lookup.get_by_id(external_id)
            if record is None:
                logger.debug("id_lookup_miss", title=stub.title, external_id=external_id)
                continue
            scored = self._scorer.score(stub, record)
            logger.debug(
                "id_lookup_hit",
                title=stub.title,
                external_id=external_id,
                matched_title=record.title,
                title_similarity=round(scored.title_similarity, 3),
            )
            return CandidateResolution(tier=SearchTier.EXTERNAL_ID, candidates=[scored])
        return None

    async def _resolve_by_title(self, stub: RecommendationStub) -> CandidateResolution:
        title = stub.title or ""
        queries: list[tuple[SearchTier, str, Optional[str]]] = []
        if stub.year:
            queries.append((SearchTier.TITLE_YEAR, title, stub.year))
        queries.append((SearchTier.TITLE_ONLY, title, None))
        short = simplified_title(title)
        if short:
            queries.append((SearchTier.SIMPLIFIED, short, None))

        for tier, query, year_hint in queries:
            records = await self._lookup.search_by_title(query, year_hint)
            if not records:
                logger.debug("search_tier_empty", tier=tier.value, query=query)
                continue
            records = filter_by_year(_dedupe(records), stub.year)
            logger.debug("search_tier_hit", tier=tier.value, query=query, count=len(records))
            if len(records) > 1:
                records = await self._with_details(stub, records)
            return CandidateResolution(tier=tier, candidates=self._rank(stub, records))

        return CandidateResolution(tier=None, candidates=[])

    async def _with_details(
        self,
        stub: RecommendationStub,
        records: list[CandidateRecord],
    ) -> list[CandidateRecord]:
        """Swap the top candidates' summary records for full detail records (plots)."""
        limit = self._settings.detail_fetch_limit
        ordered = sorted(
            records,
            key=lambda r: self._scorer.title_similarity(stub.title, r.title),
            reverse=True,
        )
        head, tail = ordered[:limit], ordered[limit:]
        details = await asyncio.gather(
            *(self._fetch_detail(r) for r in head),
        )
        return [detail or summary for summary, detail in zip(head, details)] + tail

    async def _fetch_detail(self, summary: CandidateRecord) -> Optional[CandidateRecord]:
        try:
            return await self._lookup.get_by_id(summary.external_id)
        except (LookupUnavailable, httpx.HTTPError) as e:
            # Summary record is still usable for title scoring
            logger.warning(
                "detail_fetch_failed",
                external_id=summary.external_id,
                error=str(e) or type(e).__name__,
            )
            return None

    def _rank(self, stub: RecommendationStub, records: list[CandidateRecord]) -> list[ScoredCandidate]:
        hint = stub.media_type_hint
        scored = [self._scorer.score(stub, r) for r in records]
        return sorted(
            scored,
            key=lambda c: (
                c.combined_similarity,
                c.title_similarity,
                1 if hint is not None and c.record.media_type == hint else 0,
            ),
            reverse=True,
        )


def _dedupe(records: list[CandidateRecord]) -> list[CandidateRecord]:
    seen: set[str] = set()
    unique: list[CandidateRecord] = []
    for r in records:
        if r.external_id in seen:
            continue
        seen.add(r.external_id)
        unique.append(r)
    return unique
