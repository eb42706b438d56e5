"""
Recommendation pipeline: ask the suggestion collaborator for stubs for a seed
title, then reconcile them against authoritative metadata.
"""
from __future__ import annotations

from shared.models.domain import BatchResult
from shared.models.enums import MediaType
from shared.utils.logging import batch_log_context, get_logger

from reconciler.batch import BatchReconciler
from reconciler.sources.base import AiSuggestionService

logger = get_logger(__name__)


class RecommendationService:
    def __init__(self, suggestions: AiSuggestionService, batch: BatchReconciler) -> None:
        self._suggestions = suggestions
        self._batch = batch

    async def recommend(
        self,
        seed_title: str,
        seed_overview: str = "",
        media_type: MediaType = MediaType.UNKNOWN,
        limit: int = 10,
    ) -> BatchResult:
        with batch_log_context(seed_title=seed_title):
            stubs = await self._suggestions.suggest(seed_title, seed_overview, media_type, limit)
            titled = [s for s in stubs if s.has_title]
            if len(titled) < len(stubs):
                logger.warning("suggestions_dropped_untitled", dropped=len(stubs) - len(titled))
            titled = titled[:limit]
            logger.info("suggestions_received", count=len(titled))
            return await self._batch.reconcile_batch(titled)
