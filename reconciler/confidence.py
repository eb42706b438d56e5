"""
Confidence classification for reconciliation results.
Id match -> verified (flagged when the title disagrees); unique result -> verified;
dominant plot-assisted match -> verified; otherwise user selection;
nothing -> unverified.
"""
from __future__ import annotations

from typing import Optional

from shared.models.domain import CandidateResolution, ReconciledItem, RecommendationStub
from shared.models.enums import ErrorKind, ReconcileStatus, SearchTier
from shared.utils.logging import get_logger

from reconciler.config import ReconcilerSettings, get_reconciler_settings
from reconciler.similarity import SimilarityScorer

logger = get_logger(__name__)


class ConfidenceClassifier:
    """Turns a ranked candidate resolution into a reconciliation outcome."""

    def __init__(
        self,
        scorer: Optional[SimilarityScorer] = None,
        settings: Optional[ReconcilerSettings] = None,
    ) -> None:
        self._settings = settings or get_reconciler_settings()
        self._scorer = scorer or SimilarityScorer(self._settings)

    def classify(self, resolution: CandidateResolution, stub: RecommendationStub) -> ReconciledItem:
        best = resolution.best
        if best is None:
            logger.info("reconcile_not_found", title=stub.title, year=stub.year)
            return ReconciledItem(
                source_stub=stub,
                status=ReconcileStatus.UNVERIFIED,
                confidence_score=0.0,
                error="no matching content found",
                error_kind=ErrorKind.NOT_FOUND,
            )

        if resolution.tier == SearchTier.EXTERNAL_ID:
            # The supplied identifier is trusted over textual evidence
            score = best.title_similarity
            low = score < self._settings.id_low_confidence_threshold
            if low:
                logger.warning(
                    "id_match_low_confidence",
                    title=stub.title,
                    matched_title=best.record.title,
                    score=round(score, 3),
                )
            return ReconciledItem(
                source_stub=stub,
                status=ReconcileStatus.VERIFIED,
                matched_record=best.record,
                confidence_score=score,
                low_confidence_match=True if low else None,
                tier=resolution.tier,
            )

        suspicious = self._scorer.is_suspicious(stub.title)
        if len(resolution.candidates) == 1 and not suspicious:
            return ReconciledItem(
                source_stub=stub,
                status=ReconcileStatus.VERIFIED,
                matched_record=best.record,
                confidence_score=best.title_similarity,
                tier=resolution.tier,
            )

        if not suspicious and best.combined_similarity > self._settings.verify_threshold:
            return ReconciledItem(
                source_stub=stub,
                status=ReconcileStatus.VERIFIED,
                matched_record=best.record,
                confidence_score=best.combined_similarity,
                tier=resolution.tier,
            )

        # Several plausible candidates, or a title too suspicious to auto-accept
        matches = resolution.candidates[: self._settings.potential_matches_limit]
        logger.info(
            "reconcile_needs_selection",
            title=stub.title,
            candidates=len(resolution.candidates),
            best_title=best.record.title,
            best_score=round(best.combined_similarity, 3),
            suspicious=suspicious,
        )
        return ReconciledItem(
            source_stub=stub,
            status=ReconcileStatus.NEEDS_USER_SELECTION,
            confidence_score=best.combined_similarity,
            potential_matches=matches,
            error_kind=ErrorKind.AMBIGUOUS_MATCH,
            tier=resolution.tier,
        )
