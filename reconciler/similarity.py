"""
Similarity scoring for reconciliation.
Title similarity is edit-distance based with guards for suspicious titles and
containment; plot similarity is token and keyword overlap (Jaccard).
All scores are in [0, 1].
"""
from __future__ import annotations

from collections import Counter
from typing import Iterable, Optional

from rapidfuzz.distance import Levenshtein

from shared.models.domain import CandidateRecord, RecommendationStub, ScoredCandidate

from reconciler.config import ReconcilerSettings, get_reconciler_settings
from reconciler.normalizer import SUSPICIOUS_LENGTH, is_suspicious, normalize

STOP_WORDS: frozenset[str] = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "with",
    "by", "about", "as", "into", "like", "through", "after", "over", "between",
    "out", "against", "during", "without", "before", "under", "around", "among",
    "is", "are", "was", "were", "be", "been", "being", "have", "has", "had",
    "do", "does", "did", "will", "would", "shall", "should", "can", "could",
    "may", "might", "must", "of", "from", "then", "than", "that", "this",
    "these", "those", "it", "its", "they", "them", "their", "he", "him", "his",
    "she", "her", "hers", "we", "us", "our", "you", "your", "yours",
})


def levenshtein_distance(a: str, b: str) -> int:
    """Plain Levenshtein edit distance (unit cost insert, delete, substitute)."""
    return Levenshtein.distance(a, b)


def title_similarity(
    a: Optional[str],
    b: Optional[str],
    *,
    suspicious_length: int = SUSPICIOUS_LENGTH,
    suspicious_score: float = 0.5,
    containment_score: float = 0.7,
    containment_max_ratio: float = 0.7,
) -> float:
    """
    Compare two titles.

    Returns:
        1.0 for identical normalized titles (empty included); 0.0 when only
        one side normalizes to nothing; the suspicious cap when either raw
        title looks like a list of titles; the containment score when one
        title contains the other and they differ enough in length; otherwise
        1 - normalized Levenshtein distance.
    """
    na, nb = normalize(a), normalize(b)
    if na == nb:
        return 1.0
    if not na or not nb:
        return 0.0
    if is_suspicious(a, suspicious_length) or is_suspicious(b, suspicious_length):
        return suspicious_score

    shorter, longer = sorted((len(na), len(nb)))
    # Short titles and near-equal lengths fall through to edit distance
    if shorter > 3 and shorter / longer < containment_max_ratio:
        if na in nb or nb in na:
            return containment_score

    distance = levenshtein_distance(na, nb)
    return max(0.0, 1.0 - distance / longer)


def _tokens(text: Optional[str], min_length: int) -> list[str]:
    return [t for t in normalize(text).split() if len(t) >= min_length]


def _jaccard(left: Iterable[str], right: Iterable[str]) -> float:
    s1, s2 = set(left), set(right)
    if not s1 or not s2:
        return 0.0
    union = len(s1 | s2)
    return len(s1 & s2) / union if union else 0.0


def text_similarity(a: Optional[str], b: Optional[str]) -> float:
    """Jaccard similarity over normalized tokens longer than two characters."""
    return _jaccard(_tokens(a, 3), _tokens(b, 3))


def extract_keywords(text: Optional[str], limit: int = 20) -> list[str]:
    """Most frequent non-stop-word tokens longer than three characters."""
    words = [t for t in _tokens(text, 4) if t not in STOP_WORDS]
    return [word for word, _count in Counter(words).most_common(limit)]


def keyword_similarity(a: Optional[str], b: Optional[str], limit: int = 20) -> float:
    return _jaccard(extract_keywords(a, limit), extract_keywords(b, limit))


def combined_similarity(
    text_score: float,
    keyword_score: float,
    title_score: float,
    weights: tuple[float, float, float] = (0.3, 0.4, 0.3),
) -> float:
    """Weighted blend (text, keyword, title) used to rank plot-assisted candidates."""
    text_w, keyword_w, title_w = weights
    score = text_w * text_score + keyword_w * keyword_score + title_w * title_score
    return min(1.0, max(0.0, score))


class SimilarityScorer:
    """Binds the scoring functions to configured thresholds and weights."""

    def __init__(self, settings: Optional[ReconcilerSettings] = None) -> None:
        self._settings = settings or get_reconciler_settings()

    def title_similarity(self, a: Optional[str], b: Optional[str]) -> float:
        s = self._settings
        return title_similarity(
            a,
            b,
            suspicious_length=s.suspicious_title_length,
            suspicious_score=s.suspicious_score,
            containment_score=s.containment_score,
            containment_max_ratio=s.containment_max_length_ratio,
        )

    def is_suspicious(self, title: Optional[str]) -> bool:
        return is_suspicious(title, self._settings.suspicious_title_length)

    def score(self, stub: RecommendationStub, record: CandidateRecord) -> ScoredCandidate:
        """Score a candidate record against the stub on title and plot evidence."""
        s = self._settings
        title_score = self.title_similarity(stub.title, record.title)
        text_score = text_similarity(stub.synopsis, record.plot)
        keyword_score = keyword_similarity(stub.synopsis, record.plot, s.keyword_limit)
        return ScoredCandidate(
            record=record,
            title_similarity=title_score,
            text_similarity=text_score,
            keyword_similarity=keyword_score,
            combined_similarity=combined_similarity(
                text_score,
                keyword_score,
                title_score,
                (s.text_weight, s.keyword_weight, s.title_weight),
            ),
        )
