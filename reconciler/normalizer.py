"""
Title normalization and stub identity.
Canonical forms used for comparison, cache keys and fallback search queries.
"""
from __future__ import annotations

import re
from typing import Optional

from shared.models.domain import RecommendationStub, start_year

_NON_WORD_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")
_IMDB_ID_RE = re.compile(r"(tt\d{7,})")

SUSPICIOUS_SEPARATORS = (",", ";", "|")
SUSPICIOUS_LENGTH = 50


def normalize(s: Optional[str]) -> str:
    """Lowercase, drop non-word characters, collapse whitespace, trim."""
    if not s:
        return ""
    s = _NON_WORD_RE.sub("", s.lower())
    return _WHITESPACE_RE.sub(" ", s).strip()


def is_suspicious(s: Optional[str], max_length: int = SUSPICIOUS_LENGTH) -> bool:
    """
    True when a title field probably holds several titles at once
    (long, or contains a list separator).
    """
    if not s:
        return False
    return len(s) > max_length or any(sep in s for sep in SUSPICIOUS_SEPARATORS)


def extract_external_id(url: Optional[str]) -> Optional[str]:
    """Pull an IMDb-style id (tt + digits) out of a URL or free text."""
    if not url:
        return None
    m = _IMDB_ID_RE.search(url)
    return m.group(1) if m else None


def simplified_title(title: Optional[str], words: int = 2) -> Optional[str]:
    """
    First few words of a title for the last-resort search tier.
    None when the result is too short or identical to the full title.
    """
    if not title:
        return None
    short = " ".join(title.split()[:words])
    if len(short) <= 2 or normalize(short) == normalize(title):
        return None
    return short


def identity_key(title: Optional[str], year: Optional[str]) -> str:
    return f"{normalize(title)}|{start_year(year) or ''}"


def stub_identity(stub: RecommendationStub) -> str:
    """Normalized (title, year) identity used for dedup and caching."""
    return identity_key(stub.title, stub.year)
