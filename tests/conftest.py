"""Shared fixtures: in-memory lookup collaborator, fixed clock, recorded sleeps."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from shared.models.domain import CandidateRecord
from shared.models.enums import MediaType

from reconciler.config import ReconcilerSettings
from reconciler.sources.base import MetadataLookupService


class FakeLookupService(MetadataLookupService):
    """
    Metadata lookup backed by dicts.
    searches maps (lowercased title, year_hint) -> summary records; errors are
    raised one per call, in order, before any result is returned.
    """

    def __init__(
        self,
        records: Optional[list[CandidateRecord]] = None,
        searches: Optional[dict[tuple[str, Optional[str]], list[CandidateRecord]]] = None,
        errors: Optional[list[BaseException]] = None,
        delay_s: float = 0.0,
    ) -> None:
        self.records = {r.external_id: r for r in records or []}
        self.searches = searches or {}
        self.errors = list(errors or [])
        self.delay_s = delay_s
        self.id_calls: list[str] = []
        self.search_calls: list[tuple[str, Optional[str]]] = []

    @property
    def call_count(self) -> int:
        return len(self.id_calls) + len(self.search_calls)

    async def _before_call(self) -> None:
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.errors:
            raise self.errors.pop(0)

    async def get_by_id(self, external_id: str) -> Optional[CandidateRecord]:
        self.id_calls.append(external_id)
        await self._before_call()
        return self.records.get(external_id)

    async def search_by_title(
        self,
        title: str,
        year_hint: Optional[str] = None,
    ) -> list[CandidateRecord]:
        self.search_calls.append((title, year_hint))
        await self._before_call()
        return list(self.searches.get((title.lower(), year_hint), []))


class FixedClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordedSleep:
    """Async sleep stand-in that records requested delays and returns at once."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        await asyncio.sleep(0)


def record(
    external_id: str,
    title: str,
    year: Optional[str] = None,
    media_type: MediaType = MediaType.UNKNOWN,
    plot: str = "",
) -> CandidateRecord:
    return CandidateRecord(
        external_id=external_id,
        title=title,
        year=year,
        media_type=media_type,
        plot=plot,
    )


@pytest.fixture
def settings() -> ReconcilerSettings:
    return ReconcilerSettings()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def sleep() -> RecordedSleep:
    return RecordedSleep()


@pytest.fixture
def lookup() -> FakeLookupService:
    return FakeLookupService()
