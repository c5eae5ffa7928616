"""Hybrid read — merges the live hot window with the historical daily summary.

``get_merged`` is a pure function of its two inputs (plus ``now``): today
comes from the hot window aggregated in-line, every other day from the
summary document. ``MergeReader`` adds the I/O: both sources are fetched
concurrently and each may fail without affecting the other.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from uptrack.errors import StaleDataWarning
from uptrack.merge.sources import DataSource, HotWindow
from uptrack.probe.engine import as_utc
from uptrack.rollup.aggregate import aggregate_day, group_by_day
from uptrack.rollup.models import DailySummaryDocument, DailySummaryEntry

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = timedelta(hours=24)
NO_DATA_MESSAGE = "No data available"


class DayStatus(str, Enum):
    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    OUTAGE = "outage"
    NO_DATA = "no-data"


class MergeSource(str, Enum):
    HYBRID = "hybrid"
    SUMMARY = "summary"  # hot window missing, today absent
    HOT_WINDOW = "hot-window"  # summary missing, short coverage
    NONE = "none"


@dataclass(frozen=True)
class Thresholds:
    """Uptime fractions at or above which a day counts as operational / degraded."""

    operational: float = 0.99
    degraded: float = 0.95

    def __post_init__(self) -> None:
        if not 0 <= self.degraded <= self.operational <= 1:
            raise ValueError("thresholds must satisfy 0 <= degraded <= operational <= 1")


def classify_day(entry: DailySummaryEntry, thresholds: Thresholds = Thresholds()) -> DayStatus:
    if entry.checksTotal == 0:
        return DayStatus.NO_DATA
    if entry.uptimePct >= thresholds.operational:
        return DayStatus.OPERATIONAL
    if entry.uptimePct >= thresholds.degraded:
        return DayStatus.DEGRADED
    return DayStatus.OUTAGE


# ── Result types ─────────────────────────────────────────────────────────────


@dataclass
class MergedDay:
    entry: DailySummaryEntry
    status: DayStatus

    def to_dict(self) -> dict[str, Any]:
        d = self.entry.model_dump(mode="json")
        d["status"] = self.status.value
        return d


@dataclass
class MergedView:
    """What the renderer gets for one service: days most-recent-first plus provenance."""

    service: str
    window_days: int
    days: list[MergedDay]
    source: MergeSource
    generated_at: datetime | None = None
    advisories: list[StaleDataWarning] = field(default_factory=list)
    error: str | None = None

    @property
    def stale(self) -> bool:
        return any(isinstance(a, StaleDataWarning) for a in self.advisories)

    @property
    def partial(self) -> bool:
        """True when one of the two sources was unavailable."""
        return self.source is not MergeSource.HYBRID

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "windowDays": self.window_days,
            "source": self.source.value,
            "partial": self.partial,
            "stale": self.stale,
            "lastUpdated": self.generated_at.isoformat() if self.generated_at else None,
            "advisories": [str(a) for a in self.advisories],
            "error": self.error,
            "days": [d.to_dict() for d in self.days],
        }


class MergeCache:
    """Memo of merged views keyed by (service, window_days).

    Owned by the caller and only valid for one pair of fetched inputs; build
    a fresh one whenever the sources are re-fetched.
    """

    def __init__(self) -> None:
        self._views: dict[tuple[str, int], MergedView] = {}

    def get(self, service: str, window_days: int) -> MergedView | None:
        return self._views.get((service.strip().lower(), window_days))

    def put(self, view: MergedView) -> None:
        self._views[(view.service, view.window_days)] = view

    def __len__(self) -> int:
        return len(self._views)


# ── Pure merge ───────────────────────────────────────────────────────────────


def _stale_advisory(summary: DailySummaryDocument, now: datetime, stale_after: timedelta) -> StaleDataWarning | None:
    generated = as_utc(summary.generatedAt)
    age = now - generated
    if age <= stale_after:
        return None
    hours = age.total_seconds() / 3600
    return StaleDataWarning(f"Daily summary is {hours:.1f}h old (generated {generated.isoformat()})")


def get_merged(
    service: str,
    window_days: int,
    *,
    summary: DailySummaryDocument | None,
    hot_window: HotWindow | None,
    now: datetime | None = None,
    thresholds: Thresholds = Thresholds(),
    stale_after: timedelta = DEFAULT_STALE_AFTER,
    cache: MergeCache | None = None,
) -> MergedView:
    """Merge one service's history (summary) with today's live data (hot window).

    Either input may be ``None`` (unavailable). The result never holds more
    than ``window_days`` entries, is sorted strictly by date descending, and
    has at most one entry per date.
    """
    if window_days < 1:
        raise ValueError("window_days must be >= 1")
    name = service.strip().lower()
    if cache is not None:
        cached = cache.get(name, window_days)
        if cached is not None:
            return cached

    now = as_utc(now)
    today = now.date()
    entries: list[DailySummaryEntry] = []
    advisories: list[StaleDataWarning] = []

    if summary is not None and hot_window is not None:
        source = MergeSource.HYBRID
    elif summary is not None:
        source = MergeSource.SUMMARY
    elif hot_window is not None:
        source = MergeSource.HOT_WINDOW
    else:
        source = MergeSource.NONE

    if hot_window is not None:
        by_day = group_by_day(hot_window.readings, name)
        if summary is None:
            # no history to lean on: every day the hot window covers
            entries.extend(aggregate_day(day, readings) for day, readings in by_day.items())
        elif by_day.get(today):
            entries.append(aggregate_day(today, by_day[today]))

    if summary is not None:
        # a rollup that already ran today must not double-count it
        entries.extend(e for e in summary.entries_for(name) if e.date != today)
        advisory = _stale_advisory(summary, now, stale_after)
        if advisory is not None:
            logger.warning("%s", advisory)
            advisories.append(advisory)

    by_date: dict[Any, DailySummaryEntry] = {}
    for entry in entries:
        by_date.setdefault(entry.date, entry)
    ordered = sorted(by_date.values(), key=lambda e: e.date, reverse=True)[:window_days]

    view = MergedView(
        service=name,
        window_days=window_days,
        days=[MergedDay(entry=e, status=classify_day(e, thresholds)) for e in ordered],
        source=source,
        generated_at=summary.generatedAt if summary is not None else None,
        advisories=advisories,
        error=NO_DATA_MESSAGE if source is MergeSource.NONE else None,
    )
    if cache is not None:
        cache.put(view)
    return view


# ── Async reader ─────────────────────────────────────────────────────────────


@dataclass
class Snapshot:
    """One concurrent fetch of both sources; ``None`` means unavailable."""

    summary: DailySummaryDocument | None
    hot_window: HotWindow | None
    summary_error: str | None = None
    hot_window_error: str | None = None

    def services(self) -> list[str]:
        names: set[str] = set()
        if self.summary is not None:
            names.update(n.lower() for n in self.summary.services)
        if self.hot_window is not None:
            names.update(self.hot_window.services())
        return sorted(names)


def _unwrap(result: Any, what: str) -> tuple[Any, str | None]:
    if isinstance(result, BaseException):
        if not isinstance(result, Exception):
            raise result
        logger.warning("%s unavailable: %s: %s", what, type(result).__name__, result)
        return None, f"{type(result).__name__}: {result}"
    return result, None


async def fetch_snapshot(source: DataSource) -> Snapshot:
    """Fetch summary and hot window concurrently; failures are independent."""
    summary_result, hot_result = await asyncio.gather(
        source.fetch_summary(), source.fetch_hot_window(), return_exceptions=True,
    )
    summary, summary_error = _unwrap(summary_result, "Daily summary")
    hot_window, hot_error = _unwrap(hot_result, "Hot window")
    return Snapshot(summary, hot_window, summary_error, hot_error)


class MergeReader:
    """Per-request hybrid reads against a data source. Holds no mutable state."""

    def __init__(
        self,
        source: DataSource,
        thresholds: Thresholds = Thresholds(),
        stale_after: timedelta = DEFAULT_STALE_AFTER,
    ) -> None:
        self.source = source
        self.thresholds = thresholds
        self.stale_after = stale_after

    def merge(
        self,
        snapshot: Snapshot,
        service: str,
        window_days: int,
        now: datetime | None = None,
        cache: MergeCache | None = None,
    ) -> MergedView:
        return get_merged(
            service,
            window_days,
            summary=snapshot.summary,
            hot_window=snapshot.hot_window,
            now=now,
            thresholds=self.thresholds,
            stale_after=self.stale_after,
            cache=cache,
        )

    async def get_merged(
        self, service: str, window_days: int = 90, now: datetime | None = None,
    ) -> MergedView:
        snapshot = await fetch_snapshot(self.source)
        return self.merge(snapshot, service, window_days, now=now)

    async def overview(self, window_days: int = 90, now: datetime | None = None) -> list[MergedView]:
        """Merged views for every service either source knows about."""
        snapshot = await fetch_snapshot(self.source)
        cache = MergeCache()
        return [
            self.merge(snapshot, name, window_days, now=now, cache=cache)
            for name in snapshot.services()
        ]
