"""Per-day aggregation shared by the rollup engine and the merge layer."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from datetime import date

from uptrack.probe.engine import Reading, State
from uptrack.rollup.models import DailySummaryEntry

PASSING_STATES = frozenset({State.UP, State.MAINTENANCE})


def percentile_95(latencies: Sequence[int]) -> int | None:
    """Nearest-rank p95: sorted value at index ceil(0.95 * n) - 1."""
    if not latencies:
        return None
    ordered = sorted(latencies)
    index = math.ceil(len(ordered) * 0.95) - 1
    return ordered[max(0, index)]


def mean_latency(latencies: Sequence[int]) -> int | None:
    if not latencies:
        return None
    # round half up, not to even
    return int(math.floor(sum(latencies) / len(latencies) + 0.5))


def count_incidents(readings: Sequence[Reading]) -> int:
    """Number of adjacent up -> down transitions in an already time-sorted sequence.

    A day that opens already down is not counted; outages that span midnight
    only register on the day they started.
    """
    return sum(
        1
        for prev, cur in zip(readings, readings[1:])
        if prev.state is State.UP and cur.state is State.DOWN
    )


def aggregate_day(day: date, readings: Iterable[Reading]) -> DailySummaryEntry:
    """Compress one (service, day) worth of readings into a summary entry."""
    ordered = sorted(readings, key=lambda r: r.timestamp)
    total = len(ordered)
    passed = sum(1 for r in ordered if r.state in PASSING_STATES)
    # down/degraded latencies are timeouts or slow paths, not comparable
    up_latencies = [r.latency_ms for r in ordered if r.state is State.UP]

    return DailySummaryEntry(
        date=day,
        uptimePct=passed / total if total else 0.0,
        avgLatencyMs=mean_latency(up_latencies),
        p95LatencyMs=percentile_95(up_latencies),
        checksTotal=total,
        checksPassed=passed,
        incidentCount=count_incidents(ordered),
    )


def group_by_day(readings: Iterable[Reading], service: str | None = None) -> dict[date, list[Reading]]:
    """Bucket readings by UTC day, optionally keeping a single service only."""
    wanted = service.strip().lower() if service else None
    groups: dict[date, list[Reading]] = {}
    for r in readings:
        if wanted is not None and r.service.lower() != wanted:
            continue
        groups.setdefault(r.date, []).append(r)
    return groups
