"""Shared test fixtures."""

from __future__ import annotations

import gzip
import json
from collections.abc import Callable, Iterable
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path

import pytest

from uptrack.probe.archive import day_log_path
from uptrack.probe.engine import Reading, State

NOW = datetime(2025, 11, 6, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


def ts(day: date, hour: int = 0, minute: int = 0) -> int:
    """Epoch ms for a UTC wall-clock time on ``day``."""
    dt = datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def reading(
    state: State | str,
    latency: int = 100,
    *,
    service: str = "api",
    day: date = TODAY,
    hour: int = 0,
    minute: int = 0,
    code: int | None = None,
) -> Reading:
    state = State(state)
    if code is None:
        code = 200 if state is not State.DOWN else 500
    return Reading(
        timestamp=ts(day, hour, minute),
        service=service,
        state=state,
        response_code=code,
        latency_ms=latency,
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    d = tmp_path / "status-data"
    (d / "archives").mkdir(parents=True)
    return d


@pytest.fixture
def write_day(data_dir: Path) -> Callable[..., Path]:
    """Write a whole day log for one service, optionally gzipped."""

    def _write(service: str, day: date, readings: Iterable[Reading], gz: bool = False) -> Path:
        path = day_log_path(data_dir, service, day)
        path.parent.mkdir(parents=True, exist_ok=True)
        content = "".join(json.dumps(r.to_record()) + "\n" for r in readings)
        if gz:
            path = path.with_name(path.name + ".gz")
            path.write_bytes(gzip.compress(content.encode("utf-8")))
        else:
            path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def history(write_day: Callable[..., Path]) -> Callable[..., None]:
    """Write ``days`` consecutive days of readings ending ``end`` for a service.

    Each day gets ``up`` passing readings followed by ``down`` failing ones.
    """

    def _history(service: str, days: int, end: date = TODAY, up: int = 4, down: int = 0) -> None:
        for offset in range(days):
            day = end - timedelta(days=offset)
            rs = [reading("up", 100 + i, service=service, day=day, hour=i) for i in range(up)]
            rs += [reading("down", 5000, service=service, day=day, hour=up + i) for i in range(down)]
            write_day(service, day, rs)

    return _history
