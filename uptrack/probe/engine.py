"""Probe ingest — classifies probe outcomes and records them as Readings.

Each call to ``Recorder.record`` appends one line to today's per-day log for
the service and then rebuilds the hot window (``current.json``) from the
last N days of logs. A failed probe is a normal ``down`` reading; only file
I/O failures escape as ``LogIOError``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from uptrack.errors import ProbeOutcomeError

logger = logging.getLogger(__name__)

DEFAULT_EXPECTED_CODES = (200, 301, 302)
DEFAULT_MAX_RESPONSE_TIME_MS = 30_000
# 9999-12-31T23:59:59.999Z, the last instant datetime can hold
MAX_TIMESTAMP_MS = 253_402_300_799_999
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ── Models ───────────────────────────────────────────────────────────────────


class State(str, Enum):
    UP = "up"
    DOWN = "down"
    DEGRADED = "degraded"
    MAINTENANCE = "maintenance"  # only ever set downstream, never by a probe


@dataclass(frozen=True)
class Reading:
    """One probe outcome for one service."""

    timestamp: int  # epoch ms
    service: str
    state: State
    response_code: int
    latency_ms: int
    error: str | None = None

    @property
    def date(self) -> date:
        """UTC calendar day the reading belongs to."""
        return (EPOCH + timedelta(milliseconds=self.timestamp)).date()

    def to_record(self) -> dict[str, Any]:
        """Compact on-disk form: one JSON object per log line."""
        record: dict[str, Any] = {
            "t": self.timestamp,
            "svc": self.service,
            "state": self.state.value,
            "code": self.response_code,
            "lat": self.latency_ms,
        }
        if self.error:
            record["err"] = self.error
        return record

    @classmethod
    def from_record(cls, raw: Any) -> "Reading":
        """Parse a compact record. Raises ValueError on anything malformed."""
        if not isinstance(raw, dict):
            raise ValueError(f"expected an object, got {type(raw).__name__}")
        try:
            timestamp = raw["t"]
            service = raw["svc"]
            state = raw["state"]
        except KeyError as e:
            raise ValueError(f"missing field {e.args[0]!r}") from e
        try:
            state = State(state)
        except TypeError as e:
            raise ValueError(f"bad state: {state!r}") from e
        if timestamp is None:
            raise ValueError("bad timestamp: None")
        timestamp = _whole_number(raw, "t")
        if not 0 <= timestamp <= MAX_TIMESTAMP_MS:
            raise ValueError(f"timestamp out of range: {timestamp}")
        if not isinstance(service, str) or not service.strip():
            raise ValueError(f"bad service name: {service!r}")
        err = raw.get("err")
        return cls(
            timestamp=timestamp,
            service=normalize_service_name(service),
            state=state,
            response_code=_whole_number(raw, "code"),
            latency_ms=_whole_number(raw, "lat"),
            error=str(err) if err else None,
        )


def _whole_number(raw: dict[str, Any], key: str) -> int:
    """Integer value of a numeric record field; absent or null reads as 0."""
    value = raw.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"bad {key}: {value!r}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"bad {key}: {value!r}")
    return int(value)


@dataclass(frozen=True)
class ProbeOutcome:
    """Raw result of one check, as supplied by a probe function."""

    status_code: int | None = None
    elapsed_ms: float = 0
    error: str | None = None

    @property
    def transport_failed(self) -> bool:
        return self.error is not None or self.status_code is None


def normalize_service_name(name: str) -> str:
    """Service keys are case-insensitive; store them stripped and lower-cased."""
    normalized = name.strip().lower()
    if not normalized:
        raise ValueError("Service name must not be empty")
    if "/" in normalized or "\\" in normalized or normalized in (".", ".."):
        raise ValueError(f"Invalid service name: {name!r}")
    return normalized


def as_utc(now: datetime | None = None) -> datetime:
    """``now`` as an aware UTC datetime; a naive value is taken to be UTC already."""
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def classify(
    outcome: ProbeOutcome,
    expected_codes: Iterable[int] = DEFAULT_EXPECTED_CODES,
    max_response_time_ms: int = DEFAULT_MAX_RESPONSE_TIME_MS,
) -> State:
    """Map a probe outcome to up / degraded / down."""
    if outcome.transport_failed or outcome.status_code not in set(expected_codes):
        return State.DOWN
    if outcome.elapsed_ms > max_response_time_ms:
        return State.DEGRADED
    return State.UP


# ── Recorder ─────────────────────────────────────────────────────────────────


class Recorder:
    """Appends readings to the per-day archive and keeps the hot window fresh."""

    def __init__(
        self,
        data_dir: Path,
        expected_codes: Iterable[int] = DEFAULT_EXPECTED_CODES,
        max_response_time_ms: int = DEFAULT_MAX_RESPONSE_TIME_MS,
        hot_window_days: int = 14,
    ) -> None:
        if hot_window_days < 1:
            raise ValueError("hot_window_days must be >= 1")
        self.data_dir = Path(data_dir)
        self.expected_codes = tuple(expected_codes)
        self.max_response_time_ms = max_response_time_ms
        self.hot_window_days = hot_window_days

    def record(
        self, service: str, outcome: ProbeOutcome, now: datetime | None = None,
    ) -> Reading:
        """Classify ``outcome``, append it to today's log and rebuild the hot window.

        Raises ``LogIOError`` if either file write fails.
        """
        from uptrack.probe.archive import append_reading, rebuild_hot_window

        now = as_utc(now)
        name = normalize_service_name(service)
        state = classify(outcome, self.expected_codes, self.max_response_time_ms)

        reading = Reading(
            timestamp=int(now.timestamp() * 1000),
            service=name,
            state=state,
            response_code=outcome.status_code or 0,
            latency_ms=int(round(outcome.elapsed_ms)),
            error=outcome.error,
        )

        append_reading(self.data_dir, reading)
        count = rebuild_hot_window(self.data_dir, self.hot_window_days, now)

        logger.info(
            "%s is %s (%d in %dms)", name, state.value, reading.response_code, reading.latency_ms,
        )
        logger.debug("Hot window rebuilt with %d readings", count)
        return reading

    def check(
        self,
        service: str,
        probe: Callable[[], ProbeOutcome],
        now: datetime | None = None,
    ) -> Reading:
        """Run ``probe`` and record whatever it produced.

        A probe that raises is recorded as a ``down`` reading carrying the
        error text; the exception does not propagate.
        """
        try:
            outcome = probe()
        except ProbeOutcomeError as e:
            outcome = ProbeOutcome(error=str(e) or "Probe failed")
        except Exception as e:
            logger.warning("Probe for %s raised %s", service, type(e).__name__)
            outcome = ProbeOutcome(error=f"{type(e).__name__}: {e}")
        return self.record(service, outcome, now=now)
