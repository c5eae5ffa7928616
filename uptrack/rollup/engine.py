"""Rollup engine — turns per-day archives into daily-summary.json.

The document is regenerated wholesale on each run, never patched, so a
re-run after a crash is always safe: the same archives and the same ``now``
produce byte-identical output. Each (service, day) pair is an independent
unit of work executed on a bounded thread pool.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path

from uptrack.errors import ArchiveReadError, LogIOError
from uptrack.probe.archive import (
    SUMMARY_FILE,
    archives_root,
    atomic_write_text,
    day_log_exists,
    list_services,
    read_day,
    recent_days,
)
from uptrack.probe.engine import as_utc
from uptrack.rollup.aggregate import aggregate_day
from uptrack.rollup.models import DailySummaryDocument, DailySummaryEntry

logger = logging.getLogger(__name__)


@dataclass
class RollupReport:
    """What a rollup run produced, for CLI / scheduler output."""

    document: DailySummaryDocument
    path: Path
    skipped: list[str]

    @property
    def service_count(self) -> int:
        return len(self.document.services)

    @property
    def days_with_data(self) -> int:
        return max((len(e) for e in self.document.services.values()), default=0)


def _rollup_unit(data_dir: Path, service: str, day: date) -> DailySummaryEntry | None:
    readings = read_day(data_dir, service, day)
    if not readings:
        return None
    return aggregate_day(day, readings)


def build_summary(
    archive_root: Path,
    window_days: int,
    now: datetime | None = None,
    *,
    include_today: bool = True,
    max_workers: int = 4,
    skipped: list[str] | None = None,
) -> DailySummaryDocument:
    """Aggregate the last ``window_days`` of archives under ``archive_root``.

    ``archive_root`` is the data directory holding ``archives/``. Days whose
    log is missing or corrupt are left out (and listed in ``skipped`` when a
    list is given) rather than emitted as zero-valued entries.
    """
    if window_days < 1:
        raise ValueError("window_days must be >= 1")
    data_dir = Path(archive_root)
    if not archives_root(data_dir).is_dir():
        raise LogIOError(archives_root(data_dir), "archive directory not found")

    now = as_utc(now)
    days = recent_days(now, window_days)
    if not include_today:
        days = days[1:]

    units = [
        (service, day)
        for service in list_services(data_dir)
        for day in days
        if day_log_exists(data_dir, service, day)
    ]
    logger.debug("Rolling up %d (service, day) units with %d workers", len(units), max_workers)

    results: dict[tuple[str, date], DailySummaryEntry] = {}
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        futures = {unit: pool.submit(_rollup_unit, data_dir, *unit) for unit in units}
        for unit, future in futures.items():
            try:
                entry = future.result()
            except ArchiveReadError as e:
                logger.warning("Skipping %s", e)
                if skipped is not None:
                    skipped.append(str(e))
                continue
            if entry is not None:
                results[unit] = entry

    services: dict[str, list[DailySummaryEntry]] = {}
    # most recent first within each service
    for (service, _day), entry in sorted(results.items(), key=lambda kv: (kv[0][0], -kv[0][1].toordinal())):
        services.setdefault(service, []).append(entry)

    return DailySummaryDocument(
        generatedAt=now,
        windowDays=window_days,
        services=services,
    )


def render_summary(document: DailySummaryDocument) -> str:
    """Serialize deterministically: fixed key order, sorted services."""
    payload = document.model_dump(mode="json")
    payload["services"] = {name: payload["services"][name] for name in sorted(payload["services"])}
    return json.dumps(payload, indent=2) + "\n"


def write_summary(document: DailySummaryDocument, path: Path) -> Path:
    atomic_write_text(Path(path), render_summary(document))
    return Path(path)


def run_rollup(
    output_dir: Path,
    window_days: int = 90,
    now: datetime | None = None,
    max_workers: int = 4,
) -> RollupReport:
    """Build the summary for ``output_dir`` and write it next to the archives."""
    skipped: list[str] = []
    document = build_summary(
        output_dir, window_days, now, max_workers=max_workers, skipped=skipped,
    )
    path = write_summary(document, Path(output_dir) / SUMMARY_FILE)
    report = RollupReport(document=document, path=path, skipped=skipped)
    logger.info(
        "Wrote %s: %d services, %d days with data, %d skipped",
        path, report.service_count, report.days_with_data, len(skipped),
    )
    return report
