"""Per-day JSONL archive + hot window file.

Layout under the data directory::

    archives/<service>/<YYYY>/<MM>/history-<YYYY-MM-DD>.jsonl      (today, appended)
    archives/<service>/<YYYY>/<MM>/history-<YYYY-MM-DD>.jsonl.gz   (closed days)
    current.json                                                   (hot window)

Each service writes only its own files. Appends are single ``os.write``
calls on an O_APPEND descriptor; whole-file replacements go through a temp
file in the same directory followed by ``os.replace``.
"""

from __future__ import annotations

import gzip
import json
import logging
import os
import tempfile
from datetime import date, datetime, timedelta
from pathlib import Path

from uptrack.errors import ArchiveReadError, LogIOError
from uptrack.probe.engine import Reading, as_utc

logger = logging.getLogger(__name__)

ARCHIVES_DIR = "archives"
HOT_WINDOW_FILE = "current.json"
SUMMARY_FILE = "daily-summary.json"


# ── Paths ────────────────────────────────────────────────────────────────────


def archives_root(data_dir: Path) -> Path:
    return Path(data_dir) / ARCHIVES_DIR


def day_log_path(data_dir: Path, service: str, day: date) -> Path:
    """Uncompressed log path for one (service, day) pair."""
    return (
        archives_root(data_dir) / service / f"{day.year:04d}" / f"{day.month:02d}"
        / f"history-{day.isoformat()}.jsonl"
    )


def _gz_path(plain: Path) -> Path:
    return plain.with_name(plain.name + ".gz")


def day_log_exists(data_dir: Path, service: str, day: date) -> bool:
    plain = day_log_path(data_dir, service, day)
    return plain.exists() or _gz_path(plain).exists()


def list_services(data_dir: Path) -> list[str]:
    """Services that have at least one archive directory, sorted."""
    root = archives_root(data_dir)
    if not root.is_dir():
        return []
    return sorted(p.name for p in root.iterdir() if p.is_dir())


def recent_days(now: datetime, days: int) -> list[date]:
    """``days`` UTC calendar days ending today, most recent first."""
    today = as_utc(now).date()
    return [today - timedelta(days=d) for d in range(days)]


# ── Writes ───────────────────────────────────────────────────────────────────


def atomic_write_text(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` so readers never see a partial file."""
    path = Path(path)
    tmp_name: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=path.parent,
            prefix=f".{path.name}.", suffix=".tmp", delete=False,
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise LogIOError(path, f"write failed: {e}") from e


def append_reading(data_dir: Path, reading: Reading) -> Path:
    """Append one reading to its service's log for the reading's UTC day."""
    path = day_log_path(data_dir, reading.service, reading.date)
    line = (json.dumps(reading.to_record(), separators=(",", ":")) + "\n").encode("utf-8")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o644)
        try:
            os.write(fd, line)
        finally:
            os.close(fd)
    except OSError as e:
        raise LogIOError(path, f"append failed: {e}") from e
    logger.debug("Appended to %s", path)
    return path


# ── Reads ────────────────────────────────────────────────────────────────────


def _parse_lines(content: str, source: Path) -> tuple[list[Reading], int]:
    readings: list[Reading] = []
    bad = 0
    for line in content.splitlines():
        if not line.strip():
            continue
        try:
            readings.append(Reading.from_record(json.loads(line)))
        except ValueError as e:
            bad += 1
            logger.debug("Skipping bad line in %s: %s", source, e)
    return readings, bad


def read_day(data_dir: Path, service: str, day: date) -> list[Reading]:
    """Load every reading for one (service, day), plain file first, then gzip.

    Raises ``ArchiveReadError`` if the log is missing, unreadable, or has
    no parseable line at all. An empty file yields an empty list.
    """
    plain = day_log_path(data_dir, service, day)
    gz = _gz_path(plain)
    try:
        if plain.exists():
            content = plain.read_text(encoding="utf-8")
            source = plain
        elif gz.exists():
            with gzip.open(gz, "rt", encoding="utf-8") as f:
                content = f.read()
            source = gz
        else:
            raise ArchiveReadError(service, day.isoformat(), "no log file")
    except (OSError, EOFError, UnicodeDecodeError) as e:
        raise ArchiveReadError(service, day.isoformat(), f"unreadable: {e}") from e

    readings, bad = _parse_lines(content, source)
    if bad and not readings:
        raise ArchiveReadError(service, day.isoformat(), f"{bad} lines, none parseable")
    if bad:
        logger.warning("%s: skipped %d malformed lines", source, bad)
    return readings


def collect_recent(data_dir: Path, days: int, now: datetime) -> list[Reading]:
    """All readings of every service from the last ``days`` calendar days."""
    readings: list[Reading] = []
    for service in list_services(data_dir):
        for day in recent_days(now, days):
            if not day_log_exists(data_dir, service, day):
                continue
            try:
                readings.extend(read_day(data_dir, service, day))
            except ArchiveReadError as e:
                logger.warning("Hot window: skipping %s", e)
    readings.sort(key=lambda r: (r.timestamp, r.service))
    return readings


def rebuild_hot_window(data_dir: Path, days: int, now: datetime) -> int:
    """Rewrite ``current.json`` from the last ``days`` of logs. Returns reading count."""
    readings = collect_recent(data_dir, days, now)
    payload = json.dumps([r.to_record() for r in readings], separators=(",", ":"))
    atomic_write_text(Path(data_dir) / HOT_WINDOW_FILE, payload)
    return len(readings)


# ── Maintenance ──────────────────────────────────────────────────────────────


def _iter_day_logs(data_dir: Path, pattern: str):
    root = archives_root(data_dir)
    if not root.is_dir():
        return
    for path in sorted(root.glob(f"*/*/*/{pattern}")):
        try:
            day = date.fromisoformat(path.name.split(".", 1)[0].removeprefix("history-"))
        except ValueError:
            logger.debug("Ignoring unexpected archive file %s", path)
            continue
        yield path, day


def compress_closed_days(data_dir: Path, now: datetime | None = None) -> list[Path]:
    """Gzip every plain log dated before today. Returns the written .gz paths."""
    now = as_utc(now)
    today = now.date()
    written: list[Path] = []

    for path, day in _iter_day_logs(data_dir, "history-*.jsonl"):
        if day >= today:
            continue
        gz = _gz_path(path)
        tmp = gz.with_name(f".{gz.name}.tmp")
        try:
            with path.open("rb") as src, gzip.open(tmp, "wb") as dst:
                dst.write(src.read())
            os.replace(tmp, gz)
            path.unlink()
        except OSError as e:
            if tmp.exists():
                tmp.unlink()
            raise LogIOError(path, f"compress failed: {e}") from e
        logger.info("Compressed %s", gz)
        written.append(gz)
    return written


def prune_archives(
    data_dir: Path, keep_days: int, now: datetime | None = None, min_keep_days: int = 14,
) -> int:
    """Delete day logs older than ``keep_days``. Returns the number removed.

    ``keep_days`` may not be shorter than ``min_keep_days`` (the hot window
    retention), since those logs are still read on every ingest run.
    """
    if keep_days < min_keep_days:
        raise ValueError(f"keep_days must be >= {min_keep_days}, got {keep_days}")
    now = as_utc(now)
    cutoff = now.date() - timedelta(days=keep_days - 1)

    removed = 0
    for path, day in _iter_day_logs(data_dir, "history-*.jsonl*"):
        if day >= cutoff:
            continue
        try:
            path.unlink()
        except OSError as e:
            raise LogIOError(path, f"delete failed: {e}") from e
        removed += 1
    if removed:
        logger.info("Pruned %d day logs older than %s", removed, cutoff)
    return removed
