"""Exception taxonomy shared by ingest, rollup and the merge layer."""

from __future__ import annotations

from pathlib import Path


class UptrackError(Exception):
    """Base class for uptrack errors."""


class ProbeOutcomeError(UptrackError):
    """A probe failed at the transport level (refused, DNS, timeout).

    Never escapes ``Recorder.check``; it is turned into a ``down`` reading.
    """


class LogIOError(UptrackError):
    """Reading or writing a per-day log / hot window file failed."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class ArchiveReadError(UptrackError):
    """A single day's archived log is missing or corrupt."""

    def __init__(self, service: str, date: str, reason: str) -> None:
        self.service = service
        self.date = date
        self.reason = reason
        super().__init__(f"{service}@{date}: {reason}")


class SchemaMismatchError(UptrackError):
    """A summary document or hot window payload did not have the expected shape."""


class StaleDataWarning(UserWarning):
    """The summary document is older than the freshness threshold."""
