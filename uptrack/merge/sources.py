"""Where the merge layer reads its two inputs from, and how raw payloads are normalized.

Both payloads are converted into typed values right at the boundary:
``parse_summary_document`` and ``parse_hot_window`` either return a model or
raise ``SchemaMismatchError``; nothing downstream branches on raw shapes.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from uptrack.errors import SchemaMismatchError
from uptrack.probe.archive import HOT_WINDOW_FILE, SUMMARY_FILE
from uptrack.probe.engine import Reading
from uptrack.rollup.models import DailySummaryDocument

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HotWindow:
    """Recent readings for every service, as loaded from current.json."""

    readings: tuple[Reading, ...]

    def services(self) -> set[str]:
        return {r.service for r in self.readings}


# ── Boundary parsing ─────────────────────────────────────────────────────────


def parse_hot_window(raw: Any) -> HotWindow:
    """Accept a bare array or ``{"readings": [...]}``; reject anything else.

    Individual malformed records are dropped with a warning.
    """
    if isinstance(raw, list):
        items = raw
    elif isinstance(raw, dict) and isinstance(raw.get("readings"), list):
        items = raw["readings"]
    else:
        raise SchemaMismatchError(
            f"hot window must be an array or an object with 'readings', got {type(raw).__name__}"
        )

    readings: list[Reading] = []
    bad = 0
    for item in items:
        try:
            readings.append(Reading.from_record(item))
        except ValueError:
            bad += 1
    if bad:
        logger.warning("Hot window: dropped %d malformed readings", bad)
    return HotWindow(readings=tuple(readings))


def parse_summary_document(raw: Any) -> DailySummaryDocument:
    try:
        return DailySummaryDocument.model_validate(raw)
    except ValidationError as e:
        raise SchemaMismatchError(f"daily summary failed validation: {e.error_count()} errors") from e


def _decode(text: str, name: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as e:
        raise SchemaMismatchError(f"{name} is not valid JSON: {e}") from e


# ── Sources ──────────────────────────────────────────────────────────────────


class DataSource(ABC):
    """Fetches the summary document and the hot window. Either may raise."""

    @abstractmethod
    async def fetch_summary(self) -> DailySummaryDocument:
        ...

    @abstractmethod
    async def fetch_hot_window(self) -> HotWindow:
        ...


class LocalDataSource(DataSource):
    """Reads both files from the data directory the probe and rollup write to."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)

    async def _read(self, name: str) -> Any:
        text = await asyncio.to_thread((self.data_dir / name).read_text, encoding="utf-8")
        return _decode(text, name)

    async def fetch_summary(self) -> DailySummaryDocument:
        return parse_summary_document(await self._read(SUMMARY_FILE))

    async def fetch_hot_window(self) -> HotWindow:
        return parse_hot_window(await self._read(HOT_WINDOW_FILE))


class HttpDataSource(DataSource):
    """Fetches both files from a static host (e.g. the published status site).

    No retries here; a failed fetch simply makes that source unavailable.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def _get(self, name: str) -> Any:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.get(f"{self._base_url}/{name}")
            resp.raise_for_status()
        return _decode(resp.text, name)

    async def fetch_summary(self) -> DailySummaryDocument:
        return parse_summary_document(await self._get(SUMMARY_FILE))

    async def fetch_hot_window(self) -> HotWindow:
        return parse_hot_window(await self._get(HOT_WINDOW_FILE))


def source_from_settings(data_dir: Path, base_url: str = "", timeout: float = 10.0) -> DataSource:
    if base_url:
        return HttpDataSource(base_url, timeout=timeout)
    return LocalDataSource(data_dir)
