"""Service registry — loads services.yaml into typed check definitions.

Example::

    services:
      - name: api
        url: https://api.example.com/health
        expected_codes: [200]
        max_response_time_ms: 5000
      - name: website
        url: https://example.com
        method: HEAD
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from uptrack.probe.engine import DEFAULT_EXPECTED_CODES, DEFAULT_MAX_RESPONSE_TIME_MS, normalize_service_name

logger = logging.getLogger(__name__)


@dataclass
class ServiceCheckDef:
    """One HTTP check from the registry."""

    name: str
    url: str
    method: str = "GET"
    timeout_ms: int = 10_000
    expected_codes: list[int] = field(default_factory=lambda: list(DEFAULT_EXPECTED_CODES))
    max_response_time_ms: int = DEFAULT_MAX_RESPONSE_TIME_MS


class ServiceRegistry:
    """Loads and caches check definitions from a YAML file."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._services: list[ServiceCheckDef] = []
        self._loaded = False

    def load(self, force: bool = False) -> list[ServiceCheckDef]:
        if self._loaded and not force:
            return self._services

        self._services = []
        if not self._path.exists():
            logger.warning("Services file not found: %s", self._path)
            self._loaded = True
            return self._services

        try:
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            logger.error("Failed to parse %s: %s", self._path, e)
            self._loaded = True
            return self._services

        entries = raw.get("services", []) if isinstance(raw, dict) else raw
        for entry in entries or []:
            try:
                self._services.append(_parse_check(entry))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed service entry: %s", e)

        self._loaded = True
        logger.info("Loaded %d services from %s", len(self._services), self._path)
        return self._services

    @property
    def services(self) -> list[ServiceCheckDef]:
        return self.load()

    def get(self, name: str) -> ServiceCheckDef | None:
        wanted = name.strip().lower()
        return next((s for s in self.services if s.name == wanted), None)


def _parse_check(raw: dict[str, Any]) -> ServiceCheckDef:
    # "system" is accepted as an alias for "name"
    name = raw.get("name") or raw.get("system")
    if not name:
        raise ValueError("service entry needs a 'name'")
    url = raw["url"]
    codes = raw.get("expected_codes") or list(DEFAULT_EXPECTED_CODES)
    return ServiceCheckDef(
        name=normalize_service_name(str(name)),
        url=str(url),
        method=str(raw.get("method", "GET")).upper(),
        timeout_ms=int(raw.get("timeout_ms", 10_000)),
        expected_codes=[int(c) for c in codes],
        max_response_time_ms=int(raw.get("max_response_time_ms", DEFAULT_MAX_RESPONSE_TIME_MS)),
    )
