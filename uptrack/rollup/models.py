"""Pydantic models for the daily summary document (daily-summary.json)."""

from __future__ import annotations

import datetime as dt
from typing import Literal

from pydantic import BaseModel, Field, model_validator

SCHEMA_VERSION = 1


class DailySummaryEntry(BaseModel):
    """One service's statistics for one UTC calendar day."""

    date: dt.date
    uptimePct: float = Field(ge=0.0, le=1.0)
    avgLatencyMs: int | None = None
    p95LatencyMs: int | None = None
    checksTotal: int = Field(ge=0)
    checksPassed: int = Field(ge=0)
    incidentCount: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _passed_within_total(self) -> "DailySummaryEntry":
        if self.checksPassed > self.checksTotal:
            raise ValueError("checksPassed cannot exceed checksTotal")
        return self


class DailySummaryDocument(BaseModel):
    schemaVersion: Literal[1] = SCHEMA_VERSION
    generatedAt: dt.datetime
    windowDays: int = Field(gt=0)
    services: dict[str, list[DailySummaryEntry]] = Field(default_factory=dict)

    def entries_for(self, service: str) -> list[DailySummaryEntry]:
        """Entries for ``service``, matched case-insensitively."""
        wanted = service.strip().lower()
        for name, entries in self.services.items():
            if name.lower() == wanted:
                return entries
        return []
