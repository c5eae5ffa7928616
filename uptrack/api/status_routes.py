"""API routes for merged status history.

Endpoints:
  GET  /api/status                       — every known service, latest day status
  GET  /api/status/{service}/daily?days= — merged day-by-day view for one service
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request

from uptrack.merge.reader import MergeReader

logger = logging.getLogger(__name__)

status_router = APIRouter()


def _reader(request: Request) -> MergeReader:
    return request.app.state.reader


@status_router.get("/status")
async def status_overview(request: Request) -> dict[str, Any]:
    """Latest day's status per service, plus whether history is stale."""
    views = await _reader(request).overview(window_days=1)

    services = []
    for view in views:
        latest = view.days[0].to_dict() if view.days else None
        services.append({
            "service": view.service,
            "status": latest["status"] if latest else "no-data",
            "latest": latest,
            "source": view.source.value,
            "stale": view.stale,
        })
    return {"services": services}


@status_router.get("/status/{service}/daily")
async def service_daily(
    service: str,
    request: Request,
    days: int = Query(90, ge=1, le=366),
) -> dict[str, Any]:
    """Merged history for one service, most recent day first."""
    if not service.strip():
        raise HTTPException(status_code=400, detail="Service name required")
    view = await _reader(request).get_merged(service, days)
    return view.to_dict()
