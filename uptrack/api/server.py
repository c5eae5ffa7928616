"""FastAPI server exposing the hybrid merge layer to renderers."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from uptrack import __version__
from uptrack.api.status_routes import status_router
from uptrack.config import settings
from uptrack.merge.reader import MergeReader, Thresholds
from uptrack.merge.sources import source_from_settings

logger = logging.getLogger(__name__)


def reader_from_settings(data_dir: Path | None = None) -> MergeReader:
    source = source_from_settings(
        data_dir or settings.data_dir, settings.data_base_url, settings.fetch_timeout_seconds,
    )
    return MergeReader(
        source,
        thresholds=Thresholds(settings.operational_threshold, settings.degraded_threshold),
        stale_after=timedelta(hours=settings.stale_after_hours),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire the merge reader unless the caller already supplied one."""
    if getattr(app.state, "reader", None) is None:
        app.state.reader = reader_from_settings()
        logger.info(
            "Status reader using %s",
            settings.data_base_url or settings.data_dir,
        )
    yield


def create_app(reader: MergeReader | None = None) -> FastAPI:
    app = FastAPI(
        title="uptrack - Service Status History",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.reader = reader

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(status_router, prefix="/api")
    return app
