"""FastAPI application exposing the scheduled sync trigger.

Run with ``uvicorn agilwatch.app.api:app``. The cron and admin routes require
the shared secret configured as ``sync.cron_secret`` (or the
``AGILWATCH_CRON_SECRET`` environment variable) in the ``secret`` query
parameter.
"""

from __future__ import annotations

import os
import secrets
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Annotated, Any, AsyncIterator

from fastapi import Depends, FastAPI, HTTPException, Query, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from agilwatch import __version__
from agilwatch.app.config import load_settings
from agilwatch.infrastructure.db import iso_utcnow
from agilwatch.infrastructure.observability import (
    configure_logging,
    format_prometheus,
    get_logger,
)
from agilwatch.services.sync import DEFAULT_BACKFILL_LIMIT, clamp_limit
from agilwatch.services.sync_service import SyncService

CRON_SECRET_ENV = "AGILWATCH_CRON_SECRET"
ROUTES = {
    "health": "/api/health",
    "sync": "/api/cron/sync",
    "backfill": "/api/admin/backfill",
    "metrics": "/metrics",
}

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    yield


app = FastAPI(title="Agilwatch API", version=__version__, lifespan=lifespan)


@lru_cache(maxsize=1)
def get_sync_service() -> SyncService:
    return SyncService(settings=load_settings())


SyncServiceDep = Annotated[SyncService, Depends(get_sync_service)]


class HealthResponse(BaseModel):
    ok: bool
    timestamp: str
    version: str
    routes: dict[str, str]


def _require_secret(service: SyncService, provided: str | None) -> None:
    expected = os.environ.get(CRON_SECRET_ENV) or service.settings.cron_secret
    if not expected or not provided or not secrets.compare_digest(provided, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@app.get("/api/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(ok=True, timestamp=iso_utcnow(), version=__version__, routes=ROUTES)


@app.get("/api/cron/sync")
async def cron_sync(
    service: SyncServiceDep,
    secret: Annotated[str | None, Query()] = None,
) -> dict[str, Any]:
    """Run one sync window and report the processed page range."""
    _require_secret(service, secret)
    summary = await service.run_sync()
    if not summary.succeeded or summary.result is None:
        logger.error("Cron sync failed: %s", summary.error)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=summary.error or "sync failed",
        )
    return {"success": True, **summary.result.to_dict()}


@app.get("/api/admin/backfill")
async def admin_backfill(
    service: SyncServiceDep,
    secret: Annotated[str | None, Query()] = None,
    limit: Annotated[int, Query(ge=1)] = DEFAULT_BACKFILL_LIMIT,
) -> dict[str, Any]:
    """Fill in line items for stored listings that lack them."""
    _require_secret(service, secret)
    summary = await service.run_backfill(limit=clamp_limit(limit))
    if not summary.succeeded or summary.result is None:
        logger.error("Backfill failed: %s", summary.error)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=summary.error or "backfill failed",
        )
    result = summary.result.to_dict()
    if not result["pending"]:
        result["message"] = "No listings pending line items."
    return {"success": True, **result}


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics() -> str:
    return format_prometheus()
