"""Index sync and stats routes."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from recbot.sync.engine import run_sync
from recbot.web.deps import get_services

log = logging.getLogger(__name__)

router = APIRouter()


class DateRange(BaseModel):
    startDate: Optional[str] = None
    endDate: Optional[str] = None


class SyncRequest(BaseModel):
    dateRange: Optional[DateRange] = None


@router.post("/sync")
async def sync(request: Request, body: Optional[SyncRequest] = None):
    """Date-range sync when a dateRange is posted, otherwise a full sync."""
    services = get_services(request)
    date_range = body.dateRange if body else None
    start = date_range.startDate if date_range else None
    end = date_range.endDate if date_range else None

    try:
        result = await run_sync(services.sync_engine, start, end)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"detail": str(e)})

    log.info("Sync indexed %d files in %.2fs", result.indexed_count, result.duration_seconds)
    return {
        "success": result.success,
        "indexedFiles": result.indexed_count,
        "duration": f"{result.duration_seconds:.2f}s",
        "errors": result.errors,
        "databaseStats": await asyncio.to_thread(services.repo.get_stats),
    }


@router.get("/stats")
async def stats(request: Request):
    return await asyncio.to_thread(get_services(request).repo.get_stats)
