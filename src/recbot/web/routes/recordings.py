"""Recording listing routes."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Query, Request

from recbot.search.filters import RecordingFilters
from recbot.search.query import query_files
from recbot.web.deps import get_services

router = APIRouter()


@router.get("/recordings")
async def list_recordings(
    request: Request,
    dateStart: str | None = Query(None),
    dateEnd: str | None = Query(None),
    offset: str | None = Query(None),
    limit: str | None = Query(None),
    phone: str | None = Query(None),
    email: str | None = Query(None),
    durationMin: str | None = Query(None),
    durationMode: str | None = Query(None),
    timeStart: str | None = Query(None),
    timeEnd: str | None = Query(None),
    timeMode: str | None = Query(None),
    sortColumn: str | None = Query(None),
    sortDirection: str | None = Query(None),
):
    """One page of indexed recordings plus the total matching count."""
    services = get_services(request)
    filters = RecordingFilters.from_params(
        date_start=dateStart,
        date_end=dateEnd,
        phone=phone,
        email=email,
        duration_min=durationMin,
        duration_mode=durationMode,
        time_start=timeStart,
        time_end=timeEnd,
        time_mode=timeMode,
        sort_column=sortColumn,
        sort_direction=sortDirection,
        limit=limit,
        offset=offset,
    )
    result = await asyncio.to_thread(query_files, services.db, filters)
    return {
        "files": [r.to_api() for r in result.rows],
        "totalCount": result.total_count,
        "offset": filters.offset,
        "limit": filters.limit,
        "hasMore": result.has_more,
    }
