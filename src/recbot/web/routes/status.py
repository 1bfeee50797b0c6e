"""Health check route."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from recbot.web.deps import get_services

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    """Report transcoder availability and index size."""
    services = get_services(request)
    version = await services.transcoder.version()
    if version is None:
        ffmpeg = {"available": False, "error": "ffmpeg not found or not executable"}
    else:
        ffmpeg = {"available": True, "version": version}
    stats = await asyncio.to_thread(services.repo.get_stats)
    total = stats["totalFiles"]
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "ffmpeg": ffmpeg,
        "index": f"{total} files indexed",
    }
