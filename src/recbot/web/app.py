"""FastAPI application factory for the recordings service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from recbot.errors import (
    CacheUploadFailure,
    ListingFailure,
    NotFound,
    StoreError,
    TranscodeFailure,
)
from recbot.ranges import RangeNotSatisfiable
from recbot.services import Services

log = logging.getLogger(__name__)


def _register_exception_handlers(app: FastAPI):
    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound):
        return JSONResponse(status_code=404, content={"detail": exc.message})

    @app.exception_handler(RangeNotSatisfiable)
    async def range_handler(request: Request, exc: RangeNotSatisfiable):
        return JSONResponse(
            status_code=416,
            content={"detail": "Range not satisfiable"},
            headers={"Content-Range": exc.content_range},
        )

    async def pipeline_failure_handler(request: Request, exc):
        log.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=500,
            content={"detail": exc.message, "stage": exc.stage},
        )

    for exc_class in (TranscodeFailure, CacheUploadFailure, ListingFailure):
        app.add_exception_handler(exc_class, pipeline_failure_handler)

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        log.error("Object store error on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=502, content={"detail": "Object store request failed"})

    # Catch-all so internal details never reach clients
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        log.error(
            "Unhandled exception on %s %s: %s",
            request.method, request.url.path, exc,
            exc_info=True,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(services: Services | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Services are opened here so the app is usable without running the
    lifespan; the lifespan starts the periodic sync and closes everything on
    shutdown.
    """
    services = (services or Services()).open()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services.scheduler.start()
        try:
            yield
        finally:
            await services.scheduler.stop()
            services.close()

    app = FastAPI(title="recbot", lifespan=lifespan)
    app.state.services = services

    _register_exception_handlers(app)

    from recbot.web.routes import register_routes

    register_routes(app)

    return app
