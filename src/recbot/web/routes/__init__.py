"""Route registration for the recordings service."""

from __future__ import annotations

from fastapi import FastAPI


def register_routes(app: FastAPI):
    """Include all route modules."""
    from recbot.web.routes import audio, recordings, status, sync

    app.include_router(recordings.router)
    app.include_router(audio.router)
    app.include_router(sync.router)
    app.include_router(status.router)
