"""Dependency helpers for web routes."""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import Response, StreamingResponse

from recbot.media.pipeline import AudioStream
from recbot.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def stream_response(stream: AudioStream) -> Response:
    """Turn a pipeline result into a buffered or streamed response."""
    if stream.body is not None:
        return Response(
            content=stream.body, status_code=stream.status_code, headers=stream.headers
        )
    return StreamingResponse(
        stream.chunks, status_code=stream.status_code, headers=stream.headers
    )
