"""Audio streaming, waveform and download routes."""

from __future__ import annotations

from fastapi import APIRouter, Header, Request

from recbot.web.deps import get_services, stream_response

router = APIRouter()


@router.get("/recordings/{date_folder}/{filename}")
async def stream_recording(
    request: Request,
    date_folder: str,
    filename: str,
    range_header: str | None = Header(None, alias="range"),
):
    services = get_services(request)
    stream = await services.audio.stream(f"{date_folder}/{filename}", range_header)
    return stream_response(stream)


@router.get("/audio/{path:path}")
async def stream_audio(
    request: Request, path: str, range_header: str | None = Header(None, alias="range")
):
    """Canonical WAV for any recording path, with byte-range support."""
    services = get_services(request)
    stream = await services.audio.stream(path, range_header)
    return stream_response(stream)


@router.get("/waveform/{path:path}")
async def waveform(request: Request, path: str):
    services = get_services(request)
    return await services.waveforms.generate(path)


@router.get("/download/{path:path}")
async def download(request: Request, path: str):
    services = get_services(request)
    stream = await services.audio.download(path)
    return stream_response(stream)
