"""Transcode-and-cache pipeline for playable audio.

A request for a recording either hits the cached canonical WAV (served with
a ranged store read) or transcodes the original once, persists the result
under its cache key and serves from the in-memory artifact. Concurrent misses
for one key are serialized; waiters re-check the cache after the holder
finishes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Iterator, Optional
from urllib.parse import quote

import aiofiles

from recbot.errors import (
    CacheUploadFailure,
    NotFound,
    ObjectNotFound,
    StoreError,
    TranscodeFailure,
)
from recbot.media.cache import KeyedLocks, audio_cache_key, temporary_output_path
from recbot.media.transcoder import Transcoder
from recbot.parser.filename import to_source_key
from recbot.ranges import parse_range
from recbot.remote.store import ObjectStore
from recbot.storage.models import ObjectInfo

log = logging.getLogger(__name__)

AUDIO_CONTENT_TYPE = "audio/wav"
CACHE_CONTROL = "public, max-age=3600"


def resolve_source_key(path: str) -> str:
    """Canonical recordings/ key for a request path; NotFound for unsafe paths."""
    key = to_source_key(path)
    parts = PurePosixPath(key).parts
    if len(parts) < 2 or ".." in parts or "." in key.split("/"):
        raise NotFound("Recording not found", key=path, stage="resolve")
    return key


def content_disposition(disposition: str, key: str) -> str:
    filename = key.rsplit("/", 1)[-1]
    fallback = "".join(
        c if 32 <= ord(c) < 127 and c not in '"\\' else "_" for c in filename
    )
    value = f'{disposition}; filename="{fallback}"'
    if fallback != filename:
        value += f"; filename*=UTF-8''{quote(filename)}"
    return value


@dataclass
class AudioStream:
    """Everything the web layer needs to answer an audio request.

    Exactly one of body (in-memory slice) or chunks (store stream) is set.
    """

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    chunks: Optional[Iterator[bytes]] = None


def audio_headers(key: str, length: int, content_range: Optional[str] = None,
                  disposition: str = "inline") -> dict[str, str]:
    headers = {
        "Content-Type": AUDIO_CONTENT_TYPE,
        "Accept-Ranges": "bytes",
        "Content-Length": str(length),
        "Cache-Control": CACHE_CONTROL,
        "Content-Disposition": content_disposition(disposition, key),
    }
    if content_range:
        headers["Content-Range"] = content_range
    return headers


class AudioPipeline:
    def __init__(self, store: ObjectStore, transcoder: Transcoder, locks: KeyedLocks | None = None):
        self.store = store
        self.transcoder = transcoder
        self.locks = locks or KeyedLocks()
        self.hits = 0
        self.transcodes = 0

    async def _head_cache(self, cache_key: str) -> Optional[ObjectInfo]:
        try:
            return await asyncio.to_thread(self.store.head, cache_key)
        except ObjectNotFound:
            return None
        except StoreError as e:
            log.warning("Cache check failed for %s, treating as miss: %s", cache_key, e)
            return None

    # ── Serving ────────────────────────────────────────────────────

    async def stream(self, path: str, range_header: Optional[str] = None) -> AudioStream:
        """Serve the canonical WAV for a recording, transcoding it on first use.

        Raises NotFound, TranscodeFailure, CacheUploadFailure, and
        RangeNotSatisfiable for a range starting past the end of the audio.
        """
        key = resolve_source_key(path)
        cache_key = audio_cache_key(key)

        info = await self._head_cache(cache_key)
        if info is not None:
            return await self._serve_cached(key, cache_key, info, range_header)

        async with self.locks.hold(cache_key):
            info = await self._head_cache(cache_key)
            if info is not None:
                return await self._serve_cached(key, cache_key, info, range_header)
            log.info("Cache miss for %s, transcoding", key)
            data = await self._transcode(key, cache_key)

        return self._serve_buffer(key, data, range_header)

    async def _serve_cached(self, key: str, cache_key: str, info: ObjectInfo,
                            range_header: Optional[str]) -> AudioStream:
        self.hits += 1
        log.info("Cache hit for %s", key)
        byte_range = parse_range(range_header, info.size)
        try:
            obj = await asyncio.to_thread(
                self.store.get, cache_key, byte_range.header if byte_range else None
            )
        except ObjectNotFound:
            # Evicted between head and get
            raise NotFound("Cached audio disappeared", key=key, stage="cache_hit") from None

        if byte_range is None:
            return AudioStream(
                status_code=200,
                headers=audio_headers(key, obj.content_length),
                chunks=obj.iter_chunks(),
            )
        return AudioStream(
            status_code=206,
            headers=audio_headers(
                key, obj.content_length, obj.content_range or byte_range.content_range
            ),
            chunks=obj.iter_chunks(),
        )

    def _serve_buffer(self, key: str, data: bytes, range_header: Optional[str]) -> AudioStream:
        byte_range = parse_range(range_header, len(data))
        if byte_range is None:
            return AudioStream(status_code=200, headers=audio_headers(key, len(data)), body=data)
        chunk = data[byte_range.start:byte_range.end + 1]
        return AudioStream(
            status_code=206,
            headers=audio_headers(key, len(chunk), byte_range.content_range),
            body=chunk,
        )

    # ── Miss path ──────────────────────────────────────────────────

    async def _transcode(self, key: str, cache_key: str) -> bytes:
        try:
            source = await asyncio.to_thread(self.store.get, key)
        except ObjectNotFound:
            raise NotFound("Recording not found", key=key, stage="fetch_source") from None

        self.transcodes += 1
        with temporary_output_path(".wav") as tmp_path:
            try:
                await self.transcoder.to_wav(source.iter_chunks(), tmp_path, key=key)
            finally:
                source.close()
            async with aiofiles.open(tmp_path, "rb") as f:
                data = await f.read()

        if not data:
            raise TranscodeFailure("Transcoder produced no output", key=key)

        try:
            await asyncio.to_thread(self.store.put, cache_key, data, AUDIO_CONTENT_TYPE)
        except StoreError as e:
            log.error("Failed to upload cached audio for %s: %s", key, e)
            raise CacheUploadFailure(
                "Could not persist transcoded audio", key=key, stage="persist_cache"
            ) from e
        log.info("Cached %d bytes of audio for %s at %s", len(data), key, cache_key)
        return data

    # ── Download ───────────────────────────────────────────────────

    async def download(self, path: str) -> AudioStream:
        """Stream the original object unchanged as an attachment."""
        key = resolve_source_key(path)
        try:
            obj = await asyncio.to_thread(self.store.get, key)
        except ObjectNotFound:
            raise NotFound("Recording not found", key=key, stage="download") from None
        headers = audio_headers(key, obj.content_length, disposition="attachment")
        headers["Content-Type"] = obj.content_type or AUDIO_CONTENT_TYPE
        del headers["Accept-Ranges"]
        return AudioStream(status_code=200, headers=headers, chunks=obj.iter_chunks())
