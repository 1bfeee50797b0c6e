"""Waveform companion artifact: a fixed number of amplitude points per recording."""

from __future__ import annotations

import asyncio
import json
import logging
import time

import numpy as np

from recbot.config import SAMPLE_RATE, SAMPLE_WIDTH, WAVEFORM_POINTS
from recbot.errors import NotFound, ObjectNotFound, StoreError, TranscodeFailure
from recbot.media.cache import KeyedLocks, audio_cache_key, waveform_cache_key
from recbot.media.pipeline import resolve_source_key
from recbot.media.transcoder import Transcoder
from recbot.remote.store import ObjectStore

log = logging.getLogger(__name__)

FULL_SCALE = 32768.0
PEAK_WEIGHT = 0.7
RMS_WEIGHT = 0.3
GAMMA = 0.6


def compute_waveform(pcm: bytes, points: int = WAVEFORM_POINTS) -> list[float]:
    """Downsample little-endian s16 PCM to `points` values in [0, 1].

    Each point blends the bucket's peak and RMS amplitude, then a gamma curve
    lifts quiet passages. Buckets past the end of short audio are 0.
    """
    usable = len(pcm) - len(pcm) % SAMPLE_WIDTH
    samples = np.frombuffer(pcm[:usable], dtype="<i2").astype(np.float64)
    out = np.zeros(points)
    if samples.size == 0:
        return out.tolist()

    per_point = max(samples.size // points, 1)
    filled = min(samples.size // per_point, points)
    buckets = np.abs(samples[: filled * per_point].reshape(filled, per_point))

    peak = buckets.max(axis=1) / FULL_SCALE
    rms = np.sqrt((buckets ** 2).mean(axis=1)) / FULL_SCALE
    out[:filled] = np.minimum((PEAK_WEIGHT * peak + RMS_WEIGHT * rms) ** GAMMA, 1.0)
    return [round(float(v), 4) for v in out]


class WaveformPipeline:
    def __init__(self, store: ObjectStore, transcoder: Transcoder,
                 locks: KeyedLocks | None = None, points: int = WAVEFORM_POINTS):
        self.store = store
        self.transcoder = transcoder
        self.locks = locks or KeyedLocks()
        self.points = points

    async def _load_cached(self, cache_key: str):
        try:
            raw = await asyncio.to_thread(self.store.get_bytes, cache_key)
        except ObjectNotFound:
            return None
        except StoreError as e:
            log.warning("Waveform cache check failed for %s: %s", cache_key, e)
            return None
        try:
            waveform = json.loads(raw)
        except ValueError:
            log.warning("Ignoring unreadable cached waveform %s", cache_key)
            return None
        return waveform if isinstance(waveform, list) else None

    async def _decode(self, key: str) -> tuple[bytes, str]:
        """PCM samples from the cached WAV if present, else from the original."""
        try:
            obj = await asyncio.to_thread(self.store.get, audio_cache_key(key))
            source, resample = "converted_cache", False
        except ObjectNotFound:
            try:
                obj = await asyncio.to_thread(self.store.get, key)
            except ObjectNotFound:
                raise NotFound("Recording not found", key=key, stage="fetch_source") from None
            source, resample = "original_file", True

        try:
            pcm = await self.transcoder.to_pcm(obj.iter_chunks(), key=key, resample=resample)
        finally:
            obj.close()
        return pcm, source

    async def generate(self, path: str) -> dict:
        key = resolve_source_key(path)
        cache_key = waveform_cache_key(key)

        cached = await self._load_cached(cache_key)
        if cached is not None:
            log.info("Waveform cache hit for %s", key)
            return self._cached_response(cached)

        async with self.locks.hold(cache_key):
            cached = await self._load_cached(cache_key)
            if cached is not None:
                return self._cached_response(cached)

            started = time.monotonic()
            pcm, source = await self._decode(key)
            total_samples = len(pcm) // SAMPLE_WIDTH
            if not total_samples:
                raise TranscodeFailure("Decoded audio has no samples", key=key, stage="waveform")
            waveform = compute_waveform(pcm, self.points)

            try:
                await asyncio.to_thread(
                    self.store.put, cache_key, json.dumps(waveform).encode("utf-8"),
                    "application/json",
                )
            except StoreError as e:
                log.warning("Failed to cache waveform for %s: %s", key, e)

        elapsed_ms = round((time.monotonic() - started) * 1000)
        log.info("Generated waveform for %s from %s in %dms", key, source, elapsed_ms)
        return {
            "waveform": waveform,
            "cached": False,
            "generationTime": elapsed_ms,
            "duration": total_samples / SAMPLE_RATE,
            "sampleRate": SAMPLE_RATE,
            "totalSamples": total_samples,
            "source": source,
        }

    def _cached_response(self, waveform: list) -> dict:
        # Only the points are persisted
        return {
            "waveform": waveform,
            "cached": True,
            "duration": None,
            "sampleRate": SAMPLE_RATE,
            "totalSamples": None,
        }
