"""Tests for recbot.media.waveform."""

from __future__ import annotations

import asyncio
import json

import pytest

from recbot.errors import NotFound, StoreError
from recbot.media.cache import audio_cache_key, waveform_cache_key
from recbot.media.waveform import WaveformPipeline, compute_waveform

from conftest import KEY_1, ScriptTranscoder, pcm_bytes


class TestComputeWaveform:
    def test_length_and_bounds(self):
        pcm = pcm_bytes([(i * 37) % 32767 - 16000 for i in range(10000)])
        points = compute_waveform(pcm, 1000)
        assert len(points) == 1000
        assert all(0 <= p <= 1 for p in points)

    def test_constant_signal(self):
        points = compute_waveform(pcm_bytes([16384] * 8), 4)
        expected = round((0.7 * 0.5 + 0.3 * 0.5) ** 0.6, 4)
        assert points == [expected] * 4

    def test_silence(self):
        assert compute_waveform(pcm_bytes([0] * 100), 10) == [0.0] * 10

    def test_full_scale_clamped(self):
        assert compute_waveform(pcm_bytes([-32768] * 4), 2) == [1.0, 1.0]

    def test_short_audio_pads_with_zeros(self):
        points = compute_waveform(pcm_bytes([16384, -16384]), 4)
        assert points[0] > 0 and points[1] > 0
        assert points[2:] == [0.0, 0.0]

    def test_empty(self):
        assert compute_waveform(b"", 5) == [0.0] * 5

    def test_odd_trailing_byte_ignored(self):
        assert compute_waveform(pcm_bytes([100, 100]) + b"\x01", 2) == compute_waveform(pcm_bytes([100, 100]), 2)


@pytest.fixture
def audio_store(store):
    store.put(KEY_1, pcm_bytes([1000, -2000, 3000, -4000] * 50))
    store.puts.clear()
    return store


class TestWaveformPipeline:
    def test_generate_from_original(self, audio_store):
        transcoder = ScriptTranscoder(timeout=10)
        pipeline = WaveformPipeline(audio_store, transcoder, points=10)
        result = asyncio.run(pipeline.generate(KEY_1))

        assert result["cached"] is False
        assert result["source"] == "original_file"
        assert result["totalSamples"] == 200
        assert result["sampleRate"] == 22050
        assert result["duration"] == pytest.approx(200 / 22050)
        assert len(result["waveform"]) == 10
        assert transcoder.resample_requests == [True]
        stored = json.loads(audio_store.get_bytes(waveform_cache_key(KEY_1)))
        assert stored == result["waveform"]

    def test_prefers_converted_audio(self, audio_store):
        audio_store.put(audio_cache_key(KEY_1), pcm_bytes([500] * 40))
        transcoder = ScriptTranscoder(timeout=10)
        result = asyncio.run(WaveformPipeline(audio_store, transcoder, points=10).generate(KEY_1))
        assert result["source"] == "converted_cache"
        assert result["totalSamples"] == 40
        assert transcoder.resample_requests == [False]

    def test_second_request_is_cached(self, audio_store):
        transcoder = ScriptTranscoder(timeout=10)
        pipeline = WaveformPipeline(audio_store, transcoder, points=10)
        first = asyncio.run(pipeline.generate(KEY_1))
        second = asyncio.run(pipeline.generate(KEY_1))
        assert second["cached"] is True
        assert second["waveform"] == first["waveform"]
        assert transcoder.invocations == 1

    def test_missing_recording(self, store):
        with pytest.raises(NotFound):
            asyncio.run(WaveformPipeline(store, ScriptTranscoder()).generate("1_1_2020/x.wav"))

    def test_cache_write_failure_is_not_fatal(self, audio_store):
        def broken_put(key, data, content_type="application/octet-stream"):
            raise StoreError("S3 put failed", key=key, stage="put")

        audio_store.put = broken_put
        result = asyncio.run(WaveformPipeline(audio_store, ScriptTranscoder(timeout=10), points=10).generate(KEY_1))
        assert result["cached"] is False
        assert len(result["waveform"]) == 10

    def test_unreadable_cached_waveform_is_regenerated(self, audio_store):
        audio_store.put(waveform_cache_key(KEY_1), b"{not json")
        result = asyncio.run(WaveformPipeline(audio_store, ScriptTranscoder(timeout=10), points=10).generate(KEY_1))
        assert result["cached"] is False
