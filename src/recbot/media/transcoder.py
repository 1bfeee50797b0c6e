"""Run ffmpeg as a child process fed from an object store stream."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from recbot.config import CHANNELS, SAMPLE_RATE
from recbot.errors import TranscodeFailure

log = logging.getLogger(__name__)

_DONE = object()
STDERR_TAIL = 2000


@dataclass
class TranscodeResult:
    returncode: int
    stdout: bytes
    stderr: str
    elapsed: float


def _next_chunk(chunks: Iterator[bytes]):
    return next(chunks, _DONE)


class Transcoder:
    """Builds ffmpeg command lines and runs them with a bounded runtime."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        timeout: float = 300.0,
        sample_rate: int = SAMPLE_RATE,
        channels: int = CHANNELS,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout
        self.sample_rate = sample_rate
        self.channels = channels
        self.invocations = 0

    # ── Command lines ──────────────────────────────────────────────

    def wav_args(self, output_path: str) -> list[str]:
        """Any input on stdin -> mono 16-bit PCM WAV at output_path."""
        return [
            self.ffmpeg_path, "-hide_banner", "-loglevel", "error", "-y",
            "-i", "pipe:0",
            "-f", "wav",
            "-acodec", "pcm_s16le",
            "-ac", str(self.channels),
            "-ar", str(self.sample_rate),
            output_path,
        ]

    def pcm_args(self, resample: bool = True) -> list[str]:
        """Any input on stdin -> raw s16le samples on stdout.

        Audio that is already the canonical rendition skips resampling so the
        samples line up exactly with what the player receives.
        """
        args = [
            self.ffmpeg_path, "-hide_banner", "-loglevel", "error",
            "-i", "pipe:0",
            "-f", "s16le",
            "-acodec", "pcm_s16le",
        ]
        if resample:
            args += ["-ac", str(self.channels), "-ar", str(self.sample_rate)]
        args.append("pipe:1")
        return args

    # ── Execution ──────────────────────────────────────────────────

    async def run(
        self,
        args: list[str],
        chunks: Iterable[bytes],
        key: Optional[str] = None,
        capture_stdout: bool = False,
    ) -> TranscodeResult:
        """Spawn args, stream chunks into stdin and wait for exit.

        Raises TranscodeFailure on spawn errors, non-zero exit and timeout.
        The process is killed on timeout or if the caller is cancelled.
        """
        started = time.monotonic()
        self.invocations += 1
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE if capture_stdout else asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            log.error("Transcoder could not be started: %s", e)
            raise TranscodeFailure("Transcoder could not be started", key=key) from e

        source = iter(chunks)

        async def feed():
            try:
                while True:
                    chunk = await asyncio.to_thread(_next_chunk, source)
                    if chunk is _DONE:
                        break
                    proc.stdin.write(chunk)
                    await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError):
                # The process stopped reading; its exit status tells us why.
                log.debug("Transcoder closed stdin early for %s", key)
            finally:
                proc.stdin.close()

        async def collect(stream) -> bytes:
            if stream is None:
                return b""
            return await stream.read()

        async def communicate():
            _, out, err = await asyncio.gather(
                feed(), collect(proc.stdout), collect(proc.stderr)
            )
            await proc.wait()
            return out, err

        try:
            stdout, stderr = await asyncio.wait_for(communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await self._kill(proc)
            log.error("Transcoder timed out after %.0fs for %s", self.timeout, key)
            raise TranscodeFailure(
                f"Transcoder timed out after {self.timeout:.0f}s", key=key
            ) from None
        except BaseException:
            await self._kill(proc)
            raise

        elapsed = time.monotonic() - started
        err_text = stderr.decode("utf-8", errors="replace")[-STDERR_TAIL:]
        if proc.returncode != 0:
            log.error(
                "Transcoder exited with code %s for %s: %s",
                proc.returncode, key, err_text.strip(),
            )
            raise TranscodeFailure(
                f"Transcoder exited with code {proc.returncode}",
                key=key,
                returncode=proc.returncode,
                stderr=err_text,
            )
        log.info("Transcode completed in %.0fms for %s", elapsed * 1000, key)
        return TranscodeResult(
            returncode=proc.returncode, stdout=stdout, stderr=err_text, elapsed=elapsed
        )

    async def _kill(self, proc):
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()

    async def to_wav(self, chunks: Iterable[bytes], output_path: str, key: Optional[str] = None) -> TranscodeResult:
        return await self.run(self.wav_args(output_path), chunks, key=key)

    async def to_pcm(self, chunks: Iterable[bytes], key: Optional[str] = None, resample: bool = True) -> bytes:
        result = await self.run(self.pcm_args(resample), chunks, key=key, capture_stdout=True)
        return result.stdout

    async def version(self) -> Optional[str]:
        """First line of `ffmpeg -version`, or None if it cannot be run."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self.ffmpeg_path, "-version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
            out, _ = await asyncio.wait_for(proc.communicate(), timeout=10)
        except (OSError, asyncio.TimeoutError):
            return None
        if proc.returncode != 0:
            return None
        lines = out.decode("utf-8", errors="replace").splitlines()
        return lines[0] if lines else ""
