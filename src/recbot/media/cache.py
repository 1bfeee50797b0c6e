"""Cache key derivation, per-key locking and scoped temp files."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import tempfile
from contextlib import asynccontextmanager, contextmanager
from typing import Iterator

from recbot.config import AUDIO_CACHE_PREFIX, WAVEFORM_CACHE_PREFIX

log = logging.getLogger(__name__)


def _digest(source_key: str) -> str:
    return hashlib.md5(source_key.encode("utf-8")).hexdigest()


def audio_cache_key(source_key: str) -> str:
    """cache/wav/{md5(source_key)}.wav"""
    return f"{AUDIO_CACHE_PREFIX}{_digest(source_key)}.wav"


def waveform_cache_key(source_key: str) -> str:
    return f"{WAVEFORM_CACHE_PREFIX}{_digest(source_key)}.json"


class KeyedLocks:
    """One asyncio.Lock per key; a lock is dropped once nobody holds or waits on it.

    All bookkeeping happens between awaits on a single event loop, so the
    registry itself needs no lock.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self):
        return len(self._locks)


@contextmanager
def temporary_output_path(suffix: str = ".wav") -> Iterator[str]:
    """Yield a path for a child process to write to; the file is always removed."""
    fd, path = tempfile.mkstemp(prefix="recbot-", suffix=suffix)
    os.close(fd)
    try:
        yield path
    finally:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError:
            log.warning("Could not remove temp file %s", path, exc_info=True)
