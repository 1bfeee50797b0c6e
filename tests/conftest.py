"""Shared test fixtures for recbot."""

from __future__ import annotations

import struct
import sys

import pytest

from recbot.config import Settings
from recbot.media.transcoder import Transcoder
from recbot.remote.store import LocalObjectStore
from recbot.services import Services
from recbot.storage.database import Database
from recbot.storage.repository import Repository

# Child-process stand-ins for ffmpeg: they honour the same stdin/stdout/file
# contract without needing the binary installed.
COPY_TO_FILE = (
    "import sys\n"
    "with open(sys.argv[1], 'wb') as f:\n"
    "    f.write(sys.stdin.buffer.read())\n"
)
ECHO_STDOUT = "import sys; sys.stdout.buffer.write(sys.stdin.buffer.read())"
FAIL = "import sys; sys.stdin.buffer.read(); sys.stderr.write('invalid data found'); sys.exit(1)"
WRITE_NOTHING = "import sys; sys.stdin.buffer.read()"
HANG = "import time; time.sleep(30)"

KEY_1 = "recordings/9_26_2025/2012055255 by user@domain.com @ 9_47_43 AM_18600.wav"
KEY_2 = "recordings/9_26_2025/3125550000 by agent@domain.com @ 2_05_10 PM_45000.wav"
KEY_3 = "recordings/9_27_2025/4155551234 by user@domain.com @ 11_15_00 AM_30000.wav"


class ScriptTranscoder(Transcoder):
    """Transcoder whose command lines run small Python scripts."""

    def __init__(self, wav_script: str = COPY_TO_FILE, pcm_script: str = ECHO_STDOUT, **kwargs):
        super().__init__(ffmpeg_path=sys.executable, **kwargs)
        self.wav_script = wav_script
        self.pcm_script = pcm_script
        self.resample_requests: list[bool] = []

    def wav_args(self, output_path):
        return [sys.executable, "-c", self.wav_script, output_path]

    def pcm_args(self, resample=True):
        self.resample_requests.append(resample)
        return [sys.executable, "-c", self.pcm_script]


class CountingStore(LocalObjectStore):
    """LocalObjectStore that records every put."""

    def __init__(self, root, **kwargs):
        super().__init__(root, **kwargs)
        self.puts: list[str] = []

    def put(self, key, data, content_type="application/octet-stream"):
        self.puts.append(key)
        super().put(key, data, content_type)


def pcm_bytes(samples) -> bytes:
    return struct.pack(f"<{len(samples)}h", *samples)


@pytest.fixture
def tmp_db(tmp_path):
    """Temp database with schema initialized."""
    db_path = tmp_path / "test.db"
    with Database(db_path) as db:
        yield db


@pytest.fixture
def repo(tmp_db):
    """Repository backed by the temp database."""
    return Repository(tmp_db)


@pytest.fixture
def store(tmp_path):
    """Local object store rooted in the test's temp directory."""
    return CountingStore(tmp_path / "bucket")


@pytest.fixture
def seeded_store(store):
    """Store holding three recordings over two days plus a non-audio object."""
    store.put(KEY_1, b"RIFF-one")
    store.put(KEY_2, b"RIFF-two-longer")
    store.put(KEY_3, b"RIFF-three")
    store.put("recordings/9_26_2025/notes.txt", b"not audio")
    store.puts.clear()
    return store


@pytest.fixture
def transcoder():
    return ScriptTranscoder(timeout=10)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_path=tmp_path / "data" / "recbot.db",
        storage_type="local",
        local_store_root=tmp_path / "bucket",
        sync_interval=0,
    )


@pytest.fixture
def services(settings, seeded_store, transcoder):
    with Services(settings, store=seeded_store, transcoder=transcoder) as svc:
        yield svc


@pytest.fixture
def sample_records(repo):
    """Index a handful of recordings with varied dates, times and durations."""
    keys = [
        (KEY_1, 100),
        (KEY_2, 200),
        (KEY_3, 300),
        ("recordings/9_25_2025/5551112222 by boss@corp.com @ 8_00_00 AM_120000.wav", 400),
        ("recordings/9_25_2025/unknown.wav", 50),
    ]
    repo.upsert_batch(keys)
    return keys
