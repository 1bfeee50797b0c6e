"""Configuration and constants for recbot."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

# Paths
PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_DB_PATH = DEFAULT_DATA_DIR / "recbot.db"
DEFAULT_LOCAL_STORE_ROOT = DEFAULT_DATA_DIR / "bucket"

# Object store layout
RECORDINGS_PREFIX = "recordings/"
CACHE_PREFIX = "cache/"
AUDIO_CACHE_PREFIX = CACHE_PREFIX + "wav/"
WAVEFORM_CACHE_PREFIX = CACHE_PREFIX + "waveform/"
RECORDING_EXTENSION = ".wav"

# Canonical playback rendition
SAMPLE_RATE = 22050
CHANNELS = 1
SAMPLE_WIDTH = 2  # pcm_s16le
WAVEFORM_POINTS = 1000

# Sync
SYNC_BATCH_SIZE = 1000
SYNC_BATCH_PAUSE = 0.1
SYNC_INTERVAL_SECONDS = 5 * 60
SYNC_INITIAL_DELAY = 30

# Query defaults
DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 1000

STORAGE_TYPES = ("s3", "local")


@dataclass
class Settings:
    """Runtime settings for the service, CLI and sync engine."""

    db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)
    storage_type: str = "s3"
    bucket: str = ""
    region: str | None = None
    endpoint_url: str | None = None
    local_store_root: Path = field(default_factory=lambda: DEFAULT_LOCAL_STORE_ROOT)
    ffmpeg_path: str = "ffmpeg"
    transcode_timeout: float = 300.0
    sync_interval: float = SYNC_INTERVAL_SECONDS
    sync_initial_delay: float = SYNC_INITIAL_DELAY

    def validate(self):
        """Raise ValueError if the settings cannot describe a usable store."""
        if self.storage_type not in STORAGE_TYPES:
            raise ValueError(f"Unsupported storage type: {self.storage_type}")
        if self.storage_type == "s3" and not self.bucket:
            raise ValueError("AWS_BUCKET must be set when STORAGE_TYPE is 's3'")
        if self.transcode_timeout <= 0:
            raise ValueError("TRANSCODE_TIMEOUT must be positive")


def _env_float(environ, name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def load_settings(environ=None, **overrides) -> Settings:
    """Build Settings from environment variables, then apply overrides.

    Overrides with a value of None are ignored so CLI options can be passed
    through unconditionally.
    """
    env = os.environ if environ is None else environ

    db_path = env.get("RECBOT_DB_PATH") or env.get("DB_PATH")
    local_root = env.get("LOCAL_STORE_ROOT")

    settings = Settings(
        db_path=Path(db_path) if db_path else DEFAULT_DB_PATH,
        storage_type=env.get("STORAGE_TYPE", "s3").lower(),
        bucket=env.get("AWS_BUCKET", ""),
        region=env.get("AWS_REGION") or None,
        endpoint_url=env.get("S3_ENDPOINT_URL") or None,
        local_store_root=Path(local_root) if local_root else DEFAULT_LOCAL_STORE_ROOT,
        ffmpeg_path=env.get("FFMPEG_PATH", "ffmpeg"),
        transcode_timeout=_env_float(env, "TRANSCODE_TIMEOUT", 300.0),
        sync_interval=_env_float(env, "SYNC_INTERVAL_SECONDS", SYNC_INTERVAL_SECONDS),
        sync_initial_delay=_env_float(env, "SYNC_INITIAL_DELAY", SYNC_INITIAL_DELAY),
    )

    for name, value in overrides.items():
        if value is None:
            continue
        if not hasattr(settings, name):
            raise TypeError(f"Unknown setting: {name}")
        if name in ("db_path", "local_store_root"):
            value = Path(value)
        setattr(settings, name, value)

    return settings
