"""Process-wide service container shared by the web app and the CLI."""

from __future__ import annotations

import logging

from recbot.config import Settings, load_settings
from recbot.media.cache import KeyedLocks
from recbot.media.pipeline import AudioPipeline
from recbot.media.transcoder import Transcoder
from recbot.media.waveform import WaveformPipeline
from recbot.remote.lister import RemoteFileLister
from recbot.remote.store import ObjectStore, create_store
from recbot.storage.database import Database
from recbot.storage.repository import Repository
from recbot.sync.engine import SyncEngine
from recbot.sync.scheduler import CurrentDaySyncScheduler

log = logging.getLogger(__name__)


class Services:
    """Owns the database, object store and everything built on them.

    `store` and `transcoder` may be injected, which is how tests swap in a
    local store and a stand-in transcoder.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: ObjectStore | None = None,
        transcoder: Transcoder | None = None,
    ):
        self.settings = settings or load_settings()
        self._store = store
        self._transcoder = transcoder
        self.opened = False

    def open(self) -> "Services":
        if self.opened:
            return self
        settings = self.settings
        if self._store is None:
            settings.validate()

        self.db = Database(settings.db_path)
        self.db.initialize()
        self.repo = Repository(self.db)

        self.store = self._store or create_store(settings)
        self.lister = RemoteFileLister(self.store)
        self.transcoder = self._transcoder or Transcoder(
            ffmpeg_path=settings.ffmpeg_path, timeout=settings.transcode_timeout
        )

        locks = KeyedLocks()
        self.audio = AudioPipeline(self.store, self.transcoder, locks)
        self.waveforms = WaveformPipeline(self.store, self.transcoder, locks)

        self.sync_engine = SyncEngine(self.repo, self.lister)
        self.scheduler = CurrentDaySyncScheduler(
            self.sync_engine,
            interval=settings.sync_interval,
            initial_delay=settings.sync_initial_delay,
        )

        log.info(
            "Services ready: db=%s storage=%s", settings.db_path, settings.storage_type
        )
        self.opened = True
        return self

    def close(self):
        if not self.opened:
            return
        self.store.close()
        self.db.close()
        self.opened = False

    def __enter__(self):
        return self.open()

    def __exit__(self, *args):
        self.close()
