"""Recurring current-day sync so new recordings show up within minutes."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from recbot.sync.engine import SyncEngine

log = logging.getLogger(__name__)


class CurrentDaySyncScheduler:
    """Runs SyncEngine.sync_current_day on a fixed interval as an asyncio task."""

    def __init__(self, engine: SyncEngine, interval: float, initial_delay: float = 0.0):
        self.engine = engine
        self.interval = interval
        self.initial_delay = initial_delay
        self.runs = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self):
        try:
            result = await self.engine.sync_current_day()
            log.info(
                "Current day sync indexed %d files in %.2fs",
                result.indexed_count, result.duration_seconds,
            )
        except Exception:
            log.exception("Error during current day sync")
        finally:
            self.runs += 1

    async def _loop(self):
        if self.initial_delay:
            await asyncio.sleep(self.initial_delay)
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval)

    def start(self):
        if self.interval <= 0:
            log.info("Periodic current day sync disabled")
            return
        if self.running:
            return
        log.info("Starting current day sync every %.0f seconds", self.interval)
        self._task = asyncio.create_task(self._loop())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
