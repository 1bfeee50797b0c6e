"""Reconcile the recording index with the object store listing.

Sync is not transactional across a run: each batch commits on its own, so an
interrupted run keeps its progress and re-running is always safe.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from datetime import date, timedelta
from typing import Callable, Optional

from recbot.config import RECORDINGS_PREFIX, SYNC_BATCH_PAUSE, SYNC_BATCH_SIZE
from recbot.errors import RecbotError
from recbot.parser.filename import date_folder_for
from recbot.remote.lister import RemoteFileLister
from recbot.search.filters import normalize_date
from recbot.storage.models import SyncResult
from recbot.storage.repository import Repository

log = logging.getLogger(__name__)


def parse_sync_date(value) -> date:
    """Accept a date, M_D_YYYY or YYYY-MM-DD; raise ValueError otherwise."""
    if isinstance(value, date):
        return value
    iso = normalize_date(value) if isinstance(value, str) else None
    if iso is None:
        raise ValueError(f"Invalid date: {value!r}")
    return date.fromisoformat(iso)


def iter_days(start: date, end: date):
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def day_prefix(day: date) -> str:
    return f"{RECORDINGS_PREFIX}{date_folder_for(day)}/"


class SyncEngine:
    """Full, date-range and current-day index sync."""

    def __init__(
        self,
        repo: Repository,
        lister: RemoteFileLister,
        batch_size: int = SYNC_BATCH_SIZE,
        batch_pause: float = SYNC_BATCH_PAUSE,
        today: Callable[[], date] = date.today,
    ):
        self.repo = repo
        self.lister = lister
        self.batch_size = batch_size
        self.batch_pause = batch_pause
        self.today = today

    async def _sync_day(self, day: date) -> tuple[int, int]:
        prefix = day_prefix(day)
        files = await asyncio.to_thread(self.lister.list_with_sizes, prefix)
        if not files:
            log.info("No files found for %s", date_folder_for(day))
            return 0, 0
        indexed = await asyncio.to_thread(self.repo.upsert_batch, files)
        log.info("Indexed %d/%d files for %s", indexed, len(files), date_folder_for(day))
        return indexed, len(files)

    async def sync_date_range(self, start, end) -> SyncResult:
        """Index every day in [start, end]; a failing day is logged and skipped."""
        start, end = parse_sync_date(start), parse_sync_date(end)
        if start > end:
            raise ValueError("startDate must not be after endDate")

        started = time.monotonic()
        result = SyncResult()
        for day in iter_days(start, end):
            try:
                indexed, listed = await self._sync_day(day)
            except (RecbotError, sqlite3.Error) as e:
                log.error("Sync failed for %s: %s", date_folder_for(day), e)
                result.errors.append(f"{date_folder_for(day)}: {e}")
                continue
            result.indexed_count += indexed
            result.listed_count += listed
        result.duration_seconds = time.monotonic() - started
        return result

    async def sync_current_day(self) -> SyncResult:
        today = self.today()
        log.info("Checking current day: %s", date_folder_for(today))
        return await self.sync_date_range(today, today)

    async def sync_all(self) -> SyncResult:
        """List the whole recordings root and index it in paced batches.

        A listing failure aborts the run and propagates to the caller.
        """
        log.warning("Full sync initiated - this may take a while...")
        started = time.monotonic()
        files = await asyncio.to_thread(self.lister.list_with_sizes, RECORDINGS_PREFIX)
        total = len(files)
        log.info("Found %d total files to index", total)

        result = SyncResult(listed_count=total)
        for i in range(0, total, self.batch_size):
            batch = files[i:i + self.batch_size]
            indexed = await asyncio.to_thread(self.repo.upsert_batch, batch)
            result.indexed_count += indexed
            log.info(
                "Batch %d: indexed %d/%d files (total %d/%d)",
                i // self.batch_size + 1, indexed, len(batch), result.indexed_count, total,
            )
            if i + self.batch_size < total and self.batch_pause:
                await asyncio.sleep(self.batch_pause)

        result.duration_seconds = time.monotonic() - started
        return result

    async def prune_date_range(self, start, end) -> SyncResult:
        """Delete index rows whose recordings no longer appear in the listing.

        Only rows filed under each day's own prefix are considered, and a day
        whose listing fails is left untouched.
        """
        start, end = parse_sync_date(start), parse_sync_date(end)
        if start > end:
            raise ValueError("startDate must not be after endDate")

        started = time.monotonic()
        result = SyncResult()
        for day in iter_days(start, end):
            prefix = day_prefix(day)
            try:
                listed = set(await asyncio.to_thread(self.lister.list, prefix))
            except RecbotError as e:
                log.error("Prune skipped %s: %s", date_folder_for(day), e)
                result.errors.append(f"{date_folder_for(day)}: {e}")
                continue
            iso = day.isoformat()
            indexed = await asyncio.to_thread(self.repo.get_paths_in_date_range, iso, iso)
            stale = [p for p in indexed if p.startswith(prefix) and p not in listed]
            if stale:
                deleted = await asyncio.to_thread(self.repo.delete_files, stale)
                result.pruned_count += deleted
                log.info("Pruned %d stale rows for %s", deleted, date_folder_for(day))
            result.listed_count += len(listed)
        result.duration_seconds = time.monotonic() - started
        return result


async def run_sync(engine: SyncEngine, start: Optional[str] = None, end: Optional[str] = None) -> SyncResult:
    """Date-range sync when both bounds are given, otherwise a full sync."""
    if start and end:
        return await engine.sync_date_range(start, end)
    if start or end:
        raise ValueError("Both startDate and endDate are required for a range sync")
    return await engine.sync_all()
