"""CRUD operations for the recording index."""

from __future__ import annotations

import logging
from typing import Iterable, Union

from recbot.parser.filename import parse_file_metadata
from recbot.storage.database import Database
from recbot.storage.models import FileRecord

log = logging.getLogger(__name__)

UPSERT_SQL = """
    INSERT INTO files (file_path, phone, email, call_date, call_time, duration_ms, file_size)
    VALUES (?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(file_path) DO UPDATE SET
        phone = excluded.phone,
        email = excluded.email,
        call_date = excluded.call_date,
        call_time = excluded.call_time,
        duration_ms = excluded.duration_ms,
        file_size = excluded.file_size,
        updated_at = CURRENT_TIMESTAMP
"""

FILE_COLUMNS = (
    "file_path, phone, email, call_date, call_time, duration_ms, file_size, "
    "created_at, updated_at"
)

BatchItem = Union[str, tuple, FileRecord]


def row_to_record(row) -> FileRecord:
    return FileRecord(
        file_path=row["file_path"],
        phone=row["phone"] or "",
        email=row["email"] or "",
        call_date=row["call_date"] or "",
        call_time=row["call_time"] or "",
        duration_ms=row["duration_ms"] or 0,
        file_size=row["file_size"] or 0,
        created_at=row["created_at"] or "",
        updated_at=row["updated_at"] or "",
    )


def _record_params(record: FileRecord) -> tuple:
    return (
        record.file_path,
        record.phone,
        record.email,
        record.call_date,
        record.call_time,
        record.duration_ms,
        record.file_size,
    )


def _coerce(item: BatchItem) -> FileRecord | None:
    """Turn a batch item (key, (key, size) or FileRecord) into a record."""
    if isinstance(item, FileRecord):
        return item
    if isinstance(item, tuple):
        key, size = item
        return parse_file_metadata(key, size or 0)
    return parse_file_metadata(item)


class Repository:
    """Database operations for the recording index."""

    def __init__(self, db: Database):
        self.db = db

    # ── Writes ─────────────────────────────────────────────────────

    def upsert(self, record: FileRecord):
        """Insert or overwrite the row for record.file_path."""
        with self.db.lock:
            self.db.conn.execute(UPSERT_SQL, _record_params(record))

    def index_file(self, file_path: str, file_size: int = 0) -> bool:
        """Parse a key and upsert it. False if the key does not parse."""
        record = parse_file_metadata(file_path, file_size)
        if record is None:
            return False
        self.upsert(record)
        return True

    def upsert_batch(self, items: Iterable[BatchItem]) -> int:
        """Upsert many keys in one transaction; returns how many were indexed.

        Keys that fail to parse are skipped.
        """
        indexed = 0
        skipped = 0
        with self.db.transaction() as conn:
            for item in items:
                record = _coerce(item)
                if record is None:
                    skipped += 1
                    continue
                conn.execute(UPSERT_SQL, _record_params(record))
                indexed += 1
        if skipped:
            log.debug("Skipped %d unparseable keys in batch", skipped)
        return indexed

    def delete_file(self, file_path: str) -> bool:
        with self.db.lock:
            cursor = self.db.conn.execute(
                "DELETE FROM files WHERE file_path = ?", (file_path,)
            )
        return cursor.rowcount > 0

    def delete_files(self, file_paths: Iterable[str]) -> int:
        deleted = 0
        with self.db.transaction() as conn:
            for path in file_paths:
                deleted += conn.execute(
                    "DELETE FROM files WHERE file_path = ?", (path,)
                ).rowcount
        return deleted

    # ── Reads ──────────────────────────────────────────────────────

    def file_exists(self, file_path: str) -> bool:
        with self.db.lock:
            row = self.db.conn.execute(
                "SELECT 1 FROM files WHERE file_path = ?", (file_path,)
            ).fetchone()
        return row is not None

    def get_file(self, file_path: str) -> FileRecord | None:
        with self.db.lock:
            row = self.db.conn.execute(
                f"SELECT {FILE_COLUMNS} FROM files WHERE file_path = ?", (file_path,)
            ).fetchone()
        return row_to_record(row) if row else None

    def get_total_count(self) -> int:
        with self.db.lock:
            row = self.db.conn.execute("SELECT COUNT(*) FROM files").fetchone()
        return row[0]

    def get_paths_in_date_range(self, start: str, end: str) -> list[str]:
        """File paths whose call_date falls within [start, end] (ISO dates)."""
        with self.db.lock:
            rows = self.db.conn.execute(
                "SELECT file_path FROM files WHERE call_date >= ? AND call_date <= ?",
                (start, end),
            ).fetchall()
        return [r[0] for r in rows]

    def get_stats(self) -> dict:
        try:
            total = self.get_total_count()
        except Exception:
            log.exception("Error reading index stats")
            total = 0
        return {
            "totalFiles": total,
            "databasePath": str(self.db.db_path),
            "databaseSize": self.db.size_bytes(),
        }
