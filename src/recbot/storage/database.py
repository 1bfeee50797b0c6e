"""SQLite database schema and connection management."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path

SCHEMA_VERSION = 1

SCHEMA_SQL = """
-- One row per recording observed in the object store
CREATE TABLE IF NOT EXISTS files (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    file_path   TEXT NOT NULL UNIQUE,
    phone       TEXT,
    email       TEXT,
    call_date   TEXT,   -- YYYY-MM-DD
    call_time   TEXT,   -- HH:MM:SS
    duration_ms INTEGER DEFAULT 0,
    file_size   INTEGER DEFAULT 0,
    created_at  TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at  TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_files_phone ON files(phone);
CREATE INDEX IF NOT EXISTS idx_files_email ON files(email);
CREATE INDEX IF NOT EXISTS idx_files_call_date ON files(call_date);
CREATE INDEX IF NOT EXISTS idx_files_call_time ON files(call_time);
CREATE INDEX IF NOT EXISTS idx_files_duration ON files(duration_ms);
CREATE INDEX IF NOT EXISTS idx_files_created_at ON files(created_at);
CREATE INDEX IF NOT EXISTS idx_files_composite ON files(call_date, phone, email);
"""


class Database:
    """SQLite database connection manager.

    The connection runs in autocommit mode; multi-statement work goes through
    transaction(), which holds a process lock so the periodic sync and request
    handlers never interleave statements on the shared connection. Reads take
    the same lock, so they never observe a batch that has not committed.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self.lock = threading.RLock()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level=None,
                check_same_thread=False,
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
            self._conn.execute("PRAGMA cache_size=10000")
            self._conn.execute("PRAGMA temp_store=MEMORY")
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def initialize(self):
        """Create all tables if they don't exist."""
        with self.lock:
            self.conn.executescript(SCHEMA_SQL)
            row = self.conn.execute(
                "SELECT version FROM schema_version LIMIT 1"
            ).fetchone()
            if row is None:
                self.conn.execute(
                    "INSERT INTO schema_version (version) VALUES (?)",
                    (SCHEMA_VERSION,),
                )

    @contextmanager
    def transaction(self):
        """Run a block inside BEGIN/COMMIT, rolling back on error.

        Reads inside the block see a single snapshot of the database.
        """
        with self.lock:
            conn = self.conn
            conn.execute("BEGIN")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            else:
                conn.execute("COMMIT")

    def size_bytes(self) -> int:
        return self.db_path.stat().st_size if self.db_path.exists() else 0

    def close(self):
        with self.lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, *args):
        self.close()
