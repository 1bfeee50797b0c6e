"""Data models for recbot."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class FileRecord:
    file_path: str  # canonical object key, e.g. recordings/9_26_2025/x.wav
    phone: str = ""
    email: str = ""
    call_date: str = ""  # YYYY-MM-DD
    call_time: str = ""  # HH:MM:SS, 24-hour
    duration_ms: int = 0
    file_size: int = 0
    created_at: str = ""  # set by the index, not the parser
    updated_at: str = ""

    def to_api(self) -> dict:
        return {
            "path": self.file_path,
            "phone": self.phone,
            "email": self.email,
            "date": self.call_date,
            "time": self.call_time,
            "durationMs": self.duration_ms,
            "size": self.file_size,
        }


@dataclass
class QueryResult:
    rows: list[FileRecord] = field(default_factory=list)
    total_count: int = 0
    has_more: bool = False


@dataclass
class SyncResult:
    indexed_count: int = 0
    duration_seconds: float = 0.0
    listed_count: int = 0
    pruned_count: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


@dataclass
class ObjectInfo:
    """Metadata returned by a HEAD against the object store."""

    key: str
    size: int
    content_type: Optional[str] = None
    etag: Optional[str] = None
