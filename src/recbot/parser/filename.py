"""Parse call metadata out of recording object keys.

Keys look like::

    recordings/9_26_2025/2012055255 by user@domain.com @ 9_47_43 AM_18600.wav

The date folder is the only hard requirement. Every field in the filename is
extracted on its own and falls back to an empty value, so a recording with an
unexpected name is still indexed under its date.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Optional

from recbot.config import RECORDINGS_PREFIX
from recbot.storage.models import FileRecord

log = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^(\d+)")
EMAIL_PATTERN = re.compile(r"by ([^@]+@[^ ]+)")
TIME_PATTERN = re.compile(r"@ ([\d_]+ [AP]M)")
DURATION_PATTERN = re.compile(r"_(\d+)\.wav$")

TIME_FORMATS = ("%I:%M:%S %p", "%I:%M %p")


def strip_root(object_key: str) -> str:
    """Drop the recordings/ prefix if the key carries it."""
    if object_key.startswith(RECORDINGS_PREFIX):
        return object_key[len(RECORDINGS_PREFIX):]
    return object_key


def to_source_key(path: str) -> str:
    """Return the canonical object key for a path with or without the root."""
    path = path.lstrip("/")
    if path.startswith(RECORDINGS_PREFIX):
        return path
    return RECORDINGS_PREFIX + path


def normalize_date_folder(folder: str) -> Optional[str]:
    """Convert an M_D_YYYY folder name to YYYY-MM-DD, or None if malformed."""
    parts = folder.split("_")
    if len(parts) != 3 or not all(p.isascii() and p.isdigit() for p in parts):
        return None
    month, day, year = parts
    return f"{year}-{month.zfill(2)}-{day.zfill(2)}"


def date_folder_for(day: date) -> str:
    """Format a date the way the store names its day folders (no padding)."""
    return f"{day.month}_{day.day}_{day.year}"


def parse_call_time(raw: str) -> str:
    """Convert 'h_mm_ss AM' to 24-hour 'HH:MM:SS'; empty string if invalid."""
    text = raw.replace("_", ":")
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).strftime("%H:%M:%S")
        except ValueError:
            continue
    log.debug("Unparseable call time %r", raw)
    return ""


def parse_file_metadata(object_key: str, file_size: int = 0) -> Optional[FileRecord]:
    """Extract a FileRecord from an object key.

    Returns None only when the key has no {date_folder}/{filename} shape or
    the folder is not three numeric M_D_YYYY tokens.
    """
    parts = strip_root(object_key).split("/")
    if len(parts) != 2:
        return None
    folder, filename = parts
    if not folder or not filename:
        return None

    call_date = normalize_date_folder(folder)
    if call_date is None:
        return None

    phone_match = PHONE_PATTERN.search(filename)
    email_match = EMAIL_PATTERN.search(filename)
    time_match = TIME_PATTERN.search(filename)
    duration_match = DURATION_PATTERN.search(filename)

    return FileRecord(
        file_path=object_key,
        phone=phone_match.group(1) if phone_match else "",
        email=email_match.group(1) if email_match else "",
        call_date=call_date,
        call_time=parse_call_time(time_match.group(1)) if time_match else "",
        duration_ms=int(duration_match.group(1)) if duration_match else 0,
        file_size=file_size,
    )
