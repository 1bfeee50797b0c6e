"""Filter, sort and pagination options for recording queries."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from recbot.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

log = logging.getLogger(__name__)

DURATION_MODES = ("min", "max")
TIME_MODES = ("range", "Older", "Newer")
SORT_DIRECTIONS = ("asc", "desc")

# Public sort names -> indexed columns
SORT_COLUMNS = {
    "date": "call_date",
    "time": "call_time",
    "phone": "phone",
    "email": "email",
    "duration": "duration_ms",
    "durationMs": "duration_ms",
}

TIEBREAK_ORDER = "call_date DESC, call_time DESC, file_path ASC"

_TIME_INPUT_FORMATS = (
    "%H:%M:%S",
    "%H:%M",
    "%I:%M:%S %p",
    "%I:%M %p",
    "%I:%M:%S%p",
    "%I:%M%p",
)
_ISO_DATE = re.compile(r"^\d{4}-\d{1,2}-\d{1,2}$")

# Largest value SQLite accepts as an INTEGER parameter
SQLITE_MAX_INT = 2 ** 63 - 1


def normalize_date(value: Optional[str]) -> Optional[str]:
    """Accept M_D_YYYY or YYYY-MM-DD and return YYYY-MM-DD, else None."""
    if not value or not value.strip():
        return None
    value = value.strip()
    try:
        if "_" in value:
            month, day, year = (int(p) for p in value.split("_"))
        elif _ISO_DATE.match(value):
            year, month, day = (int(p) for p in value.split("-"))
        else:
            return None
        return datetime(year, month, day).strftime("%Y-%m-%d")
    except ValueError:
        log.debug("Ignoring malformed date filter %r", value)
        return None


def normalize_time(value: Optional[str]) -> Optional[str]:
    """Accept 24-hour or 12-hour clock strings and return HH:MM:SS, else None."""
    if not value or not value.strip():
        return None
    text = value.strip().replace("_", ":").upper()
    for fmt in _TIME_INPUT_FORMATS:
        try:
            return datetime.strptime(text, fmt).strftime("%H:%M:%S")
        except ValueError:
            continue
    log.debug("Ignoring malformed time filter %r", value)
    return None


def _to_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number < 0:  # NaN or negative
        return None
    return number


def _to_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _like_pattern(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@dataclass
class RecordingFilters:
    """Every option a recording query understands.

    date_start / date_end: inclusive YYYY-MM-DD bounds on call_date.
    phone / email: substring matches (email is case-insensitive).
    duration_seconds + duration_mode: "min" keeps calls at least that long,
        "max" keeps calls no longer than that.
    time_start / time_end + time_mode: "range" applies whichever bounds are
        set (inclusive), "Older" keeps calls at or before the bound, "Newer"
        keeps calls at or after it. Calls with no parsed time never match a
        time filter.
    sort_column / sort_direction: one of SORT_COLUMNS, asc or desc; ties
        are always broken by date desc, then time desc.
    limit / offset: page window. limit=None returns every matching row.
    """

    date_start: Optional[str] = None
    date_end: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    duration_seconds: Optional[float] = None
    duration_mode: str = "min"
    time_start: Optional[str] = None
    time_end: Optional[str] = None
    time_mode: str = "range"
    sort_column: str = "date"
    sort_direction: str = "desc"
    limit: Optional[int] = DEFAULT_PAGE_SIZE
    offset: int = 0

    def __post_init__(self):
        if self.duration_mode not in DURATION_MODES:
            self.duration_mode = "min"
        if self.time_mode not in TIME_MODES:
            self.time_mode = "range"
        if self.sort_column not in SORT_COLUMNS:
            self.sort_column = "date"
        self.sort_direction = (self.sort_direction or "").lower()
        if self.sort_direction not in SORT_DIRECTIONS:
            self.sort_direction = "desc"
        self.date_start = normalize_date(self.date_start)
        self.date_end = normalize_date(self.date_end)
        self.time_start = normalize_time(self.time_start)
        self.time_end = normalize_time(self.time_end)
        if self.limit is not None and self.limit <= 0:
            self.limit = DEFAULT_PAGE_SIZE
        if self.limit is not None:
            self.limit = min(self.limit, SQLITE_MAX_INT)
        self.offset = min(max(self.offset, 0), SQLITE_MAX_INT)
        self.phone = (self.phone.strip() or None) if self.phone else None
        self.email = (self.email.strip() or None) if self.email else None

    @classmethod
    def from_params(
        cls,
        date_start: Optional[str] = None,
        date_end: Optional[str] = None,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        duration_min=None,
        duration_mode: Optional[str] = None,
        time_start: Optional[str] = None,
        time_end: Optional[str] = None,
        time_mode: Optional[str] = None,
        sort_column: Optional[str] = None,
        sort_direction: Optional[str] = None,
        limit=None,
        offset=None,
    ) -> "RecordingFilters":
        """Build filters from raw request strings.

        Anything malformed is dropped rather than rejected.
        """
        page_size = _to_int(limit, DEFAULT_PAGE_SIZE)
        if page_size <= 0:
            page_size = DEFAULT_PAGE_SIZE
        return cls(
            date_start=normalize_date(date_start),
            date_end=normalize_date(date_end),
            phone=phone,
            email=email,
            duration_seconds=_to_float(duration_min),
            duration_mode=duration_mode or "min",
            time_start=normalize_time(time_start),
            time_end=normalize_time(time_end),
            time_mode=time_mode or "range",
            sort_column=sort_column or "date",
            sort_direction=sort_direction or "desc",
            limit=min(page_size, MAX_PAGE_SIZE),
            offset=max(_to_int(offset, 0), 0),
        )

    def _time_bounds(self) -> tuple[Optional[str], Optional[str]]:
        if self.time_mode == "Older":
            return None, self.time_end or self.time_start
        if self.time_mode == "Newer":
            return self.time_start or self.time_end, None
        return self.time_start, self.time_end

    def to_sql_clauses(self) -> tuple[str, list]:
        """Return (WHERE clause fragments, parameters) for SQL queries.

        Fragments are joined with AND; the caller adds the WHERE keyword.
        """
        clauses = []
        params = []

        if self.date_start:
            clauses.append("call_date >= ?")
            params.append(self.date_start)

        if self.date_end:
            clauses.append("call_date <= ?")
            params.append(self.date_end)

        if self.phone:
            clauses.append("phone LIKE ? ESCAPE '\\'")
            params.append(_like_pattern(self.phone))

        if self.email:
            clauses.append("LOWER(email) LIKE LOWER(?) ESCAPE '\\'")
            params.append(_like_pattern(self.email))

        if self.duration_seconds is not None:
            op = "<=" if self.duration_mode == "max" else ">="
            clauses.append(f"duration_ms {op} ?")
            params.append(self.duration_seconds * 1000)

        lower, upper = self._time_bounds()
        if lower or upper:
            clauses.append("call_time != ''")
        if lower:
            clauses.append("call_time >= ?")
            params.append(lower)
        if upper:
            clauses.append("call_time <= ?")
            params.append(upper)

        return " AND ".join(clauses) if clauses else "", params

    def order_by(self) -> str:
        column = SORT_COLUMNS[self.sort_column]
        return f"{column} {self.sort_direction.upper()}, {TIEBREAK_ORDER}"
