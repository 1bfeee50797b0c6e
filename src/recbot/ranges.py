"""HTTP byte-range parsing for audio seeking."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

RANGE_PATTERN = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$", re.IGNORECASE)


class RangeNotSatisfiable(ValueError):
    """The requested range lies entirely outside the object."""

    def __init__(self, size: int):
        super().__init__(f"Range not satisfiable for object of {size} bytes")
        self.size = size

    @property
    def content_range(self) -> str:
        return f"bytes */{self.size}"


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int  # inclusive
    size: int  # full object length

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.size}"

    @property
    def header(self) -> str:
        """Normalized Range request header for forwarding to the store."""
        return f"bytes={self.start}-{self.end}"


def parse_range(header: Optional[str], size: int) -> Optional[ByteRange]:
    """Resolve a Range header against an object of `size` bytes.

    Returns None when there is no usable single range (missing, malformed or
    multi-range headers are served as the full object). Raises
    RangeNotSatisfiable when the range starts past the end of the object.
    Ends beyond the object are clamped.
    """
    if not header:
        return None
    match = RANGE_PATTERN.match(header)
    if not match:
        return None
    first, last = match.groups()
    if not first and not last:
        return None

    if not first:
        # Suffix range: the final N bytes
        suffix = int(last)
        if suffix == 0 or size == 0:
            raise RangeNotSatisfiable(size)
        start = max(size - suffix, 0)
        end = size - 1
    else:
        start = int(first)
        if last and int(last) < start:
            return None
        if start >= size:
            raise RangeNotSatisfiable(size)
        end = min(int(last), size - 1) if last else size - 1

    return ByteRange(start=start, end=end, size=size)
