"""Exception hierarchy for recbot.

Every error raised across a storage, process or listing boundary carries the
object key and the pipeline stage so operators can tell where a request
failed. Messages never include local filesystem paths or credentials.
"""

from __future__ import annotations


class RecbotError(Exception):
    """Base class for all recbot errors."""

    def __init__(self, message: str, key: str | None = None, stage: str | None = None):
        super().__init__(message)
        self.message = message
        self.key = key
        self.stage = stage

    def __str__(self):
        parts = [self.message]
        if self.stage:
            parts.append(f"stage={self.stage}")
        if self.key:
            parts.append(f"key={self.key}")
        return " ".join(parts)


class StoreError(RecbotError):
    """An object store call failed for a reason other than a missing key."""


class ObjectNotFound(StoreError):
    """The object store has no object at the requested key."""


class NotFound(RecbotError):
    """The source recording does not exist."""


class ListingFailure(RecbotError):
    """Listing a prefix in the object store failed."""


class TranscodeFailure(RecbotError):
    """The transcoder could not be spawned, exited non-zero or timed out."""

    def __init__(
        self,
        message: str,
        key: str | None = None,
        stage: str | None = "transcode",
        returncode: int | None = None,
        stderr: str = "",
    ):
        super().__init__(message, key=key, stage=stage)
        self.returncode = returncode
        self.stderr = stderr


class CacheUploadFailure(RecbotError):
    """The transcoded artifact could not be written to the cache."""
