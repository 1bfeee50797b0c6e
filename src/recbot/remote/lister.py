"""Enumerate recording keys under a prefix, following listing pagination."""

from __future__ import annotations

import logging
from typing import Iterator

from recbot.config import RECORDING_EXTENSION
from recbot.errors import ListingFailure, StoreError
from recbot.remote.store import ObjectStore

log = logging.getLogger(__name__)


class RemoteFileLister:
    """Lists every recording under a prefix, however many pages it spans."""

    def __init__(self, store: ObjectStore, extension: str = RECORDING_EXTENSION):
        self.store = store
        self.extension = extension

    def iter_pages(self, prefix: str) -> Iterator[list[tuple[str, int]]]:
        """Yield one list of (key, size) pairs per listing page."""
        token = None
        pages = 0
        while True:
            try:
                page = self.store.list_page(prefix, token)
            except StoreError as e:
                raise ListingFailure(
                    f"Listing failed after {pages} pages", key=prefix, stage="list"
                ) from e
            pages += 1
            yield [(k, size) for k, size in page.keys if k.endswith(self.extension)]
            token = page.next_token
            if not token:
                break
        log.debug("Listed %s in %d pages", prefix, pages)

    def list_with_sizes(self, prefix: str) -> list[tuple[str, int]]:
        files = []
        for page in self.iter_pages(prefix):
            files.extend(page)
        return files

    def list(self, prefix: str) -> list[str]:
        """All recording keys under prefix, in no particular order."""
        return [key for key, _ in self.list_with_sizes(prefix)]
