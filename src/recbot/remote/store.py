"""Object store adapters.

Two backends share one small interface:

* S3ObjectStore talks to S3 (or an S3-compatible provider such as B2) via
  boto3.
* LocalObjectStore maps keys onto a directory tree, the layout you get when
  the bucket is mounted locally. Tests and development use it.

All calls are blocking; async callers wrap them in asyncio.to_thread.
"""

from __future__ import annotations

import io
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterator, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from recbot.errors import ObjectNotFound, StoreError
from recbot.ranges import parse_range
from recbot.storage.models import ObjectInfo

log = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
LIST_PAGE_SIZE = 1000

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


@dataclass
class StoredObject:
    """An open object body plus the response metadata needed to serve it."""

    key: str
    body: BinaryIO
    content_length: int
    content_range: Optional[str] = None
    content_type: Optional[str] = None

    def iter_chunks(self, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
        try:
            while True:
                chunk = self.body.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.close()

    def read_all(self) -> bytes:
        try:
            return self.body.read()
        finally:
            self.close()

    def close(self):
        try:
            self.body.close()
        except Exception:
            log.debug("Error closing body for %s", self.key, exc_info=True)


@dataclass
class ListPage:
    keys: list[tuple[str, int]] = field(default_factory=list)  # (key, size)
    next_token: Optional[str] = None


class ObjectStore:
    """Interface implemented by every store backend."""

    def head(self, key: str) -> ObjectInfo:
        raise NotImplementedError

    def get(self, key: str, range_header: Optional[str] = None) -> StoredObject:
        raise NotImplementedError

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream"):
        raise NotImplementedError

    def list_page(self, prefix: str, continuation_token: Optional[str] = None) -> ListPage:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        try:
            self.head(key)
        except ObjectNotFound:
            return False
        return True

    def get_bytes(self, key: str) -> bytes:
        return self.get(key).read_all()

    def close(self):
        pass


class S3ObjectStore(ObjectStore):
    """boto3-backed store for one bucket."""

    def __init__(
        self,
        bucket: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        client=None,
    ):
        self.bucket = bucket
        self.client = client or boto3.client(
            "s3", region_name=region, endpoint_url=endpoint_url
        )

    def _translate(self, exc: Exception, key: str, stage: str) -> StoreError:
        if isinstance(exc, ClientError):
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                return ObjectNotFound("Object not found", key=key, stage=stage)
            return StoreError(f"S3 {stage} failed ({code or 'unknown'})", key=key, stage=stage)
        return StoreError(f"S3 {stage} failed", key=key, stage=stage)

    def head(self, key: str) -> ObjectInfo:
        try:
            resp = self.client.head_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key, "head") from e
        return ObjectInfo(
            key=key,
            size=resp.get("ContentLength", 0),
            content_type=resp.get("ContentType"),
            etag=resp.get("ETag"),
        )

    def get(self, key: str, range_header: Optional[str] = None) -> StoredObject:
        params = {"Bucket": self.bucket, "Key": key}
        if range_header:
            params["Range"] = range_header
        try:
            resp = self.client.get_object(**params)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key, "get") from e
        return StoredObject(
            key=key,
            body=resp["Body"],
            content_length=resp.get("ContentLength", 0),
            content_range=resp.get("ContentRange"),
            content_type=resp.get("ContentType"),
        )

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream"):
        try:
            self.client.put_object(
                Bucket=self.bucket, Key=key, Body=data, ContentType=content_type
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key, "put") from e

    def list_page(self, prefix: str, continuation_token: Optional[str] = None) -> ListPage:
        params = {"Bucket": self.bucket, "Prefix": prefix}
        if continuation_token:
            params["ContinuationToken"] = continuation_token
        try:
            resp = self.client.list_objects_v2(**params)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, prefix, "list") from e
        keys = [(obj["Key"], obj.get("Size", 0)) for obj in resp.get("Contents", [])]
        next_token = resp.get("NextContinuationToken") if resp.get("IsTruncated") else None
        return ListPage(keys=keys, next_token=next_token)


class LocalObjectStore(ObjectStore):
    """Store backed by a directory; keys are relative POSIX paths."""

    def __init__(self, root: Path, page_size: int = LIST_PAGE_SIZE):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.page_size = page_size

    def _path(self, key: str) -> Path:
        parts = PurePosixPath(key).parts
        if not key or key.startswith("/") or ".." in parts:
            raise StoreError("Invalid object key", key=key, stage="resolve")
        return self.root.joinpath(*parts)

    def head(self, key: str) -> ObjectInfo:
        path = self._path(key)
        if not path.is_file():
            raise ObjectNotFound("Object not found", key=key, stage="head")
        return ObjectInfo(key=key, size=path.stat().st_size)

    def get(self, key: str, range_header: Optional[str] = None) -> StoredObject:
        path = self._path(key)
        if not path.is_file():
            raise ObjectNotFound("Object not found", key=key, stage="get")
        size = path.stat().st_size
        byte_range = parse_range(range_header, size) if range_header else None
        if byte_range is None:
            return StoredObject(key=key, body=open(path, "rb"), content_length=size)
        with open(path, "rb") as f:
            f.seek(byte_range.start)
            data = f.read(byte_range.length)
        return StoredObject(
            key=key,
            body=io.BytesIO(data),
            content_length=len(data),
            content_range=byte_range.content_range,
        )

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream"):
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".upload-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise StoreError("Local put failed", key=key, stage="put") from e

    def _walk(self, prefix: str) -> list[tuple[str, int]]:
        # Start from the deepest directory the prefix names, then filter.
        base_dir = prefix.rsplit("/", 1)[0] if "/" in prefix else ""
        start = self.root.joinpath(*PurePosixPath(base_dir).parts) if base_dir else self.root
        if not start.is_dir():
            return []
        found = []
        for path in start.rglob("*"):
            if not path.is_file() or path.name.startswith(".upload-"):
                continue
            key = path.relative_to(self.root).as_posix()
            if key.startswith(prefix):
                found.append((key, path.stat().st_size))
        found.sort()
        return found

    def list_page(self, prefix: str, continuation_token: Optional[str] = None) -> ListPage:
        try:
            entries = self._walk(prefix)
        except OSError as e:
            raise StoreError("Local list failed", key=prefix, stage="list") from e
        if continuation_token:
            entries = [e for e in entries if e[0] > continuation_token]
        page = entries[: self.page_size]
        next_token = page[-1][0] if len(entries) > self.page_size else None
        return ListPage(keys=page, next_token=next_token)


def create_store(settings) -> ObjectStore:
    """Build the store described by a Settings object."""
    if settings.storage_type == "local":
        return LocalObjectStore(settings.local_store_root)
    return S3ObjectStore(
        settings.bucket, region=settings.region, endpoint_url=settings.endpoint_url
    )
