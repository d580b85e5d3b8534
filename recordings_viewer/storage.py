import os
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, List, Optional, Union

from google.cloud import storage
from google.api_core import exceptions

from recordings_viewer.errors import ObjectNotFound, TransportError

logger = logging.getLogger("recordings_viewer.storage")


@dataclass
class ObjectInfo:
    key: str
    size: int
    last_modified: datetime


@dataclass
class ListPage:
    items: List[ObjectInfo] = field(default_factory=list)
    common_prefixes: List[str] = field(default_factory=list)
    next_token: Optional[str] = None


class ObjectStore(ABC):
    """
    Bucket-style object store: prefix listing, get, put, time-limited read URLs.
    Listing supports recursive (no delimiter) and single-level (delimiter) modes.
    """

    @abstractmethod
    def list_objects(
        self,
        prefix: str,
        delimiter: Optional[str] = None,
        page_token: Optional[str] = None,
    ) -> ListPage:
        ...

    @abstractmethod
    def get_object(self, key: str) -> bytes:
        ...

    @abstractmethod
    def put_object(self, key: str, data: Union[bytes, str], content_type: str) -> None:
        ...

    @abstractmethod
    def presigned_read_url(self, key: str, ttl_seconds: int) -> str:
        ...

    def iter_pages(self, prefix: str, delimiter: Optional[str] = None) -> Iterator[ListPage]:
        # Each page's token depends on the previous response, so this is sequential.
        token = None
        while True:
            page = self.list_objects(prefix, delimiter=delimiter, page_token=token)
            yield page
            token = page.next_token
            if not token:
                break

    def iter_objects(self, prefix: str) -> Iterator[ObjectInfo]:
        for page in self.iter_pages(prefix):
            yield from page.items

    def list_common_prefixes(self, prefix: str) -> List[str]:
        prefixes: List[str] = []
        for page in self.iter_pages(prefix, delimiter="/"):
            prefixes.extend(page.common_prefixes)
        return prefixes


class GCSObjectStore(ObjectStore):
    def __init__(self, client: storage.Client, bucket_name: str, page_size: int = 1000):
        self._client = client
        self.bucket_name = bucket_name
        self.page_size = page_size
        self._bucket = client.bucket(bucket_name)

    def list_objects(self, prefix, delimiter=None, page_token=None) -> ListPage:
        try:
            iterator = self._client.list_blobs(
                self.bucket_name,
                prefix=prefix or None,
                delimiter=delimiter,
                page_token=page_token,
                page_size=self.page_size,
            )
            page = next(iterator.pages, None)
            if page is None:
                return ListPage()
            items = [
                ObjectInfo(key=blob.name, size=int(blob.size or 0), last_modified=blob.updated)
                for blob in page
            ]
            common_prefixes = sorted(getattr(page, "prefixes", None) or [])
            return ListPage(items=items, common_prefixes=common_prefixes, next_token=iterator.next_page_token)
        except exceptions.GoogleAPICallError as e:
            raise TransportError(f"Failed to list objects under '{prefix}': {e}", cause=e) from e

    def get_object(self, key: str) -> bytes:
        try:
            return self._bucket.blob(key).download_as_bytes()
        except exceptions.NotFound as e:
            raise ObjectNotFound(key) from e
        except exceptions.GoogleAPICallError as e:
            raise TransportError(f"Failed to read '{key}': {e}", cause=e) from e

    def put_object(self, key, data, content_type) -> None:
        try:
            self._bucket.blob(key).upload_from_string(data, content_type=content_type)
        except exceptions.GoogleAPICallError as e:
            raise TransportError(f"Failed to write '{key}': {e}", cause=e) from e

    def delete_object(self, key: str) -> None:
        try:
            self._bucket.blob(key).delete()
        except exceptions.NotFound:
            pass
        except exceptions.GoogleAPICallError as e:
            raise TransportError(f"Failed to delete '{key}': {e}", cause=e) from e

    def presigned_read_url(self, key, ttl_seconds) -> str:
        blob = self._bucket.blob(key)
        return blob.generate_signed_url(
            version="v4",
            expiration=timedelta(seconds=ttl_seconds),
            method="GET",
        )

    def gs_uri(self, key: str) -> str:
        return f"gs://{self.bucket_name}/{key}"


@dataclass
class _StoredObject:
    data: bytes
    content_type: str
    last_modified: datetime


class InMemoryObjectStore(ObjectStore):
    """Mock backend used for local runs and tests."""

    def __init__(self, bucket_name: str = "mock-bucket", page_size: int = 1000):
        self.bucket_name = bucket_name
        self.page_size = page_size
        self._objects: Dict[str, _StoredObject] = {}
        self._lock = threading.Lock()

    def add(self, key: str, data: Union[bytes, str] = b"", last_modified: Optional[datetime] = None,
            content_type: str = "application/octet-stream") -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        with self._lock:
            self._objects[key] = _StoredObject(
                data=data,
                content_type=content_type,
                last_modified=last_modified or datetime.now(timezone.utc),
            )

    def clear(self) -> None:
        with self._lock:
            self._objects.clear()

    def list_objects(self, prefix, delimiter=None, page_token=None) -> ListPage:
        with self._lock:
            snapshot = {k: v for k, v in self._objects.items() if k.startswith(prefix or "")}

        # (sort key, is_prefix, value)
        entries = []
        seen_prefixes = set()
        for key in sorted(snapshot):
            rest = key[len(prefix or ""):]
            if delimiter and delimiter in rest:
                common = (prefix or "") + rest[: rest.index(delimiter) + len(delimiter)]
                if common not in seen_prefixes:
                    seen_prefixes.add(common)
                    entries.append((common, True, common))
                continue
            obj = snapshot[key]
            entries.append((key, False, ObjectInfo(key=key, size=len(obj.data), last_modified=obj.last_modified)))
        entries.sort(key=lambda e: e[0])

        offset = int(page_token) if page_token else 0
        chunk = entries[offset: offset + self.page_size]
        next_offset = offset + self.page_size
        return ListPage(
            items=[value for _, is_prefix, value in chunk if not is_prefix],
            common_prefixes=[value for _, is_prefix, value in chunk if is_prefix],
            next_token=str(next_offset) if next_offset < len(entries) else None,
        )

    def get_object(self, key: str) -> bytes:
        with self._lock:
            obj = self._objects.get(key)
        if obj is None:
            raise ObjectNotFound(key)
        return obj.data

    def content_type(self, key: str) -> Optional[str]:
        with self._lock:
            obj = self._objects.get(key)
        return obj.content_type if obj else None

    def put_object(self, key, data, content_type) -> None:
        self.add(key, data, content_type=content_type)

    def delete_object(self, key: str) -> None:
        with self._lock:
            self._objects.pop(key, None)

    def presigned_read_url(self, key, ttl_seconds) -> str:
        return f"https://storage.googleapis.com/{self.bucket_name}/{key}?signed=true&expires={int(ttl_seconds)}"


# ---------- Initialization ---------- #

PROJECT_ID = os.environ.get("GOOGLE_CLOUD_PROJECT") or os.environ.get("GCP_PROJECT")
USE_MOCK_STORAGE = os.environ.get("USE_MOCK_STORAGE", "0") == "1"
PRESIGN_TTL_SECONDS = int(os.environ.get("PRESIGN_TTL_SECONDS", "3600"))
LIST_PAGE_SIZE = int(os.environ.get("LIST_PAGE_SIZE", "1000"))

_bucket_uri = os.environ.get("RECORDINGS_BUCKET", "recordings")
if _bucket_uri.startswith("gs://"):
    BUCKET_NAME = _bucket_uri.replace("gs://", "").rstrip("/")
else:
    BUCKET_NAME = _bucket_uri


def _build_object_store() -> ObjectStore:
    if USE_MOCK_STORAGE:
        logger.warning("USE_MOCK_STORAGE=1, using in-memory object store")
        return InMemoryObjectStore(bucket_name="mock-bucket", page_size=LIST_PAGE_SIZE)

    if not PROJECT_ID:
        logger.warning("GOOGLE_CLOUD_PROJECT not set. Using default credentials project.")

    try:
        client = storage.Client(project=PROJECT_ID) if PROJECT_ID else storage.Client()
        return GCSObjectStore(client, BUCKET_NAME, page_size=LIST_PAGE_SIZE)
    except Exception as e:
        logger.warning(f"Failed to initialize Google Cloud Storage client: {e}")
        logger.warning("Falling back to in-memory object store.")
        return InMemoryObjectStore(bucket_name=BUCKET_NAME, page_size=LIST_PAGE_SIZE)


object_store: ObjectStore = _build_object_store()
