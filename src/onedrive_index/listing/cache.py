"""Cache backends and the cache-aside store used by the listing engine.

Two interchangeable backends implement the ``Cache`` protocol: an
in-process ``MemoryCache`` and a ``BlobCache`` backed by Azure Blob Storage
for deployments where several function instances share one cache.
"""

from __future__ import annotations

import contextlib
import json
import logging
import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol, TypeVar
from urllib.parse import quote

from azure.core.exceptions import ResourceNotFoundError
from azure.storage.blob import BlobServiceClient

from onedrive_index.graph.models import ObjectRecord

if TYPE_CHECKING:
    from onedrive_index.config import AppConfig

logger = logging.getLogger(__name__)

V = TypeVar("V")

DEFAULT_CACHE_CONTAINER = "onedrive-index-cache"
DEFAULT_CACHE_BLOB_PREFIX = "cache/"
DEFAULT_SWEEP_EVERY = 256

# Cache key namespaces
PATH_PREFIX = "path:"
LIST_PREFIX = "list:"
FILE_PREFIX = "file:"


class Cache(Protocol):
    """Key/value cache with per-entry TTL and per-key atomic get/put."""

    def has(self, key: str) -> bool: ...

    def get(self, key: str) -> Any | None: ...

    def put(self, key: str, value: Any, ttl: int) -> None: ...

    def forget(self, key: str) -> None: ...

    def remember(self, key: str, ttl: int, populate: Callable[[], Any]) -> Any: ...


class SessionStore(Protocol):
    """Session-scoped key/value store."""

    def get(self, key: str) -> Any | None: ...

    def put(self, key: str, value: Any) -> None: ...

    def forget(self, key: str) -> None: ...


class MemoryCache:
    """Thread-safe in-process cache.

    Expired entries are dropped when read, and every ``sweep_every`` writes
    a sweep drops the expired entries nobody read again.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        sweep_every: int = DEFAULT_SWEEP_EVERY,
    ) -> None:
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._sweep_every = sweep_every
        self._writes = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def put(self, key: str, value: Any, ttl: int) -> None:
        with self._lock:
            now = self._clock()
            self._entries[key] = (now + ttl, value)
            self._writes += 1
            if self._writes >= self._sweep_every:
                self._writes = 0
                self._sweep(now)

    def forget(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def remember(self, key: str, ttl: int, populate: Callable[[], Any]) -> Any:
        # The lock is not held across populate so slow remote calls never
        # block readers of other keys.
        value = self.get(key)
        if value is None:
            value = populate()
            self.put(key, value, ttl)
        return value

    def _sweep(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("[memory_cache] swept expired entries; count:%d", len(expired))


class BlobCache:
    """Cache backed by Azure Blob Storage.

    Each entry is a JSON blob holding the value and its absolute expiry.
    Expired blobs are treated as misses and overwritten on the next put;
    there is no background sweep.
    """

    def __init__(
        self,
        storage_connection_string: str,
        container: str = DEFAULT_CACHE_CONTAINER,
        blob_prefix: str = DEFAULT_CACHE_BLOB_PREFIX,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialise the blob cache.

        Args:
            storage_connection_string: Azure Storage connection string.
            container: Blob container name for cache storage.
            blob_prefix: Prefix for cache blob paths (e.g. "cache/").
            clock: Source of the current Unix time, injectable for tests.
        """
        self._blob_service = BlobServiceClient.from_connection_string(storage_connection_string)
        self._container = container
        self._blob_prefix = blob_prefix
        self._clock = clock

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> Any | None:
        blob_client = self._blob_client(key)
        try:
            data = blob_client.download_blob().readall()
        except ResourceNotFoundError:
            logger.info("[blob_cache] cache miss; key:%s", key)
            return None
        envelope = json.loads(data.decode("utf-8"))
        if envelope.get("expires_at", 0) <= self._clock():
            logger.info("[blob_cache] cache entry expired; key:%s", key)
            return None
        logger.info("[blob_cache] cache hit; key:%s", key)
        return decode_value(envelope)

    def put(self, key: str, value: Any, ttl: int) -> None:
        envelope = encode_value(value)
        envelope["expires_at"] = self._clock() + ttl
        container_client = self._blob_service.get_container_client(self._container)
        with contextlib.suppress(Exception):
            container_client.create_container()
        blob_client = container_client.get_blob_client(self._blob_path(key))
        blob_client.upload_blob(json.dumps(envelope).encode("utf-8"), overwrite=True)
        logger.info("[blob_cache] stored; key:%s;ttl:%d", key, ttl)

    def forget(self, key: str) -> None:
        with contextlib.suppress(ResourceNotFoundError):
            self._blob_client(key).delete_blob()

    def remember(self, key: str, ttl: int, populate: Callable[[], Any]) -> Any:
        value = self.get(key)
        if value is None:
            value = populate()
            self.put(key, value, ttl)
        return value

    def _blob_path(self, key: str) -> str:
        # Encoded so root keys such as "list:/" never end in a slash
        return f"{self._blob_prefix}{quote(key, safe='')}"

    def _blob_client(self, key: str) -> Any:
        container_client = self._blob_service.get_container_client(self._container)
        return container_client.get_blob_client(self._blob_path(key))


def encode_value(value: Any) -> dict[str, Any]:
    """Wrap a cache value in a JSON-safe envelope tagged with its type."""
    if isinstance(value, ObjectRecord):
        return {"kind": "record", "value": value.to_graph()}
    if isinstance(value, dict) and value and all(
        isinstance(v, ObjectRecord) for v in value.values()
    ):
        return {"kind": "children", "value": [v.to_graph() for v in value.values()]}
    return {"kind": "json", "value": value}


def decode_value(envelope: dict[str, Any]) -> Any:
    """Inverse of ``encode_value``."""
    kind = envelope.get("kind")
    value = envelope.get("value")
    if kind == "record":
        return ObjectRecord.from_graph(value)
    if kind == "children":
        records = [ObjectRecord.from_graph(raw) for raw in value]
        return {record.name: record for record in records}
    return value


class CacheSessionStore:
    """Session store implemented as a namespaced view over a cache.

    Keys are scoped by session id, so one visitor's credentials are never
    visible to another.
    """

    def __init__(self, cache: Cache, session_id: str, ttl: int) -> None:
        self._cache = cache
        self._session_id = session_id
        self._ttl = ttl

    def get(self, key: str) -> Any | None:
        return self._cache.get(self._key(key))

    def put(self, key: str, value: Any) -> None:
        self._cache.put(self._key(key), value, self._ttl)

    def forget(self, key: str) -> None:
        self._cache.forget(self._key(key))

    def _key(self, key: str) -> str:
        return f"session:{self._session_id}:{key}"


class CacheAsideStore:
    """Get-or-populate wrapper over a ``Cache``.

    A populate failure propagates to the caller unchanged and nothing is
    stored, so a transient outage is never remembered as absence.
    Concurrent misses on the same key may both populate; the last write wins.
    """

    def __init__(self, cache: Cache) -> None:
        self._cache = cache

    def peek(self, key: str) -> Any | None:
        """Return the cached value for ``key`` without populating."""
        return self._cache.get(key)

    def get_or_populate(self, key: str, ttl: int, populate: Callable[[], V]) -> V:
        cached = self._cache.get(key)
        if cached is not None:
            logger.info("[get_or_populate] cache hit; key:%s", key)
            return cached  # type: ignore[no-any-return]
        logger.info("[get_or_populate] cache miss; key:%s", key)
        value = populate()
        self._cache.put(key, value, ttl)
        return value


def cache_from_config(config: AppConfig) -> Cache:
    """Construct the configured cache backend.

    Uses Azure Blob Storage when a storage connection string is configured,
    otherwise an in-process ``MemoryCache``.

    Args:
        config: Application configuration instance.

    Returns:
        A Cache implementation.
    """
    if config.storage_connection_string:
        return BlobCache(
            storage_connection_string=config.storage_connection_string,
            container=config.cache_container,
            blob_prefix=config.cache_blob_prefix,
        )
    return MemoryCache()
