"""Resolve virtual paths to drive items through the cache."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from onedrive_index.errors import NotFound, RemoteUnavailable, TypeMismatch
from onedrive_index.listing.cache import FILE_PREFIX, LIST_PREFIX, PATH_PREFIX

if TYPE_CHECKING:
    from onedrive_index.graph.models import ObjectRecord
    from onedrive_index.graph.storage import RemoteResult, RemoteStorage
    from onedrive_index.listing.cache import CacheAsideStore
    from onedrive_index.listing.paths import PathTranslator

logger = logging.getLogger(__name__)


class ObjectResolver:
    """Looks up drive items and folder children, cache first.

    A file lookup first consults the parent folder's cached listing, which
    is populated whenever that folder is browsed, and only falls back to a
    direct remote lookup for deep links into folders never listed.
    """

    def __init__(
        self,
        storage: RemoteStorage,
        store: CacheAsideStore,
        paths: PathTranslator,
        ttl: int,
    ) -> None:
        """Initialise the resolver.

        Args:
            storage: Remote storage facade.
            store: Cache-aside store shared across requests.
            paths: Path translator configured with the storage root.
            ttl: Cache TTL in seconds for every entry this resolver writes.
        """
        self._storage = storage
        self._store = store
        self._paths = paths
        self._ttl = ttl

    def resolve(self, virtual_path: str) -> ObjectRecord:
        """Resolve a virtual path to its drive item.

        Raises:
            InvalidPath: If the path is the root or otherwise has no name.
            NotFound: If no item exists at the path.
            RemoteUnavailable: If the remote lookup fails.
        """
        parent, name = self._paths.split_parent(virtual_path)
        children = self._store.peek(LIST_PREFIX + self._paths.to_origin_path(parent))
        if children and name in children:
            logger.info("[resolve] served from parent listing; parent:%s;name:%s", parent, name)
            return children[name]  # type: ignore[no-any-return]

        origin = self._paths.to_origin_path(virtual_path)
        return self._store.get_or_populate(
            FILE_PREFIX + origin,
            self._ttl,
            lambda: _unwrap(self._storage.get_object_by_path(origin), origin),
        )

    def resolve_file(self, virtual_path: str) -> ObjectRecord:
        """Resolve a path that must name a file.

        Raises:
            TypeMismatch: If the path names a folder.
        """
        record = self.resolve(virtual_path)
        if record.is_folder:
            raise TypeMismatch(f"Expected a file but found a folder: {virtual_path}")
        return record

    def get_folder_item(self, virtual_path: str) -> ObjectRecord:
        """Fetch the item for a listing request (file or folder), cached under ``path:``."""
        origin = self._paths.to_origin_path(virtual_path)
        return self._store.get_or_populate(
            PATH_PREFIX + origin,
            self._ttl,
            lambda: _unwrap(self._storage.get_object_by_path(origin), origin),
        )

    def get_children(self, virtual_path: str) -> dict[str, ObjectRecord]:
        """Fetch the name → item mapping of a folder's children, cached under ``list:``."""
        origin = self._paths.to_origin_path(virtual_path)
        return self._store.get_or_populate(
            LIST_PREFIX + origin,
            self._ttl,
            lambda: _unwrap(self._storage.list_children_by_path(origin), origin),
        )


def _unwrap(result: RemoteResult[Any], origin: str) -> Any:
    """Return the data of a successful result or raise the matching error."""
    if result.ok and result.data is not None:
        return result.data
    if result.not_found or result.ok:
        raise NotFound(f"Nothing found at {origin}")
    raise RemoteUnavailable(result.error or f"Remote lookup failed for {origin}")
