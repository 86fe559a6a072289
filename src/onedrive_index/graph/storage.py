"""Drive-level storage operations over the Graph client.

Every operation returns a ``RemoteResult`` instead of raising, so the
listing engine can decide per call site whether a failure is a missing
item or an unavailable remote.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar
from urllib.parse import quote, unquote

from onedrive_index.graph.client import (
    GraphApiError,
    GraphAuthError,
    GraphClient,
    GraphConnectionError,
)
from onedrive_index.graph.models import (
    FIELD_NAME,
    FIELD_PARENT_REFERENCE,
    FIELD_PATH,
    FIELD_URL,
    ITEM_EXPAND,
    ITEM_SELECT,
    ODATA_NEXT_LINK,
    ODATA_VALUE,
    ObjectRecord,
    children_from_graph,
)

if TYPE_CHECKING:
    from onedrive_index.config import AppConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Graph reports paths relative to the drive as "/drive/root:/a/b"
DRIVE_ROOT_PREFIX = "/drive/root:"
STATUS_NOT_FOUND = 404


@dataclass(frozen=True)
class RemoteResult(Generic[T]):
    """Outcome of a storage call: ``data`` when ``ok``, otherwise ``error``."""

    ok: bool
    data: T | None = None
    error: str = ""
    status_code: int = 0

    @property
    def not_found(self) -> bool:
        return not self.ok and self.status_code == STATUS_NOT_FOUND


class RemoteStorage:
    """OneDrive operations for a single user's drive."""

    def __init__(self, graph_client: GraphClient, drive_user: str) -> None:
        """Initialise the storage facade.

        Args:
            graph_client: Authenticated GraphClient instance.
            drive_user: UPN or object ID of the OneDrive user. Required when
                using app permissions where /me is not available.
        """
        self._graph = graph_client
        self._drive = f"/users/{drive_user}/drive"

    def get_object_by_path(
        self, path: str, select: str = ITEM_SELECT
    ) -> RemoteResult[ObjectRecord]:
        """Fetch one drive item by its origin path."""
        url = f"{self._item_url(path)}?$select={select}&$expand={ITEM_EXPAND}"
        try:
            raw = self._graph.get(url)
        except (GraphApiError, GraphAuthError, GraphConnectionError) as exc:
            return self._failure("get_object_by_path", path, exc)
        return RemoteResult(ok=True, data=ObjectRecord.from_graph(raw))

    def list_children_by_path(
        self, path: str, select: str = ITEM_SELECT
    ) -> RemoteResult[dict[str, ObjectRecord]]:
        """Fetch all children of a folder, following ``@odata.nextLink`` pages."""
        next_url: str | None = (
            f"{self._children_url(path)}?$select={select}&$expand={ITEM_EXPAND}"
        )
        items: list[dict[str, Any]] = []
        try:
            while next_url is not None:
                response = self._graph.get(next_url)
                items.extend(response.get(ODATA_VALUE, []))
                next_url = response.get(ODATA_NEXT_LINK)
        except (GraphApiError, GraphAuthError, GraphConnectionError) as exc:
            return self._failure("list_children_by_path", path, exc)
        logger.info("[list_children_by_path] fetched children; path:%s;count:%d", path, len(items))
        return RemoteResult(ok=True, data=children_from_graph(items))

    def get_thumbnail(self, item_id: str, size: str) -> RemoteResult[dict[str, str]]:
        """Fetch the thumbnail of an item at a named size (small/medium/large)."""
        url = f"{self._drive}/items/{item_id}/thumbnails/0/{size}"
        try:
            raw = self._graph.get(url)
        except (GraphApiError, GraphAuthError, GraphConnectionError) as exc:
            return self._failure("get_thumbnail", item_id, exc)
        return RemoteResult(ok=True, data={FIELD_URL: str(raw.get(FIELD_URL, ""))})

    def search_by_keyword(self, root_path: str, keyword: str) -> RemoteResult[list[ObjectRecord]]:
        """Search below ``root_path`` for items matching ``keyword``."""
        query = quote(keyword.replace("'", "''"), safe="")
        base = self._item_url(root_path)
        next_url: str | None = f"{base}/search(q='{query}')"
        items: list[ObjectRecord] = []
        try:
            while next_url is not None:
                response = self._graph.get(next_url)
                items.extend(ObjectRecord.from_graph(raw) for raw in response.get(ODATA_VALUE, []))
                next_url = response.get(ODATA_NEXT_LINK)
        except (GraphApiError, GraphAuthError, GraphConnectionError) as exc:
            return self._failure("search_by_keyword", root_path, exc)
        logger.info("[search_by_keyword] search complete; keyword:%s;count:%d", keyword, len(items))
        return RemoteResult(ok=True, data=items)

    def resolve_id_to_path(self, item_id: str, root: str = "/") -> RemoteResult[dict[str, str]]:
        """Translate an item id into its drive path, relative to ``root``.

        The returned path keeps the root prefix; stripping it is the
        caller's concern.
        """
        try:
            raw = self._graph.get(f"{self._drive}/items/{item_id}")
        except (GraphApiError, GraphAuthError, GraphConnectionError) as exc:
            return self._failure("resolve_id_to_path", item_id, exc)
        parent = raw.get(FIELD_PARENT_REFERENCE, {}).get(FIELD_PATH, DRIVE_ROOT_PREFIX)
        # parentReference.path is percent-encoded
        parent = unquote(parent.split(":", 1)[1]) if ":" in parent else ""
        path = f"{parent.rstrip('/')}/{raw.get(FIELD_NAME, '')}"
        return RemoteResult(ok=True, data={FIELD_PATH: path})

    def fetch_content(self, url: str) -> RemoteResult[bytes]:
        """Download the body behind a ``@microsoft.graph.downloadUrl``."""
        try:
            body = self._graph.get_content(url)
        except (GraphApiError, GraphConnectionError) as exc:
            return self._failure("fetch_content", "<download-url>", exc)
        return RemoteResult(ok=True, data=body)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _item_url(self, path: str) -> str:
        encoded = quote(path.strip("/"))
        if not encoded:
            return f"{self._drive}/root"
        return f"{self._drive}/root:/{encoded}:"

    def _children_url(self, path: str) -> str:
        return f"{self._item_url(path)}/children"

    @staticmethod
    def _failure(operation: str, target: str, exc: Exception) -> RemoteResult[Any]:
        status_code = exc.status_code if isinstance(exc, GraphApiError) else 0
        logger.warning(
            "[%s] remote call failed; target:%s;status:%d;error:%s",
            operation,
            target,
            status_code,
            exc,
        )
        return RemoteResult(ok=False, error=str(exc), status_code=status_code)


def remote_storage_from_config(graph_client: GraphClient, config: AppConfig) -> RemoteStorage:
    """Construct a RemoteStorage from application configuration.

    Args:
        graph_client: Authenticated GraphClient instance.
        config: Application configuration instance.

    Returns:
        Configured RemoteStorage instance.
    """
    return RemoteStorage(graph_client=graph_client, drive_user=config.drive_user)
