"""Unit tests for listing/resolver.py — ObjectResolver cache-first lookups."""

from unittest.mock import MagicMock

import pytest

from onedrive_index.errors import InvalidPath, NotFound, RemoteUnavailable, TypeMismatch
from onedrive_index.graph.models import ObjectRecord
from onedrive_index.graph.storage import RemoteResult
from onedrive_index.listing.cache import CacheAsideStore, MemoryCache
from onedrive_index.listing.paths import PathTranslator
from onedrive_index.listing.resolver import ObjectResolver

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_README = ObjectRecord(id="r1", name="readme.txt", size=10, download_url="https://dl/readme")
_PROJECTS = ObjectRecord(id="p1", name="Projects", child_count=1)


def _make_resolver(root: str = "/") -> tuple[ObjectResolver, MagicMock, MemoryCache]:
    """Return (resolver, mock_storage, cache)."""
    mock_storage = MagicMock()
    cache = MemoryCache()
    resolver = ObjectResolver(
        storage=mock_storage,
        store=CacheAsideStore(cache),
        paths=PathTranslator(root),
        ttl=600,
    )
    return resolver, mock_storage, cache


# ---------------------------------------------------------------------------
# resolve tests
# ---------------------------------------------------------------------------


class TestResolve:
    def test_served_from_cached_parent_listing_without_remote_call(self) -> None:
        resolver, mock_storage, cache = _make_resolver()
        cache.put("list:/Projects", {"readme.txt": _README}, 600)

        record = resolver.resolve("/Projects/readme.txt")

        assert record == _README
        assert mock_storage.mock_calls == []

    def test_parent_listing_key_includes_root(self) -> None:
        resolver, mock_storage, cache = _make_resolver(root="/Public")
        cache.put("list:/Public/Projects", {"readme.txt": _README}, 600)

        assert resolver.resolve("/Projects/readme.txt") == _README
        mock_storage.get_object_by_path.assert_not_called()

    def test_falls_back_to_direct_lookup_when_name_not_in_listing(self) -> None:
        resolver, mock_storage, cache = _make_resolver()
        cache.put("list:/Projects", {"other.txt": ObjectRecord(id="o", name="other.txt")}, 600)
        mock_storage.get_object_by_path.return_value = RemoteResult(ok=True, data=_README)

        record = resolver.resolve("/Projects/readme.txt")

        assert record == _README
        mock_storage.get_object_by_path.assert_called_once_with("/Projects/readme.txt")
        assert cache.get("file:/Projects/readme.txt") == _README

    def test_direct_lookup_when_parent_never_listed(self) -> None:
        resolver, mock_storage, _ = _make_resolver()
        mock_storage.get_object_by_path.return_value = RemoteResult(ok=True, data=_README)

        assert resolver.resolve("/Deep/Link/readme.txt") == _README

    def test_direct_lookup_is_cached(self) -> None:
        resolver, mock_storage, _ = _make_resolver()
        mock_storage.get_object_by_path.return_value = RemoteResult(ok=True, data=_README)

        resolver.resolve("/a/readme.txt")
        resolver.resolve("/a//readme.txt/")

        mock_storage.get_object_by_path.assert_called_once()

    def test_not_found(self) -> None:
        resolver, mock_storage, cache = _make_resolver()
        mock_storage.get_object_by_path.return_value = RemoteResult(
            ok=False, error="Item not found", status_code=404
        )

        with pytest.raises(NotFound):
            resolver.resolve("/missing.txt")
        assert cache.get("file:/missing.txt") is None

    def test_remote_failure_is_not_cached(self) -> None:
        resolver, mock_storage, cache = _make_resolver()
        mock_storage.get_object_by_path.return_value = RemoteResult(ok=False, error="timed out")

        with pytest.raises(RemoteUnavailable, match="timed out"):
            resolver.resolve("/a.txt")
        assert cache.get("file:/a.txt") is None

    def test_root_is_invalid(self) -> None:
        resolver, _, _ = _make_resolver()
        with pytest.raises(InvalidPath):
            resolver.resolve("/")


class TestResolveFile:
    def test_folder_raises_type_mismatch(self) -> None:
        resolver, _, cache = _make_resolver()
        cache.put("list:/", {"Projects": _PROJECTS}, 600)

        with pytest.raises(TypeMismatch):
            resolver.resolve_file("/Projects")

    def test_file_is_returned(self) -> None:
        resolver, _, cache = _make_resolver()
        cache.put("list:/Projects", {"readme.txt": _README}, 600)
        assert resolver.resolve_file("/Projects/readme.txt") == _README


# ---------------------------------------------------------------------------
# Folder item and children
# ---------------------------------------------------------------------------


class TestFolderLookups:
    def test_get_folder_item_cached_under_path_key(self) -> None:
        resolver, mock_storage, cache = _make_resolver(root="/Public")
        mock_storage.get_object_by_path.return_value = RemoteResult(ok=True, data=_PROJECTS)

        assert resolver.get_folder_item("/Projects/") == _PROJECTS
        mock_storage.get_object_by_path.assert_called_once_with("/Public/Projects")
        assert cache.get("path:/Public/Projects") == _PROJECTS

    def test_get_children_cached_under_list_key(self) -> None:
        resolver, mock_storage, cache = _make_resolver()
        children = {"readme.txt": _README}
        mock_storage.list_children_by_path.return_value = RemoteResult(ok=True, data=children)

        assert resolver.get_children("/Projects") == children
        assert resolver.get_children("/Projects") == children
        mock_storage.list_children_by_path.assert_called_once_with("/Projects")
        assert cache.get("list:/Projects") == children

    def test_get_children_failure_raises(self) -> None:
        resolver, mock_storage, _ = _make_resolver()
        mock_storage.list_children_by_path.return_value = RemoteResult(ok=False, error="503")

        with pytest.raises(RemoteUnavailable):
            resolver.get_children("/Projects")
