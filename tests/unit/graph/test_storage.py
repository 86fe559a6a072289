"""Unit tests for graph/storage.py — RemoteStorage operations and result shape."""

from unittest.mock import MagicMock

from onedrive_index.graph.client import GraphApiError, GraphAuthError, GraphConnectionError
from onedrive_index.graph.storage import RemoteStorage, remote_storage_from_config

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_DRIVE = "/users/testuser@contoso.onmicrosoft.com/drive"


def _make_storage() -> tuple[RemoteStorage, MagicMock]:
    """Return (storage, mock_graph_client)."""
    mock_graph = MagicMock()
    storage = RemoteStorage(graph_client=mock_graph, drive_user="testuser@contoso.onmicrosoft.com")
    return storage, mock_graph


# ---------------------------------------------------------------------------
# get_object_by_path tests
# ---------------------------------------------------------------------------


class TestGetObjectByPath:
    def test_root_uses_drive_root_url(self) -> None:
        storage, mock_graph = _make_storage()
        mock_graph.get.return_value = {"id": "root", "name": "root", "folder": {"childCount": 2}}

        result = storage.get_object_by_path("/")

        assert result.ok is True
        assert result.data is not None and result.data.is_folder
        url = mock_graph.get.call_args[0][0]
        assert url.startswith(f"{_DRIVE}/root?$select=")
        assert "$expand=thumbnails" in url

    def test_nested_path_is_percent_encoded(self) -> None:
        storage, mock_graph = _make_storage()
        mock_graph.get.return_value = {"id": "f", "name": "a b.txt", "file": {}}

        storage.get_object_by_path("/Docs/a b.txt")

        url = mock_graph.get.call_args[0][0]
        assert url.startswith(f"{_DRIVE}/root:/Docs/a%20b.txt:?$select=")

    def test_not_found_result(self) -> None:
        storage, mock_graph = _make_storage()
        mock_graph.get.side_effect = GraphApiError(404, "Item not found", "itemNotFound")

        result = storage.get_object_by_path("/missing")

        assert result.ok is False
        assert result.not_found is True
        assert result.status_code == 404
        assert "Item not found" in result.error

    def test_connection_error_is_not_not_found(self) -> None:
        storage, mock_graph = _make_storage()
        mock_graph.get.side_effect = GraphConnectionError("timed out")

        result = storage.get_object_by_path("/Docs")

        assert result.ok is False
        assert result.not_found is False
        assert result.status_code == 0

    def test_auth_error_becomes_failed_result(self) -> None:
        storage, mock_graph = _make_storage()
        mock_graph.get.side_effect = GraphAuthError("bad secret")

        result = storage.get_object_by_path("/Docs")

        assert result.ok is False
        assert "bad secret" in result.error


# ---------------------------------------------------------------------------
# list_children_by_path tests
# ---------------------------------------------------------------------------


class TestListChildrenByPath:
    def test_follows_next_link(self) -> None:
        storage, mock_graph = _make_storage()
        mock_graph.get.side_effect = [
            {"value": [{"id": "1", "name": "a.txt", "file": {}}], "@odata.nextLink": "https://next"},
            {"value": [{"id": "2", "name": "b", "folder": {"childCount": 0}}]},
        ]

        result = storage.list_children_by_path("/Docs")

        assert result.ok is True
        assert result.data is not None
        assert list(result.data) == ["a.txt", "b"]
        assert mock_graph.get.call_args_list[0][0][0].startswith(
            f"{_DRIVE}/root:/Docs:/children?$select="
        )
        assert mock_graph.get.call_args_list[1][0][0] == "https://next"

    def test_root_children_url(self) -> None:
        storage, mock_graph = _make_storage()
        mock_graph.get.return_value = {"value": []}

        result = storage.list_children_by_path("/")

        assert result.ok is True
        assert result.data == {}
        assert mock_graph.get.call_args[0][0].startswith(f"{_DRIVE}/root/children?")

    def test_failure_mid_pagination_returns_error(self) -> None:
        storage, mock_graph = _make_storage()
        mock_graph.get.side_effect = [
            {"value": [], "@odata.nextLink": "https://next"},
            GraphApiError(503, "Service unavailable"),
        ]

        result = storage.list_children_by_path("/Docs")

        assert result.ok is False
        assert result.status_code == 503


# ---------------------------------------------------------------------------
# Thumbnails, search, id resolution, content
# ---------------------------------------------------------------------------


class TestGetThumbnail:
    def test_returns_url(self) -> None:
        storage, mock_graph = _make_storage()
        mock_graph.get.return_value = {"url": "https://thumb", "width": 800, "height": 600}

        result = storage.get_thumbnail("item-1", "large")

        assert result.ok is True
        assert result.data == {"url": "https://thumb"}
        mock_graph.get.assert_called_once_with(f"{_DRIVE}/items/item-1/thumbnails/0/large")


class TestSearchByKeyword:
    def test_escapes_quotes_and_parses_items(self) -> None:
        storage, mock_graph = _make_storage()
        mock_graph.get.return_value = {"value": [{"id": "1", "name": "o'neil.txt", "file": {}}]}

        result = storage.search_by_keyword("/", "o'neil")

        assert result.ok is True
        assert result.data is not None and result.data[0].name == "o'neil.txt"
        mock_graph.get.assert_called_once_with(f"{_DRIVE}/root/search(q='o%27%27neil')")

    def test_search_below_root_folder(self) -> None:
        storage, mock_graph = _make_storage()
        mock_graph.get.return_value = {"value": []}

        storage.search_by_keyword("/Public", "report")

        mock_graph.get.assert_called_once_with(f"{_DRIVE}/root:/Public:/search(q='report')")


class TestResolveIdToPath:
    def test_builds_path_from_parent_reference(self) -> None:
        storage, mock_graph = _make_storage()
        mock_graph.get.return_value = {
            "name": "report.pdf",
            "parentReference": {"path": "/drive/root:/Public/Docs"},
        }

        result = storage.resolve_id_to_path("item-1", "/Public")

        assert result.ok is True
        assert result.data == {"path": "/Public/Docs/report.pdf"}

    def test_item_directly_under_drive_root(self) -> None:
        storage, mock_graph = _make_storage()
        mock_graph.get.return_value = {"name": "a.txt", "parentReference": {"path": "/drive/root:"}}

        result = storage.resolve_id_to_path("item-1")

        assert result.data == {"path": "/a.txt"}

    def test_parent_path_is_decoded_but_name_is_literal(self) -> None:
        storage, mock_graph = _make_storage()
        mock_graph.get.return_value = {
            "name": "a%41.txt",
            "parentReference": {"path": "/drive/root:/My%20Files"},
        }

        result = storage.resolve_id_to_path("item-1")

        assert result.data == {"path": "/My Files/a%41.txt"}


class TestFetchContent:
    def test_returns_bytes(self) -> None:
        storage, mock_graph = _make_storage()
        mock_graph.get_content.return_value = b"# Title"

        result = storage.fetch_content("https://download")

        assert result.ok is True
        assert result.data == b"# Title"

    def test_expired_url_is_failed_result(self) -> None:
        storage, mock_graph = _make_storage()
        mock_graph.get_content.side_effect = GraphApiError(401, "expired")

        result = storage.fetch_content("https://download")

        assert result.ok is False


class TestRemoteStorageFromConfig:
    def test_uses_drive_user(self) -> None:
        config = MagicMock()
        config.drive_user = "someone@contoso.com"

        storage = remote_storage_from_config(MagicMock(), config)

        assert storage._drive == "/users/someone@contoso.com/drive"
