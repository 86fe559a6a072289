"""Unit tests for listing/processor.py — sort, folder-first, filtering, pagination."""

import pytest

from onedrive_index.graph.models import ObjectRecord
from onedrive_index.listing.processor import (
    ListProcessor,
    paginate,
    parse_order,
    sort_records,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _file(name: str, size: int = 0, modified: str = "", **kwargs: object) -> ObjectRecord:
    return ObjectRecord(id=name, name=name, size=size, last_modified=modified, **kwargs)  # type: ignore[arg-type]


def _folder(name: str, child_count: int = 0) -> ObjectRecord:
    return ObjectRecord(id=name, name=name, child_count=child_count)


def _children(*records: ObjectRecord) -> dict[str, ObjectRecord]:
    return {record.name: record for record in records}


def _names(records: list[ObjectRecord]) -> list[str]:
    return [record.name for record in records]


# ---------------------------------------------------------------------------
# parse_order tests
# ---------------------------------------------------------------------------


class TestParseOrder:
    def test_field_and_direction(self) -> None:
        assert parse_order("size,DESC") == ("size", "desc")

    def test_field_only(self) -> None:
        assert parse_order("name") == ("name", "")

    def test_none(self) -> None:
        assert parse_order(None) == ("", "")


# ---------------------------------------------------------------------------
# sort_records tests
# ---------------------------------------------------------------------------


class TestSortRecords:
    def test_folder_first_by_child_count_descending(self) -> None:
        records = [_file("a"), _folder("b", 0), _folder("c", 3)]
        assert _names(sort_records(records, "", "")) == ["c", "b", "a"]

    def test_primary_sort_ascending_by_size(self) -> None:
        records = [_file("big", 300), _file("small", 1), _file("mid", 20)]
        assert _names(sort_records(records, "size", "")) == ["small", "mid", "big"]

    def test_primary_sort_descending(self) -> None:
        records = [_file("a"), _file("c"), _file("b")]
        assert _names(sort_records(records, "name", "desc")) == ["c", "b", "a"]

    def test_modified_alias(self) -> None:
        records = [_file("new", modified="2024-05-01"), _file("old", modified="2020-01-01")]
        assert _names(sort_records(records, "modified", "")) == ["old", "new"]
        assert _names(sort_records(records, "lastModifiedDateTime", "")) == ["old", "new"]

    def test_unknown_field_keeps_remote_order(self) -> None:
        records = [_file("z"), _file("a"), _file("m")]
        assert _names(sort_records(records, "colour", "desc")) == ["z", "a", "m"]

    def test_folder_pass_is_stable_over_primary_sort(self) -> None:
        records = [_file("b.txt"), _folder("Zeta", 2), _file("a.txt"), _folder("Alpha", 2)]
        assert _names(sort_records(records, "name", "")) == ["Alpha", "Zeta", "a.txt", "b.txt"]

    def test_empty_folders_still_precede_files(self) -> None:
        records = [_file("a.txt"), _folder("empty", 0)]
        assert _names(sort_records(records, "name", "")) == ["empty", "a.txt"]


# ---------------------------------------------------------------------------
# paginate tests
# ---------------------------------------------------------------------------


class TestPaginate:
    _ITEMS = [_file(f"f{i:02d}") for i in range(1, 46)]

    def test_first_page(self) -> None:
        page = paginate(self._ITEMS, 20, 1)
        assert _names(page.items) == [f"f{i:02d}" for i in range(1, 21)]
        assert page.total == 45
        assert page.last_page == 3

    def test_last_partial_page(self) -> None:
        page = paginate(self._ITEMS, 20, 3)
        assert _names(page.items) == [f"f{i:02d}" for i in range(41, 46)]
        assert page.total == 45

    def test_page_past_end_is_empty(self) -> None:
        page = paginate(self._ITEMS, 20, 9)
        assert page.items == []
        assert page.total == 45

    def test_page_below_one_is_clamped(self) -> None:
        assert paginate(self._ITEMS, 20, 0).page == 1
        assert paginate(self._ITEMS, 20, -3).items == self._ITEMS[:20]

    @pytest.mark.parametrize("limit", [0, -1])
    def test_non_positive_limit_disables_pagination(self, limit: int) -> None:
        page = paginate(self._ITEMS, limit, 2)
        assert len(page.items) == 45
        assert page.last_page == 1

    def test_empty_input(self) -> None:
        page = paginate([], 20, 1)
        assert page.items == []
        assert page.total == 0
        assert page.last_page == 1


# ---------------------------------------------------------------------------
# ListProcessor.process tests
# ---------------------------------------------------------------------------


class TestListProcessor:
    def test_package_bundles_are_removed(self) -> None:
        children = _children(_file("notes", package_type="oneNote"), _file("a.txt"))
        result = ListProcessor().process(children, is_authenticated=True)
        assert _names(result.page.items) == ["a.txt"]

    def test_unauthenticated_hides_control_files(self) -> None:
        children = _children(
            _file("README.md"), _file(".password"), _file("HEAD.md"), _file(".deny"), _file("a.txt")
        )
        result = ListProcessor().process(children, is_authenticated=False)
        assert _names(result.page.items) == ["a.txt"]
        assert result.page.total == 1

    def test_authenticated_sees_control_files(self) -> None:
        children = _children(_file("README.md"), _file(".password"), _file("a.txt"))
        result = ListProcessor().process(children, sort_field="name", is_authenticated=True)
        assert _names(result.page.items) == [".password", "README.md", "a.txt"]

    def test_head_and_readme_extracted_before_control_filter(self) -> None:
        readme = _file("README.md", download_url="https://dl/readme")
        head = _file("HEAD.md", download_url="https://dl/head")
        result = ListProcessor().process(_children(readme, head, _file("a.txt")))
        assert result.readme == readme
        assert result.head == head
        assert "README.md" not in _names(result.page.items)

    def test_head_and_readme_absent(self) -> None:
        result = ListProcessor().process(_children(_file("a.txt")))
        assert result.head is None
        assert result.readme is None

    def test_has_images(self) -> None:
        processor = ListProcessor()
        assert processor.process(_children(_file("cat.png"))).has_images is True
        assert processor.process(_children(_file("cat.txt"))).has_images is False

    def test_empty_input(self) -> None:
        result = ListProcessor().process({})
        assert result.page.items == []
        assert result.page.total == 0

    def test_pagination_applies_after_filtering(self) -> None:
        records = [_file(f"f{i:02d}") for i in range(1, 46)] + [_file("README.md")]
        result = ListProcessor().process(_children(*records), sort_field="name", limit=20, page=3)
        assert _names(result.page.items) == [f"f{i:02d}" for i in range(41, 46)]
        assert result.page.total == 45

    def test_idempotent_on_own_output(self) -> None:
        processor = ListProcessor()
        children = _children(
            _file("b.txt", 5),
            _folder("Docs", 2),
            _file("a.txt", 9),
            _folder("Empty", 0),
            _file("README.md"),
            _file("nb", package_type="oneNote"),
        )
        params = {"sort_field": "size", "sort_direction": "desc", "limit": 20, "page": 1}

        first = processor.process(children, **params)  # type: ignore[arg-type]
        second = processor.process(_children(*first.page.items), **params)  # type: ignore[arg-type]

        assert second.page == first.page
