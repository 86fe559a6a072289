"""Listing post-processing: sort, folder-first ordering, filtering, pagination."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from onedrive_index.graph.models import ObjectRecord

logger = logging.getLogger(__name__)

HEAD_FILENAME = "HEAD.md"
README_FILENAME = "README.md"
# Hidden from visitors who are not signed in
CONTROL_FILENAMES = frozenset({README_FILENAME, HEAD_FILENAME, ".password", ".deny"})

SORT_DESC = "desc"

_SORT_KEYS: dict[str, Callable[[ObjectRecord], Any]] = {
    "name": lambda record: record.name,
    "size": lambda record: record.size,
    "lastModifiedDateTime": lambda record: record.last_modified,
}
_SORT_ALIASES = {
    "modified": "lastModifiedDateTime",
    "time": "lastModifiedDateTime",
    "last_modified": "lastModifiedDateTime",
}


@dataclass(frozen=True)
class ListingPage:
    """One page of a sorted, filtered listing."""

    items: list[ObjectRecord]
    total: int
    page: int
    limit: int

    @property
    def last_page(self) -> int:
        if self.limit <= 0 or self.total == 0:
            return 1
        return math.ceil(self.total / self.limit)


@dataclass(frozen=True)
class ProcessedListing:
    """A listing page plus the records rendered outside the item table."""

    page: ListingPage
    head: ObjectRecord | None = None
    readme: ObjectRecord | None = None
    has_images: bool = False


def parse_order(order_by: str | None) -> tuple[str, str]:
    """Split an ``orderBy`` query value such as ``"size,desc"`` into (field, direction)."""
    field_name, _, direction = (order_by or "").partition(",")
    return field_name.strip(), direction.strip().lower()


def sort_records(
    records: Sequence[ObjectRecord], sort_field: str, sort_direction: str
) -> list[ObjectRecord]:
    """Sort by the requested field, then group folders before files.

    Folders come first ordered by child count descending, files after every
    folder (including empty ones). Both passes are stable, so ties keep the
    primary order and an unknown ``sort_field`` keeps the remote order.
    """
    key = _SORT_KEYS.get(_SORT_ALIASES.get(sort_field, sort_field))
    ordered = list(records)
    if key is not None:
        ordered.sort(key=key, reverse=sort_direction.lower() == SORT_DESC)
    elif sort_field:
        logger.debug("[sort_records] unknown sort field ignored; field:%s", sort_field)
    ordered.sort(key=_folder_first_key)
    return ordered


def _folder_first_key(record: ObjectRecord) -> tuple[int, int]:
    if record.child_count is None:
        return (1, 0)
    return (0, -record.child_count)


def paginate(items: Sequence[ObjectRecord], limit: int, page: int) -> ListingPage:
    """Slice one page out of ``items``.

    ``limit <= 0`` disables pagination and returns everything; pages past
    the end are empty. ``total`` always counts the unpaginated sequence.
    """
    total = len(items)
    if limit <= 0:
        return ListingPage(items=list(items), total=total, page=1, limit=0)
    page = max(page, 1)
    offset = (page - 1) * limit
    return ListingPage(items=list(items[offset : offset + limit]), total=total, page=page, limit=limit)


class ListProcessor:
    """Turns a raw name → record mapping into a page for display."""

    def process(
        self,
        children: Mapping[str, ObjectRecord],
        sort_field: str = "",
        sort_direction: str = "",
        is_authenticated: bool = False,
        limit: int = 20,
        page: int = 1,
    ) -> ProcessedListing:
        """Sort, filter and paginate a folder's children.

        The steps run in a fixed order: primary sort, folder-first pass,
        package filtering, HEAD/README extraction, control-file filtering
        for anonymous visitors, then pagination. HEAD.md and README.md are
        taken from the set before control files are removed, because that
        filter would otherwise hide them from the code that renders them.
        """
        ordered = sort_records(list(children.values()), sort_field, sort_direction)
        has_images = any(record.is_image for record in ordered)

        browsable = [record for record in ordered if not record.is_package]
        by_name = {record.name: record for record in browsable}
        head = by_name.get(HEAD_FILENAME)
        readme = by_name.get(README_FILENAME)

        if is_authenticated:
            visible = browsable
        else:
            visible = [record for record in browsable if record.name not in CONTROL_FILENAMES]

        return ProcessedListing(
            page=paginate(visible, limit, page),
            head=head,
            readme=readme,
            has_images=has_images,
        )
