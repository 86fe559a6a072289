"""Data models for Microsoft Graph drive items."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Graph API JSON field names
FIELD_ID = "id"
FIELD_NAME = "name"
FIELD_SIZE = "size"
FIELD_LAST_MODIFIED = "lastModifiedDateTime"
FIELD_FOLDER = "folder"
FIELD_CHILD_COUNT = "childCount"
FIELD_FILE = "file"
FIELD_MIME_TYPE = "mimeType"
FIELD_PACKAGE = "package"
FIELD_TYPE = "type"
FIELD_THUMBNAILS = "thumbnails"
FIELD_URL = "url"
FIELD_ETAG = "eTag"
FIELD_PARENT_REFERENCE = "parentReference"
FIELD_PATH = "path"
FIELD_DOWNLOAD_URL = "@microsoft.graph.downloadUrl"

# OData response keys
ODATA_NEXT_LINK = "@odata.nextLink"
ODATA_VALUE = "value"

# $select used for item and children lookups
ITEM_SELECT = (
    "id,eTag,name,size,lastModifiedDateTime,file,image,folder,package,"
    "@microsoft.graph.downloadUrl"
)
ITEM_EXPAND = "thumbnails"

IMAGE_EXTENSIONS = frozenset({"bmp", "jpg", "jpeg", "png", "gif", "webp", "ico", "svg"})


@dataclass(frozen=True)
class ObjectRecord:
    """A single drive item (file or folder) as returned by the Graph API.

    The file/folder discriminant is decided once, when the record is built
    from the raw response: ``child_count`` is ``None`` for files and an
    integer for folders.
    """

    id: str
    name: str
    size: int = 0
    last_modified: str = ""
    child_count: int | None = None
    thumbnails: tuple[dict[str, Any], ...] = field(default_factory=tuple)
    download_url: str | None = None
    package_type: str | None = None
    mime_type: str | None = None
    e_tag: str | None = None

    @property
    def is_folder(self) -> bool:
        return self.child_count is not None

    @property
    def is_file(self) -> bool:
        return self.child_count is None

    @property
    def is_package(self) -> bool:
        """True for bundles that cannot be browsed, such as OneNote notebooks."""
        return self.package_type is not None

    @property
    def extension(self) -> str:
        """Return the lowercased extension without the dot, or an empty string."""
        dot = self.name.rfind(".")
        return self.name[dot + 1 :].lower() if dot > 0 else ""

    @property
    def is_image(self) -> bool:
        return self.is_file and self.extension in IMAGE_EXTENSIONS

    def thumbnail_url(self, size: str = "large") -> str | None:
        """Return the URL of the first thumbnail set at the given size, if any."""
        if not self.thumbnails:
            return None
        entry = self.thumbnails[0].get(size) or {}
        url = entry.get(FIELD_URL)
        return str(url) if url else None

    @classmethod
    def from_graph(cls, raw: dict[str, Any]) -> ObjectRecord:
        """Map a raw Graph API item dict to an ObjectRecord.

        Missing or malformed optional fields degrade to defaults instead of
        raising, so a single odd item never breaks a whole listing.
        """
        folder = raw.get(FIELD_FOLDER)
        child_count: int | None = None
        if isinstance(folder, dict):
            child_count = _as_int(folder.get(FIELD_CHILD_COUNT))
        package = raw.get(FIELD_PACKAGE)
        package_type = None
        if isinstance(package, dict) and FIELD_TYPE in package:
            package_type = str(package[FIELD_TYPE])
        file_facet = raw.get(FIELD_FILE)
        mime_type = file_facet.get(FIELD_MIME_TYPE) if isinstance(file_facet, dict) else None
        thumbnails = raw.get(FIELD_THUMBNAILS) or []
        return cls(
            id=str(raw.get(FIELD_ID, "")),
            name=str(raw.get(FIELD_NAME, "")),
            size=_as_int(raw.get(FIELD_SIZE)),
            last_modified=str(raw.get(FIELD_LAST_MODIFIED, "")),
            child_count=child_count,
            thumbnails=tuple(t for t in thumbnails if isinstance(t, dict)),
            download_url=raw.get(FIELD_DOWNLOAD_URL),
            package_type=package_type,
            mime_type=mime_type,
            e_tag=raw.get(FIELD_ETAG),
        )

    def to_graph(self) -> dict[str, Any]:
        """Serialize back to the Graph JSON shape (inverse of ``from_graph``)."""
        raw: dict[str, Any] = {
            FIELD_ID: self.id,
            FIELD_NAME: self.name,
            FIELD_SIZE: self.size,
            FIELD_LAST_MODIFIED: self.last_modified,
        }
        if self.is_folder:
            raw[FIELD_FOLDER] = {FIELD_CHILD_COUNT: self.child_count}
        else:
            raw[FIELD_FILE] = {FIELD_MIME_TYPE: self.mime_type} if self.mime_type else {}
        if self.thumbnails:
            raw[FIELD_THUMBNAILS] = list(self.thumbnails)
        if self.download_url is not None:
            raw[FIELD_DOWNLOAD_URL] = self.download_url
        if self.package_type is not None:
            raw[FIELD_PACKAGE] = {FIELD_TYPE: self.package_type}
        if self.e_tag is not None:
            raw[FIELD_ETAG] = self.e_tag
        return raw


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def children_from_graph(items: list[dict[str, Any]]) -> dict[str, ObjectRecord]:
    """Build the name → record mapping for a folder's children, in remote order."""
    children: dict[str, ObjectRecord] = {}
    for raw in items:
        record = ObjectRecord.from_graph(raw)
        if record.name:
            children[record.name] = record
    return children
