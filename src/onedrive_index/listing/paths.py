"""Translation between user-facing virtual paths and Graph origin paths."""

from __future__ import annotations

from urllib.parse import quote

from onedrive_index.errors import InvalidPath


def normalize(path: str) -> str:
    """Return the canonical form of an already-decoded path.

    The path is taken literally, so a name containing ``%41`` stays as is.
    Empty and ``.`` segments are dropped and ``..`` pops a segment without
    climbing above the root. The result always has a single leading slash
    and no trailing slash (``/`` for the root).
    """
    segments: list[str] = []
    for segment in (path or "").replace("\\", "/").split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if segments:
                segments.pop()
            continue
        segments.append(segment)
    return "/" + "/".join(segments)


class PathTranslator:
    """Maps virtual paths to the origin paths sent to the storage API.

    All cache keys must be derived from ``to_origin_path`` so equivalent
    spellings (trailing or doubled slashes, dot segments) share one entry.
    """

    def __init__(self, root: str = "/") -> None:
        self._root = normalize(root)

    @property
    def root(self) -> str:
        return self._root

    def to_origin_path(self, virtual_path: str) -> str:
        """Prefix the storage root onto a normalized virtual path."""
        path = normalize(virtual_path)
        if self._root == "/":
            return path
        if path == "/":
            return self._root
        return f"{self._root}{path}"

    def to_absolute_path(self, path: str) -> str:
        """Strip the storage root prefix, if present, from a normalized path."""
        path = normalize(path)
        if self._root == "/":
            return path
        if path == self._root:
            return "/"
        if path.startswith(self._root + "/"):
            return path[len(self._root) :]
        return path

    @staticmethod
    def decode_segments(path: str) -> list[str]:
        """Return the breadcrumb segments of an absolute path."""
        return [segment for segment in normalize(path).split("/") if segment]

    def split_parent(self, virtual_path: str) -> tuple[str, str]:
        """Split a virtual path into its parent path and final name.

        Raises:
            InvalidPath: If the path has no final segment (the root).
        """
        segments = self.decode_segments(virtual_path)
        if not segments:
            raise InvalidPath(f"Path has no name component: {virtual_path!r}")
        name = segments.pop()
        return "/" + "/".join(segments), name

    @staticmethod
    def encode_url(path: str) -> str:
        """Percent-encode each segment of a normalized path for use in a URL."""
        return "/".join(quote(segment, safe="") for segment in normalize(path).split("/"))
