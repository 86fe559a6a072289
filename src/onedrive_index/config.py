"""Application configuration loaded from environment variables."""

import os
from dataclasses import dataclass, field

# Extension tables deciding how a file is shown instead of downloaded
DEFAULT_VIEW_EXTENSIONS: dict[str, str] = {
    "stream": "txt log",
    "image": "bmp jpg jpeg png gif webp ico svg",
    "video": "mkv mp4 webm",
    "dash": "avi mpg mpeg rm rmvb mov wmv asf ts flv",
    "audio": "ogg mp3 wav flac aac m4a",
    "code": "html htm css go java js json txt sh md php py xml yml yaml",
    "doc": "csv doc docx odp ods odt pot potm potx pps ppsx ppsxm ppt pptm pptx rtf xls xlsx",
}
VIEW_KINDS = ("stream", "image", "video", "dash", "audio", "code", "doc")


@dataclass(frozen=True)
class AppConfig:
    """Centralized application configuration.

    Required fields have no defaults and will cause a KeyError at startup
    if the corresponding environment variable is missing. Domain constants
    have sensible defaults but can be overridden via environment variables.
    """

    # Required — no defaults, fail at startup if missing
    client_id: str
    client_secret: str
    tenant_id: str
    drive_user: str
    secret_key: str

    # Domain constants — defaults provided, overridable via env
    root: str = "/"
    cache_expires: int = 600
    password_ttl_minutes: int = 30
    session_lifetime_minutes: int = 120
    request_timeout: float = 30.0
    page_limit: int = 20
    max_inline_bytes: int = 5 * 1024 * 1024
    encrypt_paths: dict[str, str] = field(default_factory=dict)
    storage_connection_string: str = ""
    cache_container: str = "onedrive-index-cache"
    cache_blob_prefix: str = "cache/"
    view_extensions: dict[str, tuple[str, ...]] = field(
        default_factory=lambda: {
            kind: tuple(exts.split()) for kind, exts in DEFAULT_VIEW_EXTENSIONS.items()
        }
    )

    def view_kind(self, extension: str) -> str | None:
        """Return the first view kind listing ``extension``, or None to download."""
        extension = extension.lower()
        for kind in VIEW_KINDS:
            if extension in self.view_extensions.get(kind, ()):
                return kind
        return None


def parse_encrypt_paths(raw: str) -> dict[str, str]:
    """Parse ``path:password`` pairs separated by ``|`` into a mapping.

    The encryption key id of a protected subtree is its path.

    Example:
        ``"/private:s3cret|/team/hr:hunter2"``
    """
    paths: dict[str, str] = {}
    for entry in raw.split("|"):
        path, sep, password = entry.strip().partition(":")
        if not sep or not path:
            continue
        paths["/" + path.strip().strip("/")] = password
    return paths


def load_config() -> AppConfig:
    """Construct an AppConfig from environment variables.

    Required environment variables:
        OI_CLIENT_ID: Azure AD application (client) ID.
        OI_CLIENT_SECRET: Azure AD application client secret.
        OI_TENANT_ID: Azure AD tenant ID.
        OI_DRIVE_USER: UPN or object ID of the OneDrive user to index.
        OI_SECRET_KEY: Fernet key protecting password credentials.

    Optional environment variables (with defaults):
        OI_ROOT: Drive folder exposed as the index root (default: /).
        OI_CACHE_EXPIRES: Cache TTL in seconds; keep it at or below 600 so
            cached download URLs are still valid (default: 600).
        OI_PASSWORD_TTL_MINUTES: Lifetime of a submitted folder password (default: 30).
        OI_SESSION_LIFETIME_MINUTES: Lifetime of a visitor session (default: 120).
        OI_REQUEST_TIMEOUT: Graph request timeout in seconds (default: 30).
        OI_PAGE_LIMIT: Default listing page size (default: 20).
        OI_MAX_INLINE_BYTES: Largest file rendered inline (default: 5 MiB).
        OI_ENCRYPT_PATH: Protected folders as ``path:password`` pairs joined by ``|``.
        AzureWebJobsStorage: Storage connection string; enables the blob cache.
        OI_CACHE_CONTAINER: Blob container for the cache.
        OI_CACHE_BLOB_PREFIX: Blob path prefix for cache entries.
        OI_VIEW_<KIND>: Space-separated extensions for each view kind.

    Returns:
        Configured AppConfig instance.
    """
    view_extensions = {
        kind: tuple(os.environ.get(f"OI_VIEW_{kind.upper()}", exts).split())
        for kind, exts in DEFAULT_VIEW_EXTENSIONS.items()
    }
    return AppConfig(
        client_id=os.environ["OI_CLIENT_ID"],
        client_secret=os.environ["OI_CLIENT_SECRET"],
        tenant_id=os.environ["OI_TENANT_ID"],
        drive_user=os.environ["OI_DRIVE_USER"],
        secret_key=os.environ["OI_SECRET_KEY"],
        root=os.environ.get("OI_ROOT", "/"),
        cache_expires=int(os.environ.get("OI_CACHE_EXPIRES", "600")),
        password_ttl_minutes=int(os.environ.get("OI_PASSWORD_TTL_MINUTES", "30")),
        session_lifetime_minutes=int(os.environ.get("OI_SESSION_LIFETIME_MINUTES", "120")),
        request_timeout=float(os.environ.get("OI_REQUEST_TIMEOUT", "30")),
        page_limit=int(os.environ.get("OI_PAGE_LIMIT", "20")),
        max_inline_bytes=int(os.environ.get("OI_MAX_INLINE_BYTES", str(5 * 1024 * 1024))),
        encrypt_paths=parse_encrypt_paths(os.environ.get("OI_ENCRYPT_PATH", "")),
        storage_connection_string=os.environ.get("AzureWebJobsStorage", ""),  # noqa: SIM112
        cache_container=os.environ.get("OI_CACHE_CONTAINER", "onedrive-index-cache"),
        cache_blob_prefix=os.environ.get("OI_CACHE_BLOB_PREFIX", "cache/"),
        view_extensions=view_extensions,
    )
