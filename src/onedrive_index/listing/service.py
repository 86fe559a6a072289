"""Index service — the operations exposed to the HTTP layer.

Every public operation returns a ``Result``: the value on success, or the
``DisplayError`` that explains why not. Presentation of the error is left
to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Generic, TypeVar

from onedrive_index.errors import (
    CredentialExpired,
    CredentialMismatch,
    DisplayError,
    InvalidPath,
    RemoteUnavailable,
    TooLarge,
)
from onedrive_index.graph.client import graph_client_from_config
from onedrive_index.graph.models import FIELD_PATH, FIELD_URL
from onedrive_index.graph.storage import RemoteStorage, remote_storage_from_config
from onedrive_index.listing.cache import (
    Cache,
    CacheAsideStore,
    CacheSessionStore,
    cache_from_config,
)
from onedrive_index.listing.credential import (
    Credential,
    PasswordChallenge,
    ProtectedPathCredential,
    protected_key_for,
)
from onedrive_index.listing.paths import PathTranslator, normalize
from onedrive_index.listing.processor import ListingPage, ListProcessor, paginate
from onedrive_index.listing.resolver import ObjectResolver

if TYPE_CHECKING:
    from onedrive_index.config import AppConfig
    from onedrive_index.graph.models import ObjectRecord
    from onedrive_index.listing.cache import SessionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

PLACEHOLDER_THUMBNAIL_URL = "https://i.loli.net/2018/12/04/5c05cd3086425.png"
DASH_MANIFEST_PARAMS = "&part=index&format=dash&useScf=True&pretranscode=0&transcodeahead=0"


def dash_manifest_url(thumbnail_url: str) -> str:
    """Derive the DASH manifest URL of a SharePoint-hosted video from its thumbnail URL."""
    return thumbnail_url.replace("thumbnail", "videomanifest") + DASH_MANIFEST_PARAMS


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a service operation."""

    value: T | None = None
    error: DisplayError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: DisplayError) -> Result[T]:
        return cls(error=error)


@dataclass(frozen=True)
class ListingResult:
    """Everything needed to render a folder page.

    When the requested path is a file, ``redirect_url`` holds its download
    URL and ``page`` is None.
    """

    parent: ObjectRecord
    page: ListingPage | None = None
    head_source: str = ""
    readme_source: str = ""
    breadcrumb: list[str] = field(default_factory=list)
    has_images: bool = False
    redirect_url: str | None = None


class IndexService:
    """Browse, show, search and unlock a OneDrive folder tree."""

    def __init__(
        self,
        storage: RemoteStorage,
        cache: Cache,
        credentials: ProtectedPathCredential,
        root: str = "/",
        cache_expires: int = 600,
        password_ttl_minutes: int = 30,
        session_lifetime_minutes: int = 120,
        page_limit: int = 20,
        max_inline_bytes: int = 5 * 1024 * 1024,
        encrypt_paths: dict[str, str] | None = None,
        config: AppConfig | None = None,
    ) -> None:
        """Initialise the index service.

        Args:
            storage: Remote storage facade.
            cache: Shared cache backend.
            credentials: Folder password credential service.
            root: Drive folder exposed as the index root.
            cache_expires: Cache TTL in seconds.
            password_ttl_minutes: Default lifetime of a submitted password.
            session_lifetime_minutes: Lifetime of a visitor session.
            page_limit: Default page size.
            max_inline_bytes: Largest file whose content is returned inline.
            encrypt_paths: Protected folder path → password.
            config: Application configuration, used for the view table.
        """
        self._storage = storage
        self._cache = cache
        self._paths = PathTranslator(root)
        self._resolver = ObjectResolver(storage, CacheAsideStore(cache), self._paths, cache_expires)
        self._processor = ListProcessor()
        self._credentials = credentials
        self._password_ttl_minutes = password_ttl_minutes
        self._session_lifetime_minutes = session_lifetime_minutes
        self._page_limit = page_limit
        self._max_inline_bytes = max_inline_bytes
        self._encrypt_paths = {
            normalize(path): password for path, password in (encrypt_paths or {}).items()
        }
        self._config = config

    @property
    def credentials(self) -> ProtectedPathCredential:
        return self._credentials

    @property
    def page_limit(self) -> int:
        return self._page_limit

    def session_for(self, session_id: str) -> SessionStore:
        """Return the session store of one visitor."""
        return CacheSessionStore(self._cache, session_id, self._session_lifetime_minutes * 60)

    def resolve_listing(
        self,
        virtual_path: str,
        sort_field: str = "",
        sort_direction: str = "",
        limit: int | None = None,
        page: int = 1,
        is_authenticated: bool = False,
    ) -> Result[ListingResult]:
        """Resolve a folder path to one page of its sorted, filtered children."""
        try:
            item = self._resolver.get_folder_item(virtual_path)
            if item.is_file and item.download_url:
                logger.info("[resolve_listing] path is a file; path:%s", virtual_path)
                return Result.success(ListingResult(parent=item, redirect_url=item.download_url))

            children = self._resolver.get_children(virtual_path)
            processed = self._processor.process(
                children,
                sort_field=sort_field,
                sort_direction=sort_direction,
                is_authenticated=is_authenticated,
                limit=self._page_limit if limit is None else limit,
                page=page,
            )
        except DisplayError as exc:
            logger.info("[resolve_listing] failed; path:%s;kind:%s", virtual_path, exc.kind)
            return Result.failure(exc)

        logger.info(
            "[resolve_listing] listed; path:%s;total:%d;page:%d",
            virtual_path,
            processed.page.total,
            processed.page.page,
        )
        return Result.success(
            ListingResult(
                parent=item,
                page=processed.page,
                head_source=self._read_markdown(processed.head),
                readme_source=self._read_markdown(processed.readme),
                breadcrumb=self._paths.decode_segments(virtual_path),
                has_images=processed.has_images,
            )
        )

    def resolve_file_or_redirect(self, virtual_path: str) -> Result[ObjectRecord]:
        """Resolve a path that must name a file.

        Whether to redirect to the download URL or render a view is the
        caller's choice, see ``view_kind``.
        """
        try:
            return Result.success(self._resolver.resolve_file(virtual_path))
        except DisplayError as exc:
            logger.info("[resolve_file_or_redirect] failed; path:%s;kind:%s", virtual_path, exc.kind)
            return Result.failure(exc)

    def read_inline_content(self, virtual_path: str) -> Result[str]:
        """Return a text file's body for inline display."""
        try:
            record = self._resolver.resolve_file(virtual_path)
            if record.size > self._max_inline_bytes:
                raise TooLarge(
                    f"{record.name} is too large to show inline, download it instead",
                    size=record.size,
                    limit=self._max_inline_bytes,
                )
            if not record.download_url:
                raise RemoteUnavailable(f"No download URL for {virtual_path}")
            result = self._storage.fetch_content(record.download_url)
            if not result.ok or result.data is None:
                raise RemoteUnavailable(result.error or f"Download failed for {virtual_path}")
        except DisplayError as exc:
            return Result.failure(exc)
        return Result.success(result.data.decode("utf-8", errors="replace"))

    def view_kind(self, name: str) -> str | None:
        """Map a filename to its view kind, or None when it should be downloaded."""
        if self._config is None:
            return None
        dot = name.rfind(".")
        return self._config.view_kind(name[dot + 1 :]) if dot > 0 else None

    def search(self, keyword: str, limit: int | None = None, page: int = 1) -> Result[ListingPage]:
        """Search the index root for files matching ``keyword``.

        Folders and package bundles are excluded from the results. Hits carry
        no download URL or thumbnails, since a hit may sit inside a protected
        folder; visitors open them through ``resolve_search_hit``, which leads
        back to the password-checked routes.
        """
        limit = self._page_limit if limit is None else limit
        if not keyword or not keyword.strip():
            return Result.success(paginate([], limit, page))
        result = self._storage.search_by_keyword(self._paths.root, keyword.strip())
        if not result.ok or result.data is None:
            return Result.failure(RemoteUnavailable(result.error or "Search failed"))
        files = [
            replace(record, download_url=None, thumbnails=())
            for record in result.data
            if record.is_file and not record.is_package
        ]
        return Result.success(paginate(files, limit, page))

    def resolve_search_hit(self, item_id: str) -> Result[str]:
        """Translate a search hit's item id into a virtual path below the root."""
        result = self._storage.resolve_id_to_path(item_id, self._paths.root)
        if not result.ok or result.data is None:
            return Result.failure(RemoteUnavailable(result.error or "Could not resolve item"))
        return Result.success(self._paths.to_absolute_path(result.data[FIELD_PATH]))

    def thumbnail_url(self, item_id: str, size: str = "large") -> str:
        """Return the thumbnail URL of an item, or a placeholder image on failure."""
        result = self._storage.get_thumbnail(item_id, size)
        if result.ok and result.data and result.data.get(FIELD_URL):
            return result.data[FIELD_URL]
        return PLACEHOLDER_THUMBNAIL_URL

    def thumbnail_crop_url(self, item_id: str, width: int, height: int) -> str:
        """Return a large thumbnail URL resized to ``width`` × ``height``."""
        result = self._storage.get_thumbnail(item_id, "large")
        if not (result.ok and result.data and result.data.get(FIELD_URL)):
            return PLACEHOLDER_THUMBNAIL_URL
        url = result.data[FIELD_URL].split("&width=", 1)[0]
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}width={width}&height={height}"

    def protected_key(self, virtual_path: str) -> str | None:
        """Return the encryption key id guarding a path, if any."""
        return protected_key_for(self._encrypt_paths, virtual_path)

    def check_protected_access(
        self, session: SessionStore, virtual_path: str, route: str = "list"
    ) -> Result[None]:
        """Check that the session holds a valid password for the path's subtree.

        Unprotected paths always pass. On failure the error carries the
        password challenge for the path.
        """
        key = self.protected_key(virtual_path)
        if key is None:
            return Result.success(None)
        try:
            self._credentials.check(session, key, self._encrypt_paths[key])
        except (CredentialMismatch, CredentialExpired) as exc:
            exc.challenge = PasswordChallenge(route, virtual_path, key)
            return Result.failure(exc)
        return Result.success(None)

    def submit_protected_password(
        self,
        session: SessionStore,
        encryption_key_id: str,
        submitted_password: str,
        ttl_minutes: int | None = None,
        challenge: PasswordChallenge | None = None,
    ) -> Result[Credential]:
        """Store a submitted folder password and check it.

        A wrong password yields ``CredentialMismatch`` carrying the same
        challenge, so the form can be shown again.
        """
        requested = normalize(encryption_key_id)
        key = self.protected_key(requested)
        if key is None or key.casefold() != requested.casefold():
            return Result.failure(InvalidPath(f"{requested} is not a protected folder"))
        challenge = challenge or PasswordChallenge("list", key, key)
        expected = self._encrypt_paths[key]

        ttl = self._password_ttl_minutes if ttl_minutes is None else ttl_minutes
        credential = self._credentials.issue(session, key, submitted_password, ttl)
        if not self._credentials.verify(expected, submitted_password):
            logger.info("[submit_protected_password] wrong password; key:%s", key)
            return Result.failure(CredentialMismatch("Wrong password", challenge))
        return Result.success(credential)

    def _read_markdown(self, record: ObjectRecord | None) -> str:
        # HEAD.md and README.md are decoration; a stale download URL degrades
        # to an empty section instead of failing the listing.
        if record is None or not record.download_url:
            return ""
        result = self._storage.fetch_content(record.download_url)
        if not result.ok or result.data is None:
            logger.warning("[_read_markdown] could not fetch; name:%s", record.name)
            return ""
        return result.data.decode("utf-8", errors="replace")


def index_service_from_config(config: AppConfig, cache: Cache | None = None) -> IndexService:
    """Construct an IndexService from application configuration.

    Creates a GraphClient, RemoteStorage and cache backend from the config,
    then wires them into an IndexService.

    Args:
        config: Application configuration instance.
        cache: Cache to share across calls; built from the config when omitted.

    Returns:
        Configured IndexService instance.
    """
    client = graph_client_from_config(config)
    return IndexService(
        storage=remote_storage_from_config(client, config),
        cache=cache if cache is not None else cache_from_config(config),
        credentials=ProtectedPathCredential(config.secret_key),
        root=config.root,
        cache_expires=config.cache_expires,
        password_ttl_minutes=config.password_ttl_minutes,
        session_lifetime_minutes=config.session_lifetime_minutes,
        page_limit=config.page_limit,
        max_inline_bytes=config.max_inline_bytes,
        encrypt_paths=config.encrypt_paths,
        config=config,
    )
