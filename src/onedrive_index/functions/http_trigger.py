"""HTTP trigger blueprint — browse, show, download, search and unlock endpoints."""

import json
import logging
import uuid
from dataclasses import asdict
from functools import lru_cache
from http.cookies import SimpleCookie
from urllib.parse import quote

import azure.functions as func

from onedrive_index import __version__
from onedrive_index.config import load_config
from onedrive_index.errors import (
    CredentialExpired,
    CredentialMismatch,
    DisplayError,
    RemoteUnavailable,
)
from onedrive_index.graph.models import ObjectRecord
from onedrive_index.listing.processor import ListingPage, parse_order
from onedrive_index.listing.service import (
    IndexService,
    dash_manifest_url,
    index_service_from_config,
)

logger = logging.getLogger(__name__)

bp = func.Blueprint()

SESSION_COOKIE = "oi_session"
# Set by App Service authentication when the visitor is signed in
PRINCIPAL_HEADER = "x-ms-client-principal"
OFFICE_VIEWER_URL = "https://view.officeapps.live.com/op/view.aspx?src="

_STATUS_BY_KIND = {
    "remote_unavailable": 502,
    "not_found": 404,
    "type_mismatch": 400,
    "too_large": 413,
    "invalid_path": 400,
    "credential_expired": 401,
    "credential_mismatch": 403,
}


@lru_cache(maxsize=1)
def get_service() -> IndexService:
    """Build the process-wide IndexService on first use."""
    return index_service_from_config(load_config())


@bp.route(route="health", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """Health check endpoint returning service status and version."""
    logger.info("[health_check] health check requested")
    body = json.dumps({"status": "ok", "version": __version__})
    return func.HttpResponse(body, status_code=200, mimetype="application/json")


@bp.route(route="list/{*path}", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def list_folder(req: func.HttpRequest) -> func.HttpResponse:
    """List one page of a folder, or redirect when the path is a file."""
    path = "/" + (req.route_params.get("path") or "")
    try:
        service = get_service()
        session_id, is_new = _session_id(req)
        access = service.check_protected_access(service.session_for(session_id), path, "list")
        if not access.ok and access.error is not None:
            return _error_response(access.error, service, session_id if is_new else None)

        field_name, direction = parse_order(req.params.get("orderBy"))
        result = service.resolve_listing(
            path,
            sort_field=field_name,
            sort_direction=direction,
            limit=_int_param(req, "limit", service.page_limit),
            page=_int_param(req, "page", 1),
            is_authenticated=_is_authenticated(req),
        )
        if not result.ok or result.value is None:
            return _error_response(result.error, service)

        listing = result.value
        if listing.redirect_url:
            return _redirect(listing.redirect_url)
        body = {
            "status": "ok",
            "parent": _record_json(listing.parent),
            "page": _page_json(listing.page),
            "head": listing.head_source,
            "readme": listing.readme_source,
            "breadcrumb": listing.breadcrumb,
            "has_images": listing.has_images,
        }
        return _json_response(body, 200, session_id if is_new else None)

    except Exception:
        logger.error("[list_folder] listing failed; path:%s", path, exc_info=True)
        return _internal_error()


@bp.route(route="show/{*path}", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def show_file(req: func.HttpRequest) -> func.HttpResponse:
    """Show a file inline when its extension has a view, otherwise redirect to it."""
    path = "/" + (req.route_params.get("path") or "")
    try:
        service = get_service()
        session_id, _ = _session_id(req)
        access = service.check_protected_access(service.session_for(session_id), path, "show")
        if not access.ok and access.error is not None:
            return _error_response(access.error, service)

        result = service.resolve_file_or_redirect(path)
        if not result.ok or result.value is None:
            return _error_response(result.error, service)

        record = result.value
        if not record.download_url:
            return _error_response(RemoteUnavailable(f"No download URL for {path}"), service)
        kind = service.view_kind(record.name)
        if kind is None:
            return _redirect(record.download_url)
        if kind == "doc":
            return _redirect(OFFICE_VIEWER_URL + quote(record.download_url, safe=""))

        thumb = record.thumbnail_url("large")
        # Only SharePoint-hosted drives transcode to DASH
        if kind == "dash" and ("sharepoint.com" not in record.download_url or not thumb):
            return _redirect(record.download_url)

        body: dict[str, object] = {"status": "ok", "view": kind, "file": _record_json(record)}
        if kind in ("image", "video", "dash"):
            body["thumb"] = thumb
        if kind == "dash" and thumb:
            body["dash"] = dash_manifest_url(thumb)
        if kind in ("stream", "code"):
            content = service.read_inline_content(path)
            if not content.ok:
                return _error_response(content.error, service)
            body["content"] = content.value
        return _json_response(body, 200)

    except Exception:
        logger.error("[show_file] show failed; path:%s", path, exc_info=True)
        return _internal_error()


@bp.route(route="download/{*path}", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def download_file(req: func.HttpRequest) -> func.HttpResponse:
    """Redirect to a file's time-limited download URL."""
    path = "/" + (req.route_params.get("path") or "")
    try:
        service = get_service()
        session_id, _ = _session_id(req)
        access = service.check_protected_access(service.session_for(session_id), path, "download")
        if not access.ok and access.error is not None:
            return _error_response(access.error, service)

        result = service.resolve_file_or_redirect(path)
        if not result.ok or result.value is None:
            return _error_response(result.error, service)
        if not result.value.download_url:
            return _error_response(RemoteUnavailable(f"No download URL for {path}"), service)
        return _redirect(result.value.download_url)

    except Exception:
        logger.error("[download_file] download failed; path:%s", path, exc_info=True)
        return _internal_error()


@bp.route(route="thumb/{item_id}/{size}", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def thumbnail(req: func.HttpRequest) -> func.HttpResponse:
    """Redirect to an item's thumbnail at a named size."""
    service = get_service()
    return _redirect(service.thumbnail_url(req.route_params["item_id"], req.route_params["size"]))


@bp.route(
    route="thumb-crop/{item_id}/{width:int}/{height:int}",
    methods=["GET"],
    auth_level=func.AuthLevel.ANONYMOUS,
)
def thumbnail_crop(req: func.HttpRequest) -> func.HttpResponse:
    """Redirect to an item's thumbnail resized to the requested box."""
    service = get_service()
    url = service.thumbnail_crop_url(
        req.route_params["item_id"],
        int(req.route_params["width"]),
        int(req.route_params["height"]),
    )
    return _redirect(url)


@bp.route(route="search", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def search(req: func.HttpRequest) -> func.HttpResponse:
    """Search the index for files by keyword."""
    keyword = req.params.get("keywords", "")
    try:
        service = get_service()
        result = service.search(
            keyword,
            limit=_int_param(req, "limit", service.page_limit),
            page=_int_param(req, "page", 1),
        )
        if not result.ok or result.value is None:
            return _error_response(result.error, service)
        return _json_response({"status": "ok", "page": _page_json(result.value)}, 200)

    except Exception:
        logger.error("[search] search failed; keyword:%s", keyword, exc_info=True)
        return _internal_error()


@bp.route(route="search-show/{item_id}", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def search_show(req: func.HttpRequest) -> func.HttpResponse:
    """Redirect a search hit to the show endpoint for its path."""
    service = get_service()
    result = service.resolve_search_hit(req.route_params["item_id"])
    if not result.ok or result.value is None:
        return _error_response(result.error, service)
    return _redirect("/api/show" + quote(result.value))


@bp.route(route="password", methods=["POST"], auth_level=func.AuthLevel.ANONYMOUS)
def submit_password(req: func.HttpRequest) -> func.HttpResponse:
    """Accept a folder password and send the visitor back where they were going."""
    try:
        service = get_service()
        session_id, is_new = _session_id(req)
        try:
            challenge = service.credentials.unseal(req.form.get("challenge", ""))
        except CredentialMismatch as exc:
            return _error_response(exc, service)

        result = service.submit_protected_password(
            service.session_for(session_id),
            challenge.encryption_key_id,
            req.form.get("password", ""),
            challenge=challenge,
        )
        if not result.ok:
            return _error_response(result.error, service, session_id if is_new else None)

        target = f"/api/{challenge.route}{quote(challenge.request_path)}"
        return _redirect(target, session_id if is_new else None)

    except Exception:
        logger.error("[submit_password] password submission failed", exc_info=True)
        return _internal_error()


# ----------------------------------------------------------------------
# Response helpers
# ----------------------------------------------------------------------


def _record_json(record: ObjectRecord) -> dict[str, object]:
    return {
        "id": record.id,
        "name": record.name,
        "size": record.size,
        "last_modified": record.last_modified,
        "is_folder": record.is_folder,
        "child_count": record.child_count,
        "thumbnail": record.thumbnail_url("large"),
        "download_url": record.download_url,
    }


def _page_json(page: ListingPage | None) -> dict[str, object]:
    if page is None:
        return {}
    return {
        "items": [_record_json(record) for record in page.items],
        "total": page.total,
        "page": page.page,
        "limit": page.limit,
        "last_page": page.last_page,
    }


def _error_response(
    error: DisplayError | None, service: IndexService, new_session: str | None = None
) -> func.HttpResponse:
    if error is None:
        error = DisplayError("Request failed")
    body: dict[str, object] = {"status": "error", "kind": error.kind, "message": error.message}
    if isinstance(error, (CredentialMismatch, CredentialExpired)) and error.challenge is not None:
        body["challenge"] = service.credentials.seal(error.challenge)
        body["request"] = asdict(error.challenge)
    return _json_response(body, _STATUS_BY_KIND.get(error.kind, 500), new_session)


def _json_response(
    body: dict[str, object], status_code: int, new_session: str | None = None
) -> func.HttpResponse:
    response = func.HttpResponse(
        json.dumps(body), status_code=status_code, mimetype="application/json"
    )
    _set_session_cookie(response, new_session)
    return response


def _redirect(url: str, new_session: str | None = None) -> func.HttpResponse:
    response = func.HttpResponse(status_code=302, headers={"Location": url})
    _set_session_cookie(response, new_session)
    return response


def _internal_error() -> func.HttpResponse:
    error_body = json.dumps({"status": "error", "message": "Internal server error"})
    return func.HttpResponse(error_body, status_code=500, mimetype="application/json")


def _set_session_cookie(response: func.HttpResponse, session_id: str | None) -> None:
    if session_id:
        response.headers["Set-Cookie"] = (
            f"{SESSION_COOKIE}={session_id}; Path=/; HttpOnly; Secure; SameSite=Lax"
        )


def _session_id(req: func.HttpRequest) -> tuple[str, bool]:
    """Return the visitor's session id and whether it was just created."""
    cookie = SimpleCookie()
    cookie.load(req.headers.get("cookie", ""))
    morsel = cookie.get(SESSION_COOKIE)
    if morsel is not None and morsel.value:
        return morsel.value, False
    return uuid.uuid4().hex, True


def _is_authenticated(req: func.HttpRequest) -> bool:
    return bool(req.headers.get(PRINCIPAL_HEADER))


def _int_param(req: func.HttpRequest, name: str, default: int) -> int:
    try:
        return int(req.params.get(name, default))
    except (TypeError, ValueError):
        return default
