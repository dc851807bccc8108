"""Manual browsing routes.

Every GET below the site root goes through :func:`resolve_route`, a pure
function classifying the request path by namespace and segment count:

    /campaigns/{type}/                           -> 302 /campaigns/generic/{type}/
    /campaigns/{campaign}/{type}/                -> 302 to negotiated language
    /campaigns/{campaign}/{type}/...             -> static file
    /{ns}/{entity}/                              -> display_names.json
    /{ns}/{entity}/{type}/                       -> 302 .../{type}/generic/
    /{ns}/{entity}/{type}/{campaign}/            -> 302 to negotiated language,
                                                    else 302 .../manufacturer/
    /{ns}/{entity}/{type}/{campaign}/...         -> static file

with ``ns`` one of devices, energy_queries, cloud_feeds. Files are read from
the built manual tree at ``app.config["MANUALS_ROOT"]``.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Tuple
from urllib.parse import quote

from flask import Blueprint, Response, current_app, redirect, request, send_file
from werkzeug.exceptions import HTTPException
from werkzeug.http import HTTP_STATUS_CODES
from werkzeug.security import safe_join

from app.services.languages import LanguageTag, NoLanguagesError, negotiate_language
from app.services.markdown_renderer import INDEX_FILE_NAME
from app.services.sources import DISPLAY_NAMES_FILE_NAME, MANUFACTURER_SEGMENT
from app.utils.logging import get_logger

LOG = get_logger("routes")

GENERIC_CAMPAIGN = "generic"
CAMPAIGNS_NAMESPACE = "campaigns"
ENTITY_NAMESPACES = ("devices", "energy_queries", "cloud_feeds")

ROOT_CONFIG_KEY = "MANUALS_ROOT"
FALLBACK_CONFIG_KEY = "MANUALS_FALLBACK_LANGUAGE"

bp = Blueprint("manuals", __name__)


class RouteKind(str, Enum):
    CAMPAIGN_GENERIC_REDIRECT = "campaign-generic-redirect"
    ENTITY_GENERIC_REDIRECT = "entity-generic-redirect"
    LANGUAGE_REDIRECT = "language-redirect"
    LANGUAGE_REDIRECT_WITH_FALLBACK = "language-redirect-with-fallback"
    DISPLAY_NAMES = "display-names"
    STATIC = "static"
    NOT_FOUND = "not-found"


@dataclass(frozen=True)
class RouteAction:
    kind: RouteKind
    segments: Tuple[str, ...] = ()

    @property
    def directory(self) -> str:
        return "/".join(self.segments)


class HandlerError(Exception):
    """Request failure carrying the HTTP status to answer with."""

    def __init__(self, code: int, cause: Optional[BaseException] = None):
        super().__init__(f"{code} {HTTP_STATUS_CODES.get(code, '')}: {cause}" if cause else str(code))
        self.code = code
        self.cause = cause


def split_path(path: str) -> Tuple[str, ...]:
    return tuple(segment for segment in (path or "").split("/") if segment)


def resolve_route(path: str) -> RouteAction:
    """Classify a request path; see the module docstring for the table."""
    segments = split_path(path)
    if not segments or any(segment in (".", "..") for segment in segments):
        return RouteAction(RouteKind.NOT_FOUND, segments)

    namespace, count = segments[0], len(segments)
    if namespace == CAMPAIGNS_NAMESPACE:
        if count == 2:
            return RouteAction(RouteKind.CAMPAIGN_GENERIC_REDIRECT, segments)
        if count == 3:
            return RouteAction(RouteKind.LANGUAGE_REDIRECT, segments)
        if count >= 4:
            return RouteAction(RouteKind.STATIC, segments)
    elif namespace in ENTITY_NAMESPACES:
        if count == 2:
            return RouteAction(RouteKind.DISPLAY_NAMES, segments)
        if count == 3:
            return RouteAction(RouteKind.ENTITY_GENERIC_REDIRECT, segments)
        if count == 4:
            return RouteAction(RouteKind.LANGUAGE_REDIRECT_WITH_FALLBACK, segments)
        if count >= 5:
            return RouteAction(RouteKind.STATIC, segments)
    return RouteAction(RouteKind.NOT_FOUND, segments)


def directory_url(segments: Sequence[str]) -> str:
    return "/" + "/".join(quote(segment, safe="") for segment in segments) + "/"


def _manuals_root() -> Path:
    return Path(current_app.config[ROOT_CONFIG_KEY])


def _fallback_language() -> Optional[LanguageTag]:
    return current_app.config.get(FALLBACK_CONFIG_KEY)


def _redirect(segments: Sequence[str]) -> Response:
    return redirect(directory_url(segments), code=302)


def _status_response(code: int) -> Response:
    return Response(f"{HTTP_STATUS_CODES.get(code, 'Error')}\n", status=code, mimetype="text/plain")


def handle_campaign_generic_redirect(action: RouteAction) -> Response:
    namespace, manual_type = action.segments
    return _redirect((namespace, GENERIC_CAMPAIGN, manual_type))


def handle_entity_generic_redirect(action: RouteAction) -> Response:
    return _redirect((*action.segments, GENERIC_CAMPAIGN))


def handle_language_redirect(action: RouteAction) -> Response:
    try:
        language = negotiate_language(
            _manuals_root(),
            action.directory,
            _fallback_language(),
            request.headers.get("Accept-Language", ""),
        )
    except (FileNotFoundError, NoLanguagesError) as exc:
        raise HandlerError(404, exc) from exc
    except OSError as exc:
        raise HandlerError(500, exc) from exc
    return _redirect((*action.segments, language))


def handle_language_redirect_with_fallback(action: RouteAction) -> Response:
    """Language redirect; a missing campaign falls back to the manufacturer manual once."""
    try:
        return handle_language_redirect(action)
    except HandlerError as err:
        campaign = action.segments[-1]
        if err.code != 404 or campaign == MANUFACTURER_SEGMENT:
            raise
        LOG.info("no %s manual at /%s/; falling back to %s", campaign, action.directory, MANUFACTURER_SEGMENT)
        return _redirect((*action.segments[:-1], MANUFACTURER_SEGMENT))


def handle_display_names(action: RouteAction) -> Response:
    target = _manuals_root().joinpath(*action.segments, DISPLAY_NAMES_FILE_NAME)
    try:
        data = target.read_bytes()
    except OSError as exc:
        raise HandlerError(404, exc) from exc
    return Response(data, status=200, mimetype="application/json")


def handle_static(action: RouteAction) -> Response:
    joined = safe_join(str(_manuals_root()), *action.segments)
    if joined is None:
        raise HandlerError(404)
    target = Path(joined)
    if target.is_dir():
        target = target / INDEX_FILE_NAME
    if not target.is_file():
        raise HandlerError(404, FileNotFoundError(str(target)))
    return send_file(str(target), conditional=True)


def handle_not_found(action: RouteAction) -> Response:
    raise HandlerError(404)


_HANDLERS: Dict[RouteKind, Callable[[RouteAction], Response]] = {
    RouteKind.CAMPAIGN_GENERIC_REDIRECT: handle_campaign_generic_redirect,
    RouteKind.ENTITY_GENERIC_REDIRECT: handle_entity_generic_redirect,
    RouteKind.LANGUAGE_REDIRECT: handle_language_redirect,
    RouteKind.LANGUAGE_REDIRECT_WITH_FALLBACK: handle_language_redirect_with_fallback,
    RouteKind.DISPLAY_NAMES: handle_display_names,
    RouteKind.STATIC: handle_static,
    RouteKind.NOT_FOUND: handle_not_found,
}


@bp.route("/", defaults={"subpath": ""}, methods=["GET"])
@bp.route("/<path:subpath>", methods=["GET"])
def serve_manuals(subpath: str):
    action = resolve_route(request.path)
    return _HANDLERS[action.kind](action)


@bp.errorhandler(HandlerError)
def _handler_error(err: HandlerError):
    if err.code >= 500:
        LOG.error("%s %s failed: %s", request.method, request.path, err)
    else:
        LOG.debug("%s %s: %s", request.method, request.path, err)
    return _status_response(err.code)


@bp.app_errorhandler(HTTPException)
def _http_error(exc: HTTPException):
    return _status_response(exc.code or 500)


@bp.errorhandler(Exception)
def _unexpected_error(exc: Exception):
    if isinstance(exc, HTTPException):
        return _status_response(exc.code or 500)
    LOG.exception("unhandled error serving %s", request.path)
    return _status_response(500)


def register_manual_routes(app: Any) -> None:
    if getattr(app, "_manuals_bp", None):  # idempotent
        return
    app.register_blueprint(bp)
    setattr(app, "_manuals_bp", bp)
    LOG.debug("manual routes registered")


__all__ = [
    "HandlerError",
    "RouteAction",
    "RouteKind",
    "resolve_route",
    "split_path",
    "directory_url",
    "register_manual_routes",
    "bp",
    "ROOT_CONFIG_KEY",
    "FALLBACK_CONFIG_KEY",
]
