"""WSGI middleware normalizing request paths before routing.

Duplicate slashes are merged, ``.``/``..`` segments resolved and a trailing
slash appended, so ``/devices//x/installation`` is routed as
``/devices/x/installation/``. Paths containing ``/assets/`` are left alone
because they name files.

Browsers may cache the resulting redirects, so changes to this behaviour can
take a cache flush to show up on clients.
"""
from __future__ import annotations

import posixpath
import re
from typing import Any, Callable, Iterable

_SLASHES = re.compile(r"/{2,}")
ASSETS_MARKER = "/assets/"


def clean_request_path(path: str) -> str:
    if ASSETS_MARKER in path:
        return path
    cleaned = posixpath.normpath("/" + _SLASHES.sub("/", path or "/"))
    cleaned = _SLASHES.sub("/", cleaned)
    if cleaned == "/":
        return cleaned
    return cleaned + "/"


class CleanPathMiddleware:
    def __init__(self, wsgi_app: Callable[..., Iterable[bytes]]):
        self.wsgi_app = wsgi_app

    def __call__(self, environ: dict, start_response: Any) -> Iterable[bytes]:
        environ["PATH_INFO"] = clean_request_path(environ.get("PATH_INFO", ""))
        return self.wsgi_app(environ, start_response)


def register_clean_path(app: Any) -> None:
    if getattr(app, "_clean_path_middleware", False):  # idempotent
        return
    app.wsgi_app = CleanPathMiddleware(app.wsgi_app)
    setattr(app, "_clean_path_middleware", True)


__all__ = ["CleanPathMiddleware", "clean_request_path", "register_clean_path"]
