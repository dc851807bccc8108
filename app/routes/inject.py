"""Route & middleware registration.

Called from startup to register blueprints and wrap the WSGI app with the
clean-path middleware.
"""
from __future__ import annotations
from typing import Any

from .clean_path import register_clean_path
from .health import register_health
from .manuals import register_manual_routes


def register_all(app: Any) -> None:
    # Health first so its static rules sit beside the catch-all manual route.
    register_health(app)
    register_manual_routes(app)
    register_clean_path(app)

__all__ = ["register_all"]
