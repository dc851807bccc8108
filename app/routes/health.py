"""Lightweight health probe endpoint.

Exposes /healthcheck returning a fast 200 for container / LB health checks.
Also answers on the trailing-slash form produced by the clean-path middleware.
"""
from __future__ import annotations

from typing import Any

from flask import Blueprint, Response

from app.utils.logging import get_logger

LOG = get_logger("health")

bp = Blueprint("health", __name__)


@bp.route("/healthcheck", methods=["GET", "HEAD"])
@bp.route("/healthcheck/", methods=["GET", "HEAD"])
def healthcheck():
    return Response(".", status=200, mimetype="text/plain")


def register_health(app: Any) -> None:
    if getattr(app, "_health_bp", None):  # idempotent
        return
    app.register_blueprint(bp)
    setattr(app, "_health_bp", bp)
    LOG.debug("health blueprint registered")


__all__ = ["register_health"]
