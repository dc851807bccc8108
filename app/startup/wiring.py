"""Application initialization / wiring.

Orchestrates: configuration validation, the manual build (before any request
is served), route registration.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from flask import Flask

from app import config as app_config
from app.config import ConfigError
from app.routes.inject import register_all as register_routes
from app.routes.manuals import FALLBACK_CONFIG_KEY, ROOT_CONFIG_KEY
from app.services.languages import InvalidLanguageTagError, LanguageTag, parse_language_tag
from app.services.manual_builder import BuildReport, build_manuals
from app.services.sources import open_manual_source
from app.utils.logging import get_logger

LOG = get_logger("startup")


def load_fallback_language(raw: Optional[str] = None) -> LanguageTag:
    value = raw if raw is not None else app_config.fallback_language()
    try:
        tag = parse_language_tag(value)
    except InvalidLanguageTagError as exc:
        raise ConfigError(f"NFH_FALLBACK_LANG {value!r} is not a valid language tag") from exc
    LOG.info("using %s as fallback language", tag)
    return tag


def build_site(
    source: Optional[str] = None,
    branch: Optional[str] = None,
    destination: Optional[str] = None,
) -> BuildReport:
    """Clone/open the manual source and publish a freshly built site."""
    source = source if source is not None else app_config.manual_source()
    branch = branch if branch is not None else app_config.manual_source_branch()
    destination = destination if destination is not None else app_config.parsed_dir()
    provider = open_manual_source(source, branch=branch)
    with provider:
        report = build_manuals(
            provider,
            destination,
            image_timeout=app_config.image_fetch_timeout(),
        )
    LOG.info("manual build complete: %s", report.summary())
    return report


def init_app(app: Any, *, build: bool = True) -> None:
    LOG.debug("init_app starting")
    fallback = load_fallback_language()
    destination = Path(app_config.parsed_dir()).resolve()
    app.config[FALLBACK_CONFIG_KEY] = fallback
    app.config[ROOT_CONFIG_KEY] = str(destination)
    if build:
        build_site(destination=str(destination))
    else:
        LOG.info("skipping build; serving existing tree at %s", destination)
    register_routes(app)
    meta = app_config.metadata()
    LOG.info(
        "%s %s startup wiring complete (%s)",
        meta["name"],
        meta["version"],
        app_config.summarize_runtime_config(),
    )


def create_app(*, build: bool = True) -> Flask:
    """Create the Flask app; the site is built before the app is returned."""
    app = Flask(app_config.APP_NAME)
    app.url_map.merge_slashes = False
    init_app(app, build=build)
    return app


__all__ = ["init_app", "create_app", "build_site", "load_fallback_language"]
