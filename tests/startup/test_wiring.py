"""Tests for application wiring (config validation, build before serve)."""
from __future__ import annotations

import pytest  # type: ignore[import-not-found]

from app.config import ConfigError
from app.routes.manuals import FALLBACK_CONFIG_KEY, ROOT_CONFIG_KEY
from app.services.sources import SourceLocationError
from app.startup.wiring import create_app, load_fallback_language

TEMPLATE = '<html lang="{{ language }}"><title>{{ title }}</title>{{ body }}</html>'


@pytest.fixture
def env(monkeypatch, tmp_path, write_tree):
    source = write_tree(
        tmp_path / "source",
        {
            "template.html": TEMPLATE,
            "campaigns/generic/installation/languages/en-US.md": "# Install\n",
            "campaigns/generic/installation/languages/nl-NL.md": "# Installeren\n",
        },
    )
    monkeypatch.setenv("NFH_MANUAL_SOURCE", str(source))
    monkeypatch.setenv("NFH_PARSED_DIR", str(tmp_path / "parsed"))
    monkeypatch.setenv("NFH_FALLBACK_LANG", "nl-NL")
    monkeypatch.delenv("NFH_MANUAL_SOURCE_BRANCH", raising=False)
    return tmp_path


def test_create_app_builds_then_serves(env):
    app = create_app()

    assert app.config[ROOT_CONFIG_KEY] == str((env / "parsed").resolve())
    assert str(app.config[FALLBACK_CONFIG_KEY]) == "nl-NL"
    assert (env / "parsed/campaigns/generic/installation/nl-NL/index.html").is_file()

    client = app.test_client()
    resp = client.get("/campaigns/generic/installation/")
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/campaigns/generic/installation/nl-NL/")

    page = client.get("/campaigns/generic/installation/en-US/")
    assert page.status_code == 200
    assert b"<title>Install</title>" in page.data
    assert client.get("/healthcheck").data == b"."


def test_create_app_without_build_serves_existing_tree(env):
    app = create_app(build=False)
    assert not (env / "parsed").exists()
    assert app.test_client().get("/campaigns/generic/installation/").status_code == 404


def test_missing_fallback_language(env, monkeypatch):
    monkeypatch.delenv("NFH_FALLBACK_LANG")
    with pytest.raises(ConfigError):
        create_app()
    assert not (env / "parsed").exists()


@pytest.mark.parametrize("raw", ["generic", "not a tag", "en-US.x"])
def test_invalid_fallback_language(raw):
    with pytest.raises(ConfigError):
        load_fallback_language(raw)


def test_missing_source_directory_fails_startup(env, monkeypatch):
    monkeypatch.setenv("NFH_MANUAL_SOURCE", str(env / "nowhere"))
    with pytest.raises(SourceLocationError):
        create_app()
