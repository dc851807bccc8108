"""Tests for manual source providers."""
from __future__ import annotations

from pathlib import Path

import pytest  # type: ignore[import-not-found]

from app.services import git_clone, sources
from app.services.git_clone import ClonedRepository, RepositoryAuthError
from app.services.sources import (
    DeviceRepoSource,
    EntryKind,
    LabRepoSource,
    LocalDirSource,
    SourceLocationError,
    SourcePathError,
    classify_entry,
    open_device_repo_source,
    open_manual_source,
)


@pytest.mark.parametrize(
    "name,is_dir,expected",
    [
        ("en-US.md", False, EntryKind.MARKDOWN),
        ("README.md", False, EntryKind.IGNORED),
        ("readme.md", False, EntryKind.IGNORED),
        ("LICENSE.md", False, EntryKind.IGNORED),
        ("details.json", False, EntryKind.MANIFEST),
        ("display_names.json", False, EntryKind.DISPLAY_NAMES),
        ("template.html", False, EntryKind.TEMPLATE),
        ("logo.png", False, EntryKind.OTHER),
        ("assets", True, EntryKind.ASSET_DIR),
        ("assets", False, EntryKind.OTHER),
        ("installation", True, EntryKind.PLAIN_DIR),
        ("notes.md", True, EntryKind.PLAIN_DIR),
    ],
)
def test_classify_entry(name, is_dir, expected):
    assert classify_entry(name, is_dir) is expected


def test_list_dir_is_sorted_and_classified(tmp_path, write_tree):
    write_tree(tmp_path, {"b.md": "# B", "a/": "", "template.html": "", "assets/x.png": b"x"})
    provider = LocalDirSource(tmp_path)

    entries = provider.list_dir(".")

    assert [e.name for e in entries] == ["a", "assets", "b.md", "template.html"]
    assert [e.kind for e in entries] == [
        EntryKind.PLAIN_DIR,
        EntryKind.ASSET_DIR,
        EntryKind.MARKDOWN,
        EntryKind.TEMPLATE,
    ]
    assert entries[2].path == "b.md"
    assert [e.path for e in provider.list_dir("assets")] == ["assets/x.png"]


def test_local_provider_maps_paths_unchanged(tmp_path):
    provider = LocalDirSource(tmp_path)
    path = "campaigns/generic/installation/languages/en-US.md"
    assert provider.destination_path(path) == path
    assert provider.destination_dir_path("campaigns/generic/installation/assets") == (
        "campaigns/generic/installation/assets"
    )


def test_provider_refuses_paths_outside_root(tmp_path):
    (tmp_path / "root").mkdir()
    (tmp_path / "secret.txt").write_text("nope")
    provider = LocalDirSource(tmp_path / "root")

    with pytest.raises(SourcePathError):
        provider.read_bytes("../secret.txt")
    with pytest.raises(SourcePathError):
        provider.read_bytes("/etc/passwd")
    assert provider.exists("../secret.txt") is False


def test_device_repo_maps_manual_files_below_manufacturer(tmp_path):
    provider = DeviceRepoSource(tmp_path, name="SensorX")

    assert provider.destination_path("docs/manuals/installation/languages/en-US.md") == (
        "devices/SensorX/installation/manufacturer/languages/en-US.md"
    )
    assert provider.destination_path("docs/manuals/installation/en-US.md") == (
        "devices/SensorX/installation/manufacturer/en-US.md"
    )
    assert provider.destination_dir_path("docs/manuals/installation/assets") == (
        "devices/SensorX/installation/manufacturer/assets"
    )
    assert provider.destination_dir_path("docs/manuals/installation") == (
        "devices/SensorX/installation/manufacturer"
    )


def test_device_repo_rejects_files_outside_manual_layout(tmp_path):
    provider = DeviceRepoSource(tmp_path, name="SensorX")

    with pytest.raises(SourcePathError):
        provider.destination_path("docs/manuals/en-US.md")
    with pytest.raises(SourcePathError):
        provider.destination_path("README.md")
    with pytest.raises(SourcePathError):
        provider.destination_dir_path("docs/manuals")


def test_device_repo_requires_name(tmp_path):
    with pytest.raises(ValueError):
        DeviceRepoSource(tmp_path, name="")


def test_open_manual_source_local_directory(tmp_path):
    provider = open_manual_source(str(tmp_path))
    assert isinstance(provider, LocalDirSource)
    assert provider.variant == "local"
    assert provider.root == tmp_path


def test_open_manual_source_missing_directory(tmp_path):
    with pytest.raises(SourceLocationError):
        open_manual_source(str(tmp_path / "missing"))


def test_open_manual_source_empty_location():
    with pytest.raises(SourceLocationError):
        open_manual_source("   ")


def _fake_clone(tmp_path: Path, calls: list):
    def clone(url, branch=None, timeout=None):
        calls.append((url, branch))
        path = tmp_path / git_clone.repository_name(url)
        path.mkdir(exist_ok=True)
        return ClonedRepository(url=url, path=path, name=git_clone.repository_name(url))

    return clone


def test_open_manual_source_https_clones_lab_repo(tmp_path, monkeypatch):
    calls: list = []
    monkeypatch.setattr(git_clone, "clone_repository", _fake_clone(tmp_path, calls))

    provider = open_manual_source("https://example.com/lab/manuals.git", branch="staging")

    assert isinstance(provider, LabRepoSource)
    assert provider.variant == "lab-repo"
    assert provider.name == "manuals"
    assert calls == [("https://example.com/lab/manuals.git", "staging")]

    provider.close()
    assert not (tmp_path / "manuals").exists()


def test_open_device_repo_source_names_provider_after_repo(tmp_path, monkeypatch):
    calls: list = []
    monkeypatch.setattr(git_clone, "clone_repository", _fake_clone(tmp_path, calls))

    provider = open_device_repo_source("https://example.com/org/SensorX.git")

    assert isinstance(provider, DeviceRepoSource)
    assert provider.name == "SensorX"
    assert calls == [("https://example.com/org/SensorX.git", None)]


def test_open_device_repo_source_returns_none_when_auth_needed(monkeypatch):
    def refuse(url, branch=None, timeout=None):
        raise RepositoryAuthError(f"{url} needs authentication")

    monkeypatch.setattr(git_clone, "clone_repository", refuse)

    assert open_device_repo_source("https://example.com/org/private.git") is None


def test_open_lab_repo_source_propagates_auth_failure(monkeypatch):
    def refuse(url, branch=None, timeout=None):
        raise RepositoryAuthError(f"{url} needs authentication")

    monkeypatch.setattr(git_clone, "clone_repository", refuse)

    with pytest.raises(RepositoryAuthError):
        sources.open_lab_repo_source("https://example.com/lab/private.git")
