"""Tests for the manual site builder."""
from __future__ import annotations

import json
from pathlib import Path

import pytest  # type: ignore[import-not-found]

from app.services.git_clone import CloneError
from app.services.manual_builder import (
    BuildSession,
    BuildSessionStateError,
    DestinationCollisionError,
    ManifestError,
    RepositoryCloneError,
    build_manuals,
    read_manifest_repository,
)
from app.services.markdown_renderer import TemplateNotFoundError
from app.services.sources import DeviceRepoSource, LocalDirSource

PNG = b"\x89PNG\r\n\x1a\nfake-png"
TEMPLATE = '<html lang="{{ language }}"><title>{{ title }}</title><main>{{ body }}</main></html>'
SENSOR_URL = "https://example.com/org/SensorX.git"
DISPLAY_NAMES = b'{"en-US": "Sensor X", "nl-NL": "Sensor X"}'


@pytest.fixture
def lab_tree(tmp_path, write_tree):
    return write_tree(
        tmp_path / "lab",
        {
            "template.html": TEMPLATE,
            "README.md": "# Lab manuals",
            "campaigns/generic/installation/languages/en-US.md": "# Install\n\nSteps.\n",
            "campaigns/generic/installation/languages/nl-NL.md": "# Installeren\n\nStappen.\n",
            "campaigns/generic/installation/assets/pic.png": PNG,
            "campaigns/generic/installation/assets/sub/deep.txt": "deep",
            "campaigns/generic/installation/notes.txt": "not published",
            "devices/SensorX/display_names.json": DISPLAY_NAMES,
            "devices/SensorX/details.json": json.dumps({"firmware_repository": SENSOR_URL}),
            "devices/SensorX/installation/generic/languages/en-US.md": "# Generic sensor\n",
        },
    )


@pytest.fixture
def device_tree(tmp_path, write_tree):
    return write_tree(
        tmp_path / "SensorX",
        {
            "template.html": TEMPLATE,
            "README.md": "# Firmware",
            "docs/manuals/installation/languages/en-US.md": "# Manufacturer install\n",
            "docs/manuals/installation/assets/board.png": PNG,
        },
    )


class _TrackingDeviceSource(DeviceRepoSource):
    closed = False

    def close(self) -> None:
        type(self).closed = True
        super().close()


def _device_opener(device_root: Path, calls: list):
    def opener(url):
        calls.append(url)
        return _TrackingDeviceSource(device_root, name="SensorX")

    return opener


def _tree_snapshot(root: Path) -> dict:
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


def test_full_build_publishes_pages_assets_and_device_manuals(tmp_path, lab_tree, device_tree):
    out = tmp_path / "parsed"
    calls: list = []

    report = build_manuals(LocalDirSource(lab_tree), out, open_device_source=_device_opener(device_tree, calls))

    files = _tree_snapshot(out)
    assert sorted(files) == [
        "campaigns/generic/installation/assets/pic.png",
        "campaigns/generic/installation/assets/sub/deep.txt",
        "campaigns/generic/installation/en-US/index.html",
        "campaigns/generic/installation/nl-NL/index.html",
        "devices/SensorX/display_names.json",
        "devices/SensorX/installation/generic/en-US/index.html",
        "devices/SensorX/installation/manufacturer/assets/board.png",
        "devices/SensorX/installation/manufacturer/en-US/index.html",
    ]
    assert files["devices/SensorX/display_names.json"] == DISPLAY_NAMES
    assert files["campaigns/generic/installation/assets/pic.png"] == PNG
    assert b"<title>Installeren</title>" in files["campaigns/generic/installation/nl-NL/index.html"]
    assert b"Manufacturer install" in files["devices/SensorX/installation/manufacturer/en-US/index.html"]

    assert calls == [SENSOR_URL]
    assert report.pages == 4
    assert report.files_copied == 4
    assert report.repositories == ["SensorX"]
    assert report.skipped_repositories == []
    assert report.destination == out.resolve()
    assert _TrackingDeviceSource.closed is True


def test_build_is_idempotent(tmp_path, lab_tree, device_tree):
    out = tmp_path / "parsed"
    build_manuals(LocalDirSource(lab_tree), out, open_device_source=_device_opener(device_tree, []))
    first = _tree_snapshot(out)

    build_manuals(LocalDirSource(lab_tree), out, open_device_source=_device_opener(device_tree, []))

    assert _tree_snapshot(out) == first
    assert sorted(p.name for p in tmp_path.iterdir()) == ["SensorX", "lab", "parsed"]


def test_rebuild_drops_removed_sources(tmp_path, lab_tree, device_tree):
    out = tmp_path / "parsed"
    build_manuals(LocalDirSource(lab_tree), out, open_device_source=_device_opener(device_tree, []))
    (lab_tree / "campaigns/generic/installation/languages/nl-NL.md").unlink()

    build_manuals(LocalDirSource(lab_tree), out, open_device_source=_device_opener(device_tree, []))

    assert not (out / "campaigns/generic/installation/nl-NL").exists()
    assert (out / "campaigns/generic/installation/en-US/index.html").is_file()


def test_repository_needing_auth_is_skipped(tmp_path, lab_tree):
    out = tmp_path / "parsed"

    report = build_manuals(LocalDirSource(lab_tree), out, open_device_source=lambda url: None)

    assert report.skipped_repositories == [SENSOR_URL]
    assert report.repositories == []
    assert not (out / "devices/SensorX/installation/manufacturer").exists()
    assert (out / "devices/SensorX/installation/generic/en-US/index.html").is_file()


def test_clone_failure_aborts_build(tmp_path, lab_tree):
    def broken(url):
        raise CloneError("network down")

    with pytest.raises(RepositoryCloneError):
        build_manuals(LocalDirSource(lab_tree), tmp_path / "parsed", open_device_source=broken)


def test_repeated_repository_is_expanded_once(tmp_path, lab_tree, device_tree, write_tree):
    write_tree(
        lab_tree,
        {"energy_queries/alias/details.json": json.dumps({"firmware_repository": SENSOR_URL})},
    )
    calls: list = []

    build_manuals(LocalDirSource(lab_tree), tmp_path / "parsed", open_device_source=_device_opener(device_tree, calls))

    assert calls == [SENSOR_URL]


def test_failed_build_keeps_published_tree(tmp_path, lab_tree, device_tree):
    out = tmp_path / "parsed"
    build_manuals(LocalDirSource(lab_tree), out, open_device_source=_device_opener(device_tree, []))
    before = _tree_snapshot(out)
    (lab_tree / "template.html").unlink()

    with pytest.raises(TemplateNotFoundError):
        build_manuals(LocalDirSource(lab_tree), out, open_device_source=_device_opener(device_tree, []))

    assert _tree_snapshot(out) == before
    assert sorted(p.name for p in tmp_path.iterdir()) == ["SensorX", "lab", "parsed"]


def test_destination_collision_is_an_error(tmp_path, write_tree):
    lab = write_tree(
        tmp_path / "lab",
        {
            "template.html": TEMPLATE,
            "manual/en-US.md": "# One\n",
            "manual/languages/en-US.md": "# Two\n",
        },
    )

    with pytest.raises(DestinationCollisionError):
        build_manuals(LocalDirSource(lab), tmp_path / "parsed")
    assert not (tmp_path / "parsed").exists()


def test_malformed_manifest(tmp_path, write_tree):
    lab = write_tree(tmp_path / "lab", {"devices/X/details.json": "{not json"})
    with pytest.raises(ManifestError):
        build_manuals(LocalDirSource(lab), tmp_path / "parsed", open_device_source=lambda url: None)


@pytest.mark.parametrize(
    "raw",
    [b"[]", b"{}", b'{"firmware_repository": 5}', b'{"firmware_repository": "  "}'],
)
def test_read_manifest_repository_rejects(raw):
    with pytest.raises(ManifestError):
        read_manifest_repository(raw, "details.json")


def test_read_manifest_repository_ok():
    raw = b'{"firmware_repository": " https://example.com/a.git ", "name": "A"}'
    assert read_manifest_repository(raw, "details.json") == "https://example.com/a.git"


def test_session_lifecycle_is_enforced(tmp_path, lab_tree):
    session = BuildSession(tmp_path / "parsed")
    with pytest.raises(BuildSessionStateError):
        session.populate(LocalDirSource(lab_tree))

    session.open()
    with pytest.raises(BuildSessionStateError):
        session.open()
    session.abort()
    with pytest.raises(BuildSessionStateError):
        session.commit()
    assert not (tmp_path / "parsed").exists()


def test_empty_source_publishes_empty_tree(tmp_path):
    report = build_manuals(None, tmp_path / "parsed")
    assert (tmp_path / "parsed").is_dir()
    assert list((tmp_path / "parsed").iterdir()) == []
    assert report.pages == 0
