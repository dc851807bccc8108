"""Manual source providers.

A provider is a read-only view over a directory of manual sources plus the
rule mapping a source path to the path it is published at. Three variants:

    * :class:`LocalDirSource` - a local lab directory (identity mapping)
    * :class:`LabRepoSource` - a cloned lab repository (identity mapping)
    * :class:`DeviceRepoSource` - a cloned device firmware repository whose
      ``docs/manuals/<type>/...`` tree is published below
      ``devices/<repo>/<type>/manufacturer/...``

Paths inside a provider are relative and ``/``-separated; ``"."`` is the root.
"""
from __future__ import annotations

import posixpath
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

from app.services import git_clone
from app.services.git_clone import ClonedRepository, RepositoryAuthError
from app.utils.logging import get_logger

LOG = get_logger("sources")

MARKDOWN_SUFFIX = ".md"
MANIFEST_FILE_NAME = "details.json"
DISPLAY_NAMES_FILE_NAME = "display_names.json"
TEMPLATE_FILE_NAME = "template.html"
ASSET_DIR_NAME = "assets"
IGNORED_FILE_NAMES = frozenset({"README.md", "readme.md", "LICENSE.md", "license.md"})

REPOSITORY_URL_PREFIX = "https://"
DEVICES_SEGMENT = "devices"
MANUFACTURER_SEGMENT = "manufacturer"
# docs/manuals/<type>
_DEVICE_PREFIX_DEPTH = 2


class BuildError(RuntimeError):
    """Base error for failures that abort a manual build."""


class SourcePathError(BuildError):
    """Raised when a source path does not have the shape a provider requires."""


class SourceLocationError(ValueError):
    """Raised when the configured manual source location is unusable."""


class EntryKind(str, Enum):
    MARKDOWN = "markdown"
    MANIFEST = "manifest"
    DISPLAY_NAMES = "display-names"
    ASSET_DIR = "asset-dir"
    TEMPLATE = "template"
    IGNORED = "ignored"
    PLAIN_DIR = "plain-dir"
    OTHER = "other"


def classify_entry(name: str, is_dir: bool) -> EntryKind:
    """Classify a directory entry by name and directory-ness only."""
    if is_dir:
        if name == ASSET_DIR_NAME:
            return EntryKind.ASSET_DIR
        return EntryKind.PLAIN_DIR
    if name in IGNORED_FILE_NAMES:
        return EntryKind.IGNORED
    if name.endswith(MARKDOWN_SUFFIX):
        return EntryKind.MARKDOWN
    if name == MANIFEST_FILE_NAME:
        return EntryKind.MANIFEST
    if name == DISPLAY_NAMES_FILE_NAME:
        return EntryKind.DISPLAY_NAMES
    if name == TEMPLATE_FILE_NAME:
        return EntryKind.TEMPLATE
    return EntryKind.OTHER


@dataclass(frozen=True)
class SourceEntry:
    name: str
    path: str
    is_dir: bool
    kind: EntryKind


def join_source_path(directory: str, name: str) -> str:
    if directory in ("", "."):
        return name
    return f"{directory}/{name}"


def normalize_source_path(rel_path: str) -> str:
    raw = (rel_path or ".").replace("\\", "/")
    if raw.startswith("/"):
        raise SourcePathError(f"absolute source path not allowed: {rel_path!r}")
    normalized = posixpath.normpath(raw)
    if normalized == ".." or normalized.startswith("../"):
        raise SourcePathError(f"source path escapes provider root: {rel_path!r}")
    return normalized


class SourceProvider:
    """Read-only manual tree with an identity destination mapping."""

    variant = "local"

    def __init__(self, root: Path, name: Optional[str] = None, clone: Optional[ClonedRepository] = None):
        self.root = Path(root)
        self.name = name
        self._clone = clone

    def __repr__(self) -> str:
        return f"{type(self).__name__}(root={str(self.root)!r}, name={self.name!r})"

    def __enter__(self) -> "SourceProvider":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def label(self) -> str:
        return self.name or str(self.root)

    def _resolve(self, rel_path: str) -> Path:
        normalized = normalize_source_path(rel_path)
        target = self.root if normalized == "." else self.root.joinpath(*normalized.split("/"))
        resolved_root = self.root.resolve()
        resolved = target.resolve()
        if resolved != resolved_root and resolved_root not in resolved.parents:
            raise SourcePathError(f"source path escapes provider root: {rel_path!r}")
        return target

    def list_dir(self, rel_path: str = ".") -> List[SourceEntry]:
        """List a directory sorted by name; OSError propagates."""
        directory = normalize_source_path(rel_path)
        base = self._resolve(directory)
        entries = []
        for child in sorted(base.iterdir(), key=lambda p: p.name):
            is_dir = child.is_dir()
            entries.append(
                SourceEntry(
                    name=child.name,
                    path=join_source_path(directory, child.name),
                    is_dir=is_dir,
                    kind=classify_entry(child.name, is_dir),
                )
            )
        return entries

    def read_bytes(self, rel_path: str) -> bytes:
        return self._resolve(rel_path).read_bytes()

    def exists(self, rel_path: str) -> bool:
        try:
            return self._resolve(rel_path).exists()
        except SourcePathError:
            return False

    def is_file(self, rel_path: str) -> bool:
        try:
            return self._resolve(rel_path).is_file()
        except SourcePathError:
            return False

    def destination_path(self, rel_path: str) -> str:
        return normalize_source_path(rel_path)

    def destination_dir_path(self, rel_path: str) -> str:
        return normalize_source_path(rel_path)

    def close(self) -> None:
        if self._clone is not None:
            self._clone.cleanup()
            self._clone = None


class LocalDirSource(SourceProvider):
    variant = "local"


class LabRepoSource(SourceProvider):
    variant = "lab-repo"


class DeviceRepoSource(SourceProvider):
    """Device firmware repository; manuals live under ``docs/manuals``.

    Repositories must follow the ``docs/manuals/<type>/...`` layout. Only the
    segment count is checked; the two prefix segments are replaced whatever
    their names are.
    """

    variant = "device-repo"

    def __init__(self, root: Path, name: str, clone: Optional[ClonedRepository] = None):
        if not name:
            raise ValueError("device repository sources need a repository name")
        super().__init__(root, name=name, clone=clone)

    def _remap(self, rel_path: str, min_segments: int) -> str:
        normalized = normalize_source_path(rel_path)
        parts = [] if normalized == "." else normalized.split("/")
        if len(parts) < min_segments:
            raise SourcePathError(
                f"{rel_path!r} in device repository {self.name} is not below docs/manuals/<type>/"
            )
        manual_type = parts[_DEVICE_PREFIX_DEPTH]
        rest = parts[_DEVICE_PREFIX_DEPTH + 1:]
        return "/".join([DEVICES_SEGMENT, self.name, manual_type, MANUFACTURER_SEGMENT, *rest])

    def destination_path(self, rel_path: str) -> str:
        # docs/manuals/installation/languages/en-US.md
        #   -> devices/<repo>/installation/manufacturer/languages/en-US.md
        return self._remap(rel_path, _DEVICE_PREFIX_DEPTH + 2)

    def destination_dir_path(self, rel_path: str) -> str:
        return self._remap(rel_path, _DEVICE_PREFIX_DEPTH + 1)


def is_repository_location(location: str) -> bool:
    return (location or "").strip().startswith(REPOSITORY_URL_PREFIX)


def open_local_source(path: str) -> LocalDirSource:
    root = Path(path).expanduser()
    if not root.is_dir():
        raise SourceLocationError(f"manual source directory {path!r} does not exist")
    LOG.info("using local directory %s as manual source", path)
    return LocalDirSource(root)


def open_lab_repo_source(url: str, branch: Optional[str] = None) -> LabRepoSource:
    """Clone the lab repository; every clone failure is fatal here."""
    LOG.info("using git repository %s as manual source", url)
    if branch:
        LOG.info("using branch %s", branch)
    clone = git_clone.clone_repository(url, branch=branch)
    return LabRepoSource(clone.path, name=clone.name, clone=clone)


def open_device_repo_source(url: str) -> Optional[DeviceRepoSource]:
    """Clone a device repository; ``None`` when it needs authentication."""
    try:
        clone = git_clone.clone_repository(url)
    except RepositoryAuthError:
        LOG.warning("device repo for %s could not be opened because it needs authentication", url)
        return None
    return DeviceRepoSource(clone.path, name=clone.name, clone=clone)


def open_manual_source(location: str, branch: Optional[str] = None) -> SourceProvider:
    """Select the provider variant for a configured source location."""
    location = (location or "").strip()
    if not location:
        raise SourceLocationError("manual source location is empty")
    if is_repository_location(location):
        return open_lab_repo_source(location, branch=branch)
    return open_local_source(location)


__all__ = [
    "BuildError",
    "SourcePathError",
    "SourceLocationError",
    "EntryKind",
    "SourceEntry",
    "SourceProvider",
    "LocalDirSource",
    "LabRepoSource",
    "DeviceRepoSource",
    "classify_entry",
    "join_source_path",
    "normalize_source_path",
    "is_repository_location",
    "open_local_source",
    "open_lab_repo_source",
    "open_device_repo_source",
    "open_manual_source",
    "MANUFACTURER_SEGMENT",
    "TEMPLATE_FILE_NAME",
]
