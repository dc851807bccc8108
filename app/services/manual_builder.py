"""Manual site builder.

Walks a source provider and writes the static manual site:

    * ``*.md``               -> rendered page (`markdown_renderer`)
    * ``details.json``       -> the device repository it names is cloned and
                                walked as well, into the same output tree
    * ``display_names.json`` -> copied byte for byte
    * ``assets/``            -> copied recursively
    * other directories      -> walked

The walk uses a worklist of ``(provider, directory)`` pairs so repositories
discovered mid-walk are queued rather than recursed into. Output goes to a
staging tree that replaces the published tree only when the whole build
succeeded (see :class:`BuildSession`).
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from app.services import sources
from app.services.destination_tree import (
    DestinationTree,
    create_staging_tree,
    discard_staging_tree,
    publish_staging_tree,
)
from app.services.git_clone import CloneError
from app.services.markdown_renderer import render_page
from app.services.sources import BuildError, EntryKind, SourceProvider
from app.utils.logging import get_logger

LOG = get_logger("manual_builder")

MANIFEST_REPOSITORY_FIELD = "firmware_repository"

_SKIPPED_KINDS = {EntryKind.IGNORED, EntryKind.TEMPLATE, EntryKind.OTHER}


class ManifestError(BuildError):
    """Raised when a details.json manifest is malformed."""


class DestinationCollisionError(BuildError):
    """Raised when two source files map to the same published path."""


class RepositoryCloneError(BuildError):
    """Raised when a device repository named by a manifest cannot be cloned."""


class BuildSessionStateError(RuntimeError):
    """Raised when session lifecycle methods are called out of order."""


@dataclass
class BuildReport:
    pages: int = 0
    files_copied: int = 0
    repositories: List[str] = field(default_factory=list)
    skipped_repositories: List[str] = field(default_factory=list)
    destination: Optional[Path] = None

    def summary(self) -> Dict[str, object]:
        return {
            "pages": self.pages,
            "files_copied": self.files_copied,
            "repositories": list(self.repositories),
            "skipped_repositories": list(self.skipped_repositories),
            "destination": str(self.destination) if self.destination else None,
        }


def read_manifest_repository(raw: bytes, manifest_path: str) -> str:
    """Return the ``firmware_repository`` URL declared in a manifest."""
    try:
        data = json.loads(raw.decode("utf-8-sig"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise ManifestError(f"{manifest_path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ManifestError(f"{manifest_path} must contain a JSON object")
    url = data.get(MANIFEST_REPOSITORY_FIELD)
    if not isinstance(url, str) or not url.strip():
        raise ManifestError(f"{manifest_path} has no {MANIFEST_REPOSITORY_FIELD} string")
    return url.strip()


DeviceSourceOpener = Callable[[str], Optional[SourceProvider]]
WorkItem = Tuple[SourceProvider, str]


class BuildSession:
    """One build run: open staging -> populate -> commit (or abort).

    Usable as a context manager which commits on success and aborts on error.
    """

    def __init__(
        self,
        destination_root: Union[str, Path],
        *,
        open_device_source: Optional[DeviceSourceOpener] = None,
        image_timeout: Optional[float] = None,
    ):
        self.destination_root = Path(destination_root)
        self.report = BuildReport()
        self.tree: Optional[DestinationTree] = None
        self.state = "new"
        self._open_device_source = open_device_source
        self._image_timeout = image_timeout
        self._emitted: Dict[str, str] = {}
        self._expanded_urls: Set[str] = set()
        self._owned_providers: List[SourceProvider] = []

    def __enter__(self) -> "BuildSession":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.commit()
        else:
            self.abort()

    # lifecycle -------------------------------------------------------------

    def open(self) -> DestinationTree:
        if self.state != "new":
            raise BuildSessionStateError(f"cannot open a session in state {self.state}")
        self.tree = create_staging_tree(self.destination_root)
        self.state = "open"
        return self.tree

    def commit(self) -> BuildReport:
        self._require_open()
        try:
            self.report.destination = publish_staging_tree(self.tree, self.destination_root)  # type: ignore[arg-type]
        except OSError:
            self.abort()
            raise
        self.state = "committed"
        self._close_providers()
        LOG.info(
            "generated folder structure to be served (pages=%s files=%s repositories=%s)",
            self.report.pages,
            self.report.files_copied,
            len(self.report.repositories),
        )
        return self.report

    def abort(self) -> None:
        if self.tree is not None and self.state == "open":
            discard_staging_tree(self.tree)
        self.state = "aborted"
        self._close_providers()

    def _require_open(self) -> None:
        if self.state != "open" or self.tree is None:
            raise BuildSessionStateError(f"session is {self.state}, expected open")

    def _close_providers(self) -> None:
        while self._owned_providers:
            self._owned_providers.pop().close()

    # walk ------------------------------------------------------------------

    def populate(self, provider: Optional[SourceProvider]) -> BuildReport:
        """Transform ``provider`` (and every repository it leads to) into the staging tree."""
        self._require_open()
        if provider is None:
            return self.report
        stack: List[WorkItem] = [(provider, ".")]
        while stack:
            current, directory = stack.pop()
            stack.extend(reversed(self._process_directory(current, directory)))
        return self.report

    def _process_directory(self, provider: SourceProvider, directory: str) -> List[WorkItem]:
        try:
            entries = provider.list_dir(directory)
        except OSError as exc:
            raise BuildError(f"cannot read directory {directory} in {provider.label}: {exc}") from exc

        pending: List[WorkItem] = []
        for entry in entries:
            kind = entry.kind
            if kind in _SKIPPED_KINDS:
                continue
            if kind is EntryKind.MARKDOWN:
                self._render(provider, entry.path)
            elif kind is EntryKind.MANIFEST:
                nested = self._expand_manifest(provider, entry.path)
                if nested is not None:
                    pending.append((nested, "."))
            elif kind is EntryKind.DISPLAY_NAMES:
                self._copy_file(provider, entry.path)
            elif kind is EntryKind.ASSET_DIR:
                self._copy_dir(provider, entry.path)
            elif kind is EntryKind.PLAIN_DIR:
                pending.append((provider, entry.path))
        return pending

    def _render(self, provider: SourceProvider, path: str) -> None:
        try:
            page = render_page(provider, path, image_timeout=self._image_timeout)
        except OSError as exc:
            raise BuildError(f"cannot render {path} in {provider.label}: {exc}") from exc
        self._write(page.destination_path, page.html.encode("utf-8"), provider, path)
        self.report.pages += 1

    def _copy_file(self, provider: SourceProvider, path: str) -> None:
        destination = provider.destination_path(path)
        try:
            data = provider.read_bytes(path)
        except OSError as exc:
            raise BuildError(f"cannot read {path} in {provider.label}: {exc}") from exc
        self._write(destination, data, provider, path)
        self.report.files_copied += 1

    def _copy_dir(self, provider: SourceProvider, path: str) -> None:
        directories = [path]
        while directories:
            directory = directories.pop()
            self.tree.make_dirs(provider.destination_dir_path(directory))  # type: ignore[union-attr]
            try:
                entries = provider.list_dir(directory)
            except OSError as exc:
                raise BuildError(f"cannot read directory {directory} in {provider.label}: {exc}") from exc
            for entry in entries:
                if entry.is_dir:
                    directories.append(entry.path)
                else:
                    self._copy_file(provider, entry.path)

    def _write(self, destination: str, data: bytes, provider: SourceProvider, source_path: str) -> None:
        origin = f"{provider.label}:{source_path}"
        previous = self._emitted.get(destination)
        if previous is not None:
            raise DestinationCollisionError(f"{origin} and {previous} both map to {destination}")
        self._emitted[destination] = origin
        try:
            self.tree.write_bytes(destination, data)  # type: ignore[union-attr]
        except OSError as exc:
            raise BuildError(f"cannot write {destination}: {exc}") from exc

    def _expand_manifest(self, provider: SourceProvider, path: str) -> Optional[SourceProvider]:
        try:
            raw = provider.read_bytes(path)
        except OSError as exc:
            raise BuildError(f"cannot read {path} in {provider.label}: {exc}") from exc
        url = read_manifest_repository(raw, path)
        if url in self._expanded_urls:
            LOG.debug("repository %s already expanded in this build; skipping %s", url, path)
            return None
        self._expanded_urls.add(url)

        opener = self._open_device_source or sources.open_device_repo_source
        try:
            nested = opener(url)
        except CloneError as exc:
            raise RepositoryCloneError(f"cannot clone {url} named in {path}: {exc}") from exc
        if nested is None:
            self.report.skipped_repositories.append(url)
            return None
        self._owned_providers.append(nested)
        self.report.repositories.append(nested.label)
        LOG.info("expanding device repository %s from %s", url, path)
        return nested


def build_manuals(
    provider: Optional[SourceProvider],
    destination_root: Union[str, Path],
    *,
    open_device_source: Optional[DeviceSourceOpener] = None,
    image_timeout: Optional[float] = None,
) -> BuildReport:
    """Build the whole manual site from ``provider`` into ``destination_root``."""
    session = BuildSession(
        destination_root,
        open_device_source=open_device_source,
        image_timeout=image_timeout,
    )
    with session:
        session.populate(provider)
    return session.report


__all__ = [
    "BuildError",
    "BuildReport",
    "BuildSession",
    "BuildSessionStateError",
    "DestinationCollisionError",
    "ManifestError",
    "RepositoryCloneError",
    "build_manuals",
    "read_manifest_repository",
]
