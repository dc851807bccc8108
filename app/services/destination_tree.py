"""Writable destination filesystem for generated manuals.

Paths handed to a :class:`DestinationTree` are relative, ``/``-separated and
may not escape the tree root. The publish helpers implement the
build-to-staging-then-swap strategy: a new tree is written next to the
published directory and renamed into place only once it is complete.
"""
from __future__ import annotations

import os
import posixpath
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO, Union

from app.utils.logging import get_logger

LOG = get_logger("destination_tree")

_STAGING_PREFIX = ".staging-"
_RETIRED_PREFIX = ".retired-"


class DestinationPathError(ValueError):
    """Raised when a destination path is absolute or escapes the tree root."""


def normalize_relative_path(rel_path: str) -> str:
    """Return ``rel_path`` normalized, ``"."`` for the root.

    Raises DestinationPathError for absolute paths or ``..`` escapes.
    """
    raw = (rel_path or ".").replace("\\", "/")
    if raw.startswith("/"):
        raise DestinationPathError(f"absolute path not allowed: {rel_path!r}")
    normalized = posixpath.normpath(raw)
    if normalized == ".." or normalized.startswith("../"):
        raise DestinationPathError(f"path escapes tree root: {rel_path!r}")
    return normalized


class DestinationTree:
    """Capability wrapper around one directory: create files, make dirs, remove subtrees."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def __repr__(self) -> str:
        return f"DestinationTree({str(self.root)!r})"

    def resolve(self, rel_path: str) -> Path:
        normalized = normalize_relative_path(rel_path)
        if normalized == ".":
            return self.root
        return self.root.joinpath(*normalized.split("/"))

    def make_dirs(self, rel_path: str) -> Path:
        target = self.resolve(rel_path)
        target.mkdir(parents=True, exist_ok=True)
        return target

    def create_file(self, rel_path: str) -> BinaryIO:
        """Create or truncate a file, creating missing parent directories."""
        target = self.resolve(rel_path)
        if target == self.root:
            raise DestinationPathError("cannot create a file at the tree root")
        target.parent.mkdir(parents=True, exist_ok=True)
        return target.open("wb")

    def write_bytes(self, rel_path: str, data: bytes) -> None:
        with self.create_file(rel_path) as fh:
            fh.write(data)

    def exists(self, rel_path: str) -> bool:
        return self.resolve(rel_path).exists()

    def remove_all(self, rel_path: str = ".") -> None:
        """Remove ``rel_path`` and everything below it; removing the root empties it."""
        target = self.resolve(rel_path)
        if not target.exists():
            return
        if target == self.root:
            for child in target.iterdir():
                _remove_path(child)
            return
        _remove_path(target)


def _remove_path(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def create_staging_tree(published_root: Union[str, Path]) -> DestinationTree:
    """Create an empty staging tree next to ``published_root``.

    Staging lives in the same parent directory so the final swap is a rename
    on one filesystem.
    """
    published = Path(published_root).resolve()
    published.parent.mkdir(parents=True, exist_ok=True)
    staging = tempfile.mkdtemp(prefix=f"{_STAGING_PREFIX}{published.name}-", dir=str(published.parent))
    LOG.debug("staging tree created at %s", staging)
    return DestinationTree(staging)


def publish_staging_tree(staging: DestinationTree, published_root: Union[str, Path]) -> Path:
    """Swap ``staging`` into ``published_root`` and drop the previous tree.

    Two renames: the published tree is moved aside, then staging takes its
    place. ``published_root`` does not exist between them, so callers must not
    serve from it while publishing.
    """
    published = Path(published_root).resolve()
    retired: Path | None = None
    if published.exists():
        retired = Path(tempfile.mkdtemp(prefix=f"{_RETIRED_PREFIX}{published.name}-", dir=str(published.parent)))
        # mkdtemp reserved the name; the rename below needs it free
        retired.rmdir()
        os.replace(published, retired)
    try:
        os.replace(staging.root, published)
    except OSError:
        if retired is not None:
            os.replace(retired, published)
        raise
    staging.root = published
    if retired is not None:
        shutil.rmtree(retired, ignore_errors=True)
    LOG.info("published manual tree at %s", published)
    return published


def discard_staging_tree(staging: DestinationTree) -> None:
    if staging.root.exists():
        shutil.rmtree(staging.root, ignore_errors=True)
        LOG.debug("staging tree discarded at %s", staging.root)


__all__ = [
    "DestinationTree",
    "DestinationPathError",
    "normalize_relative_path",
    "create_staging_tree",
    "publish_staging_tree",
    "discard_staging_tree",
]
