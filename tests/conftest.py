"""Shared fixtures for building small manual trees on disk."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Union

import pytest  # type: ignore[import-not-found]


def _write(root: Path, files: Dict[str, Union[str, bytes]]) -> Path:
    for rel, content in files.items():
        target = root.joinpath(*rel.split("/"))
        if rel.endswith("/"):
            target.mkdir(parents=True, exist_ok=True)
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def write_tree() -> Callable[[Path, Dict[str, Union[str, bytes]]], Path]:
    """Return a helper writing ``{"a/b.md": "text", "empty/": ""}`` below a root."""
    return _write
