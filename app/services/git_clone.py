"""Shallow git clones of manual repositories.

Uses the ``git`` command line client. Credential prompts are disabled so a
private repository fails fast with :class:`RepositoryAuthError` instead of
blocking the build on a terminal prompt.
"""
from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from app import config as app_config
from app.utils.logging import get_logger

LOG = get_logger("git_clone")

CLONE_DIR_PREFIX = "manual-server-git_"

# stderr fragments git prints when credentials would be needed
_AUTH_FAILURE_MARKERS = (
    "terminal prompts disabled",
    "could not read username",
    "could not read password",
    "authentication failed",
    "invalid username or password",
    "http basic: access denied",
)


class CloneError(RuntimeError):
    """Raised when a repository cannot be cloned."""


class RepositoryAuthError(CloneError):
    """Raised when a repository requires credentials that were not supplied."""


@dataclass(frozen=True)
class ClonedRepository:
    url: str
    path: Path
    name: str
    revision: Optional[str] = None

    def cleanup(self) -> None:
        shutil.rmtree(self.path, ignore_errors=True)


def repository_name(url: str) -> str:
    """Return the base name of a repository URL without a ``.git`` suffix."""
    trimmed = (url or "").strip().rstrip("/")
    base = trimmed.rsplit("/", 1)[-1]
    if base.endswith(".git"):
        base = base[: -len(".git")]
    if not base:
        raise CloneError(f"cannot derive repository name from {url!r}")
    return base


def _git_env() -> dict:
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_ASKPASS", "echo")
    return env


def _is_auth_failure(stderr: str) -> bool:
    lowered = (stderr or "").lower()
    return any(marker in lowered for marker in _AUTH_FAILURE_MARKERS)


def _head_revision(path: Path) -> Optional[str]:
    try:
        result = subprocess.run(
            ["git", "-C", str(path), "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            timeout=30,
            env=_git_env(),
        )
    except (OSError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def clone_repository(url: str, branch: Optional[str] = None, timeout: Optional[float] = None) -> ClonedRepository:
    """Clone ``url`` (depth 1) into a fresh temporary directory.

    The default branch is used unless ``branch`` is given. The caller owns the
    returned directory and releases it with :meth:`ClonedRepository.cleanup`.
    """
    name = repository_name(url)
    target = Path(tempfile.mkdtemp(prefix=CLONE_DIR_PREFIX))
    cmd = ["git", "clone", "--depth", "1"]
    if branch:
        cmd += ["--branch", branch]
    cmd += [url, str(target)]
    effective_timeout = timeout if timeout is not None else app_config.git_clone_timeout()
    LOG.debug("running %s", " ".join(cmd))
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=effective_timeout,
            env=_git_env(),
        )
    except subprocess.TimeoutExpired as exc:
        shutil.rmtree(target, ignore_errors=True)
        raise CloneError(f"git clone of {url} timed out after {effective_timeout}s") from exc
    except OSError as exc:
        shutil.rmtree(target, ignore_errors=True)
        raise CloneError(f"git executable unavailable: {exc}") from exc

    if result.returncode != 0:
        shutil.rmtree(target, ignore_errors=True)
        stderr = (result.stderr or "").strip()
        if _is_auth_failure(stderr):
            raise RepositoryAuthError(f"{url} needs authentication")
        raise CloneError(f"git clone of {url} failed (exit {result.returncode}): {stderr}")

    revision = _head_revision(target)
    LOG.info("cloned %s at %s", url, revision or "unknown revision")
    return ClonedRepository(url=url, path=target, name=name, revision=revision)


__all__ = [
    "CloneError",
    "RepositoryAuthError",
    "ClonedRepository",
    "clone_repository",
    "repository_name",
]
