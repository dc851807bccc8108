"""Application configuration accessors.

Centralizes environment variable parsing & defaults. Variable names keep the
``NFH_`` prefix used by existing deployments so operators do not need to
change their configs.
"""
from __future__ import annotations

import os
from functools import lru_cache

APP_NAME = "manual_server"
APP_VERSION = "1.0.0"
APP_DESCRIPTION = "Builds and serves localized device manuals"

DEFAULT_SOURCE = "./source"
DEFAULT_PARSED_DIR = "./parsed"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_IMAGE_FETCH_TIMEOUT = 30.0
DEFAULT_GIT_CLONE_TIMEOUT = 300.0


class ConfigError(RuntimeError):
    """Raised when a required setting is missing or invalid."""


def _raw_env(name: str, default: str | None = None) -> str | None:
    val = os.getenv(name)
    return val if val is not None else default


def _stripped_env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def env_float(name: str, default: float) -> float:
    raw = _stripped_env(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def manual_source() -> str:
    """Where manuals are pulled from (NFH_MANUAL_SOURCE).

    A local directory (e.g. ``./source``) or a git repository URL starting
    with ``https://``.
    """
    return _stripped_env("NFH_MANUAL_SOURCE") or DEFAULT_SOURCE


def manual_source_branch() -> str | None:
    """Optional branch for a repository source (NFH_MANUAL_SOURCE_BRANCH)."""
    return _stripped_env("NFH_MANUAL_SOURCE_BRANCH")


def fallback_language() -> str:
    """Raw fallback language (NFH_FALLBACK_LANG); required, no default.

    Validity as a language tag is checked at startup by the wiring layer.
    """
    value = _stripped_env("NFH_FALLBACK_LANG")
    if value is None:
        raise ConfigError("environment variable NFH_FALLBACK_LANG was not set")
    return value


def parsed_dir() -> str:
    """Directory the generated site is published to (NFH_PARSED_DIR)."""
    return _stripped_env("NFH_PARSED_DIR") or DEFAULT_PARSED_DIR


def log_level_name() -> str:
    return _raw_env("NFH_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()  # type: ignore[union-attr]


def image_fetch_timeout() -> float:
    return env_float("NFH_IMAGE_FETCH_TIMEOUT", DEFAULT_IMAGE_FETCH_TIMEOUT)


def git_clone_timeout() -> float:
    return env_float("NFH_GIT_CLONE_TIMEOUT", DEFAULT_GIT_CLONE_TIMEOUT)


@lru_cache(maxsize=1)
def metadata() -> dict:
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "description": APP_DESCRIPTION,
    }


def listen_host() -> str:
    """Interface the development server binds to (NFH_HOST)."""
    return _stripped_env("NFH_HOST") or "0.0.0.0"


def listen_port() -> int:
    """Port the development server binds to (NFH_PORT, default 8080)."""
    raw = _stripped_env("NFH_PORT")
    if raw is None:
        return 8080
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"NFH_PORT must be an integer, got {raw!r}") from exc


def summarize_runtime_config() -> dict:
    return {
        "source": manual_source(),
        "source_branch": manual_source_branch(),
        "parsed_dir": parsed_dir(),
        "log_level": log_level_name(),
    }


__all__ = [
    "APP_NAME",
    "APP_VERSION",
    "APP_DESCRIPTION",
    "ConfigError",
    "env_float",
    "manual_source",
    "manual_source_branch",
    "fallback_language",
    "parsed_dir",
    "log_level_name",
    "image_fetch_timeout",
    "git_clone_timeout",
    "listen_host",
    "listen_port",
    "metadata",
    "summarize_runtime_config",
]

