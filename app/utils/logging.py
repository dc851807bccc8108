"""Logging for the manual builder and server.

Every module logs through a child of the ``manuals`` logger
(``get_logger("sources")`` -> ``manuals.sources``). A single stream handler
sits on that parent; its level comes from `app.config.log_level_name()`.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional

from app import config as app_config

ROOT_LOGGER_NAME = "manuals"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_LOCK = threading.Lock()
_ROOT: Optional[logging.Logger] = None


def _level(level_name: str) -> int:
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.INFO


def _root_logger() -> logging.Logger:
    global _ROOT
    if _ROOT is not None:
        return _ROOT
    with _LOCK:
        if _ROOT is None:
            root = logging.getLogger(ROOT_LOGGER_NAME)
            root.setLevel(_level(app_config.log_level_name()))
            if not root.handlers:
                handler = logging.StreamHandler()
                handler.setFormatter(logging.Formatter(LOG_FORMAT))
                root.addHandler(handler)
            root.propagate = False
            _ROOT = root
    return _ROOT


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    root = _root_logger()
    if not name or name == ROOT_LOGGER_NAME:
        return root
    if name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return root.getChild(name)


__all__ = ["get_logger", "ROOT_LOGGER_NAME"]
