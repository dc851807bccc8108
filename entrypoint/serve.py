#!/usr/bin/env python3
"""Manual server entrypoint.

Responsibilities:
    1. Build the manual site from the configured source (before binding).
    2. Expose the Flask ``app`` for production WSGI servers
       (``gunicorn entrypoint.serve:app``) or run the development server.
"""

from __future__ import annotations

import os
import sys

BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if BASE_DIR not in sys.path:
    sys.path.insert(0, BASE_DIR)

from app import config as app_config  # noqa: E402
from app.startup.wiring import create_app  # noqa: E402

app = create_app()


if __name__ == "__main__":
    app.run(host=app_config.listen_host(), port=app_config.listen_port())
