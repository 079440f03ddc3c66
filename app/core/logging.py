"""
Logging setup.

Everything goes to stdout; gunicorn / the container runtime captures it.
Modules obtain their logger with `logging.getLogger(__name__)`.
"""
from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stdout handler on the root logger (idempotent)."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in root.handlers:
        if getattr(handler, "_chapters_handler", False):
            return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler._chapters_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
