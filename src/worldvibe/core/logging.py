"""Logging bootstrap for the WorldVibe service."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the ``worldvibe`` logger tree.

    Calling this more than once only updates the level.
    """
    root = logging.getLogger("worldvibe")
    root.setLevel(level.upper())
    if not any(getattr(h, "_worldvibe", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._worldvibe = True  # type: ignore[attr-defined]
        root.addHandler(handler)
