from __future__ import annotations

import logging
import os


def _level(name: str | None, default: str = "INFO") -> int:
    level = logging.getLevelName((name or os.getenv("LOG_LEVEL") or default).strip().upper())
    # getLevelName hands unknown names back as "Level <name>"
    return level if isinstance(level, int) else logging.getLevelName(default)


def setup_logging(level: str | None = None) -> None:
    """Configure root logging once. Idempotent.

    ``level`` falls back to LOG_LEVEL, then INFO; unknown names mean INFO.
    """
    root = logging.getLogger()
    root.setLevel(_level(level))
    if root.handlers:
        # someone else (pytest, gunicorn) owns the handlers
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)-8s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    ))
    root.addHandler(handler)
