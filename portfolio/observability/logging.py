"""
Logging setup for the portfolio backend.

All module loggers live under the "portfolio" namespace. The first
get_logger() call attaches one stream handler to that namespace rather
than to the root logger, and every call re-reads PORTFOLIO_LOG_LEVEL.
Child loggers inherit the level.

httpx/httpcore log every request line at INFO; they are held at WARNING
so chat traffic does not flood the log.
"""

from __future__ import annotations

import logging
import os
from typing import Final

NAMESPACE: Final[str] = "portfolio"
_FORMAT: Final[str] = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
_QUIET_LOGGERS: Final[tuple[str, ...]] = ("httpx", "httpcore")

_CONFIGURED: bool = False


def _resolve_level() -> int:
    level_name = os.getenv("PORTFOLIO_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.INFO


def _configure() -> None:
    global _CONFIGURED

    base = logging.getLogger(NAMESPACE)
    if not _CONFIGURED:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        base.addHandler(handler)
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
        _CONFIGURED = True

    base.setLevel(_resolve_level())


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the portfolio namespace; re-reads the level on every call."""
    _configure()
    if name != NAMESPACE and not name.startswith(f"{NAMESPACE}."):
        name = f"{NAMESPACE}.{name}"
    return logging.getLogger(name)
