"""Logging for the ``spending_analysis`` package.

Library modules only ask :func:`get_logger` for a logger and never touch
handlers. The CLI calls :func:`configure_logging` once at startup; until
then the package logger carries a ``NullHandler`` and stays silent.

Messages are single lines of the form ``component:event key=value ...``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

PACKAGE_LOGGER = "spending_analysis"
LEVEL_ENV = "SPENDING_ANALYSIS_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_CONFIGURED = False
_handler: logging.Handler | None = None


def resolve_level(level: int | str | None = None) -> int:
    """Pick the first usable level: ``level``, then ``$SPENDING_ANALYSIS_LOG_LEVEL``, then INFO.

    Unknown level names are skipped rather than rejected.
    """

    for candidate in (level, os.getenv(LEVEL_ENV)):
        if isinstance(candidate, int):
            return candidate
        if not isinstance(candidate, str) or not candidate.strip():
            continue
        text = candidate.strip().upper()
        if text.isdigit():
            return int(text)
        value = logging.getLevelName(text)
        if isinstance(value, int):
            return value
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> logging.Handler | None:
    """Install the package's one stream handler; later calls do nothing.

    Returns the installed handler, or ``None`` when logging was already
    configured.
    """

    global _CONFIGURED, _handler
    if _CONFIGURED:
        return None

    pkg = logging.getLogger(PACKAGE_LOGGER)
    for h in [h for h in pkg.handlers if isinstance(h, logging.NullHandler)]:
        pkg.removeHandler(h)

    resolved = resolve_level(level)
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
    pkg.addHandler(handler)
    pkg.setLevel(resolved)
    pkg.propagate = False

    _handler = handler
    _CONFIGURED = True
    return handler


def reset_logging() -> None:
    """Undo :func:`configure_logging` so it can run again."""

    global _CONFIGURED, _handler
    pkg = logging.getLogger(PACKAGE_LOGGER)
    if _handler is not None:
        pkg.removeHandler(_handler)
        _handler = None
    pkg.setLevel(logging.NOTSET)
    pkg.propagate = True
    _CONFIGURED = False


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name``; bare module names are placed under the package logger."""

    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    pkg = logging.getLogger(PACKAGE_LOGGER)
    if not _CONFIGURED and not pkg.handlers:
        pkg.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "reset_logging", "resolve_level"]
