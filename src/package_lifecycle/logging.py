"""
Logging for package lifecycle management.

Every module logs through a child of the ``package_lifecycle`` logger, so a
host application can tune or silence the whole library in one place. The
CLI calls :func:`setup_logging`; library users normally configure logging
themselves and never call it.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TextIO

ROOT_LOGGER_NAME = "package_lifecycle"
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_root_logger = logging.getLogger(ROOT_LOGGER_NAME)


def _resolve_level(level: str | int | None) -> int:
    """Map a level name, number or None (use ``PACKAGE_LIFECYCLE_LOG_LEVEL``) to an int."""
    if level is None:
        level = os.environ.get("PACKAGE_LIFECYCLE_LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    return getattr(logging, level.upper(), logging.INFO)


def setup_logging(
    level: str | int | None = None,
    format: str | None = None,
    stream: TextIO | None = None,
    file: str | None = None,
) -> None:
    """
    Attach handlers to the ``package_lifecycle`` logger.

    Calling this again replaces the handlers from the previous call.

    Args:
        level: Level name or number; defaults to ``PACKAGE_LIFECYCLE_LOG_LEVEL``
            or INFO
        format: Record format, ``DEFAULT_FORMAT`` when omitted
        stream: Console stream (stderr by default)
        file: Also append records to this file

    Example:
        setup_logging("DEBUG")
        setup_logging("WARNING", file="packages.log")
    """
    resolved = _resolve_level(level)
    formatter = logging.Formatter(format or DEFAULT_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    if file:
        handlers.append(logging.FileHandler(file))

    _root_logger.handlers.clear()
    _root_logger.setLevel(resolved)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(resolved)
        _root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """
    Child logger for a submodule, e.g. ``get_logger("registry.client")``.

    Names already under ``package_lifecycle.`` are used as given.
    """
    if name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_level(level: str | int) -> None:
    """Change the library's log level without touching its handlers."""
    _root_logger.setLevel(_resolve_level(level))
