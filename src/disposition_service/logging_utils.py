"""Logging configuration helpers for the disposition service."""
from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _coerce_level(level: str | int) -> int:
    """Translate a user provided level into a numeric log level."""

    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def configure_logging(level: str | int | None = None, *, force: bool = False) -> None:
    """Configure the root logger for console output.

    ``level`` falls back to ``DISPOSITION_SERVICE_LOG_LEVEL`` and then INFO; an
    unknown level name also resolves to INFO. When the root logger already has
    handlers only its level is adjusted unless ``force`` is set.
    """

    raw_level = level if level is not None else os.getenv("DISPOSITION_SERVICE_LOG_LEVEL", "INFO")
    try:
        resolved_level = _coerce_level(raw_level)
    except ValueError:
        resolved_level = logging.INFO

    root_logger = logging.getLogger()
    if root_logger.handlers and not force:
        root_logger.setLevel(resolved_level)
        return

    logging.basicConfig(level=resolved_level, format=LOG_FORMAT, force=force)
    # SQL echo stays off unless debugging the service itself.
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if resolved_level <= logging.DEBUG else logging.WARNING
    )


__all__ = ["configure_logging", "LOG_FORMAT"]
