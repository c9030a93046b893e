"""Command line entry point for the disposition API server."""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from typing import Iterable

import uvicorn

from .app import create_app
from .config import Settings
from .db import ConnectionPool, create_pool, ensure_schema
from .errors import ConfigError
from .logging_utils import configure_logging

LOGGER = logging.getLogger(__name__)


def build_pool(settings: Settings) -> ConnectionPool:
    """Create the process-wide pool, creating tables first when asked to."""

    pool = create_pool(
        settings.database_url,
        pool_size=settings.pool_size,
        pool_timeout=settings.pool_timeout,
    )
    if settings.create_schema:
        ensure_schema(pool)
    return pool


def parse_args(args: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--host", help="Interface to bind (default from settings)")
    parser.add_argument("--port", type=int, help="Port to listen on (default from settings)")
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create missing tables before serving",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging output",
    )
    return parser.parse_args(args=args)


def main(argv: Iterable[str] | None = None) -> int:
    options = parse_args(argv)
    configure_logging(logging.DEBUG if options.verbose else None)

    try:
        settings = Settings.load()
        if options.create_schema:
            settings = replace(settings, create_schema=True)
        pool = build_pool(settings)
    except ConfigError as exc:
        LOGGER.error("Unable to create database pool: %s", exc)
        return 1

    host = options.host or settings.host
    port = options.port or settings.port
    LOGGER.info("Starting disposition API on %s:%d", host, port)
    uvicorn.run(create_app(settings, pool), host=host, port=port, log_config=None)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
