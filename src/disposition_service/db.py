"""Database integration utilities."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    func,
    text,
)
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from .errors import AcquisitionError, ConfigError, StorageError


metadata = MetaData()

LOGGER = logging.getLogger(__name__)

users = Table(
    "user",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("created_at", DateTime, nullable=True, server_default=func.current_timestamp()),
    Column(
        "updated_at",
        DateTime,
        nullable=True,
        server_default=func.current_timestamp(),
        onupdate=func.current_timestamp(),
    ),
)

# No key on symbol: several historical windows may share one.
dispositions = Table(
    "s_disposition",
    metadata,
    Column("stock_date", Date, nullable=True),
    Column("market", String(32), nullable=False),
    Column("symbol", Integer, nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("start", Date, nullable=True),
    Column("end", Date, nullable=True),
    Column("created_at", DateTime, nullable=True, server_default=func.current_timestamp()),
    Column(
        "updated_at",
        DateTime,
        nullable=True,
        server_default=func.current_timestamp(),
        onupdate=func.current_timestamp(),
    ),
)


class ConnectionPool:
    """Process-wide handle over a SQLAlchemy engine and its connection pool.

    The engine's pool is thread safe, so one instance is shared by every
    request handler. Each :meth:`acquire` hands out a connection exclusively to
    the caller for the duration of the ``with`` block.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @contextmanager
    def acquire(self) -> Iterator[Connection]:
        """Check out a connection wrapped in a transaction.

        The transaction commits when the block exits normally and rolls back
        when it raises. A failed BEGIN or COMMIT raises :class:`StorageError`.
        Failure to obtain a connection (pool exhausted past its timeout,
        network errors) raises :class:`AcquisitionError`.
        """

        try:
            conn = self.engine.connect()
        except PoolTimeoutError as exc:
            raise AcquisitionError(f"Timed out waiting for a database connection: {exc}") from exc
        except SQLAlchemyError as exc:
            raise AcquisitionError(f"Database connection failed: {exc}") from exc

        with conn:
            try:
                with conn.begin():
                    yield conn
            except SQLAlchemyError as exc:
                # BEGIN or COMMIT failed; statement errors arrive already typed.
                raise StorageError(str(getattr(exc, "orig", None) or exc)) from exc

    def dispose(self) -> None:
        LOGGER.debug("Disposing database connection pool")
        self.engine.dispose()


def create_pool(
    database_url: str,
    *,
    pool_size: Optional[int] = None,
    pool_timeout: Optional[float] = None,
    **engine_options: Any,
) -> ConnectionPool:
    """Create the shared pool and verify connectivity with ``SELECT 1``.

    Any problem parsing the URL or reaching the database raises
    :class:`ConfigError`; callers are expected to abort startup.
    """

    if not database_url:
        raise ConfigError("A database URL is required")
    try:
        url = make_url(database_url)
    except ArgumentError as exc:
        raise ConfigError(f"Could not parse database URL: {exc}") from exc

    if pool_size is not None:
        engine_options["pool_size"] = pool_size
    if pool_timeout is not None:
        engine_options["pool_timeout"] = pool_timeout

    LOGGER.debug("Creating database engine for %s", url.render_as_string(hide_password=True))
    try:
        engine = create_engine(url, pool_pre_ping=True, **engine_options)
    except (ArgumentError, TypeError, ImportError) as exc:
        raise ConfigError(f"Could not create database engine: {exc}") from exc

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        engine.dispose()
        raise ConfigError(f"Could not connect to the database: {exc}") from exc

    LOGGER.info("Connected to database %s", url.render_as_string(hide_password=True))
    return ConnectionPool(engine)


def ensure_schema(pool: ConnectionPool) -> None:
    """Create tables if they do not exist."""

    LOGGER.debug("Ensuring database schema is present")
    metadata.create_all(pool.engine)


__all__ = [
    "metadata",
    "users",
    "dispositions",
    "ConnectionPool",
    "create_pool",
    "ensure_schema",
]
