"""Repositories translating domain operations into SQL statements.

Every method takes a connection borrowed from :class:`~.db.ConnectionPool`
and raises a :class:`~.errors.RepositoryError` subclass on failure. Lookups
that find nothing return ``None`` (or ``False`` for deletes) instead.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import Column, delete, insert, select, update
from sqlalchemy.engine import Connection, CursorResult, Row
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.sql.expression import ColumnElement, Executable

from .coercion import coerce_to_date, coerce_to_timestamp
from .db import dispositions, users
from .errors import ConflictError, ConsistencyError, InvalidSymbolError, StorageError
from .models import (
    CreateDisposition,
    CreateUser,
    Disposition,
    DispositionPatch,
    User,
    UserPatch,
)

LOGGER = logging.getLogger(__name__)

# Error text emitted by MySQL and SQLite for unique key violations.
DUPLICATE_KEY_SIGNATURES = ("Duplicate entry", "UNIQUE constraint failed")

SYMBOL_PATTERN = re.compile(r"[+-]?[0-9]+")
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


def is_duplicate_key_error(exc: BaseException) -> bool:
    message = str(getattr(exc, "orig", None) or exc)
    return any(signature in message for signature in DUPLICATE_KEY_SIGNATURES)


def _execute(conn: Connection, stmt: Executable) -> CursorResult:
    """Run ``stmt`` and translate driver failures into repository errors."""

    try:
        return conn.execute(stmt)
    except IntegrityError as exc:
        if is_duplicate_key_error(exc):
            LOGGER.warning("Duplicate key rejected: %s", exc.orig)
            raise ConflictError(str(exc.orig)) from exc
        raise StorageError(str(exc.orig)) from exc
    except SQLAlchemyError as exc:
        raise StorageError(str(getattr(exc, "orig", None) or exc)) from exc


def _changed_values(pairs: Iterable[tuple[Column, Any]]) -> dict[str, Any]:
    """Keep the (column, value) pairs whose value was supplied, in order."""

    return {column.name: value for column, value in pairs if value is not None}


def parse_symbol(text: str) -> int:
    """Parse the textual stock symbol into a signed 32-bit integer."""

    candidate = text if isinstance(text, str) else ""
    if not SYMBOL_PATTERN.fullmatch(candidate):
        raise InvalidSymbolError(str(text), "not an integer")
    value = int(candidate)
    if not INT32_MIN <= value <= INT32_MAX:
        raise InvalidSymbolError(str(text), "out of range")
    return value


USER_COLUMNS: Sequence[Column] = (
    users.c.id,
    users.c.name,
    users.c.email,
    users.c.created_at,
    users.c.updated_at,
)


def _row_to_user(row: Row) -> User:
    data = row._mapping
    return User(
        id=data["id"],
        name=data["name"],
        email=data["email"],
        created_at=coerce_to_timestamp(data["created_at"]),
        updated_at=coerce_to_timestamp(data["updated_at"]),
    )


class UserRepository:
    """CRUD operations over the ``user`` table."""

    @staticmethod
    def get_all(conn: Connection) -> list[User]:
        LOGGER.debug("Loading all users")
        rows = _execute(conn, select(*USER_COLUMNS)).all()
        return [_row_to_user(row) for row in rows]

    @staticmethod
    def get_by_id(conn: Connection, user_id: int) -> Optional[User]:
        LOGGER.debug("Loading user %s", user_id)
        row = _execute(conn, select(*USER_COLUMNS).where(users.c.id == user_id)).first()
        return _row_to_user(row) if row is not None else None

    @staticmethod
    def create(conn: Connection, payload: CreateUser) -> User:
        """Insert a user and return it as stored, timestamps included."""

        LOGGER.debug("Creating user with email %s", payload.email)
        result = _execute(conn, insert(users).values(name=payload.name, email=payload.email))
        user_id = result.inserted_primary_key[0]
        created = UserRepository.get_by_id(conn, user_id)
        if created is None:
            raise ConsistencyError(f"Failed to retrieve newly created user {user_id}")
        LOGGER.info("Created user %s", user_id)
        return created

    @staticmethod
    def update(conn: Connection, user_id: int, patch: UserPatch) -> Optional[User]:
        """Apply the supplied fields of ``patch``; ``None`` when the id is unknown."""

        values = _changed_values(((users.c.name, patch.name), (users.c.email, patch.email)))
        if not values:
            return UserRepository.get_by_id(conn, user_id)

        LOGGER.debug("Updating user %s columns %s", user_id, ", ".join(values))
        _execute(conn, update(users).where(users.c.id == user_id).values(**values))
        return UserRepository.get_by_id(conn, user_id)

    @staticmethod
    def delete(conn: Connection, user_id: int) -> bool:
        LOGGER.debug("Deleting user %s", user_id)
        result = _execute(conn, delete(users).where(users.c.id == user_id))
        return result.rowcount > 0


DISPOSITION_COLUMNS: Sequence[Column] = (
    dispositions.c.stock_date,
    dispositions.c.market,
    dispositions.c.symbol,
    dispositions.c.name,
    dispositions.c.start,
    dispositions.c.end,
    dispositions.c.created_at,
    dispositions.c.updated_at,
)


def _row_to_disposition(row: Row) -> Disposition:
    data = row._mapping
    return Disposition(
        stock_date=coerce_to_date(data["stock_date"]),
        market=data["market"],
        symbol=data["symbol"],
        name=data["name"],
        start=coerce_to_date(data["start"]),
        end=coerce_to_date(data["end"]),
        created_at=coerce_to_timestamp(data["created_at"]),
        updated_at=coerce_to_timestamp(data["updated_at"]),
    )


def _current_row_predicate(current: Disposition) -> list[ColumnElement[bool]]:
    """Match the row read back by ``get_by_symbol``; the table has no key."""

    predicate = [
        dispositions.c.market == current.market,
        dispositions.c.name == current.name,
    ]
    for column, value in (
        (dispositions.c.stock_date, current.stock_date),
        (dispositions.c.start, current.start),
        (dispositions.c.end, current.end),
    ):
        predicate.append(column.is_(None) if value is None else column == value)
    return predicate


class DispositionRepository:
    """Read, create and update operations over ``s_disposition``.

    Several rows may share a symbol. The current disposition for a symbol is
    the one with the latest ``end``; rows whose ``end`` is NULL sort after every
    dated row on both MySQL and SQLite.
    """

    @staticmethod
    def get_all(conn: Connection) -> list[Disposition]:
        LOGGER.debug("Loading all dispositions")
        rows = _execute(conn, select(*DISPOSITION_COLUMNS)).all()
        return [_row_to_disposition(row) for row in rows]

    @staticmethod
    def get_by_symbol(conn: Connection, symbol: int) -> Optional[Disposition]:
        LOGGER.debug("Loading current disposition for symbol %s", symbol)
        stmt = (
            select(*DISPOSITION_COLUMNS)
            .where(dispositions.c.symbol == symbol)
            .order_by(dispositions.c.end.desc())
            .limit(1)
        )
        row = _execute(conn, stmt).first()
        return _row_to_disposition(row) if row is not None else None

    @staticmethod
    def create(conn: Connection, payload: CreateDisposition) -> Disposition:
        """Insert a disposition and return the current row for its symbol.

        The new row has no ``end`` yet, so an older dated window for the same
        symbol is what the read-back reports.
        """

        symbol = parse_symbol(payload.symbol)
        LOGGER.debug("Creating disposition for symbol %s", symbol)
        _execute(
            conn,
            insert(dispositions).values(
                stock_date=payload.stock_date,
                market=payload.market,
                symbol=symbol,
                name=payload.name,
            ),
        )
        created = DispositionRepository.get_by_symbol(conn, symbol)
        if created is None:
            raise ConsistencyError(f"Failed to retrieve newly created disposition {symbol}")
        LOGGER.info("Created disposition for symbol %s", symbol)
        return created

    @staticmethod
    def update(conn: Connection, symbol: int, patch: DispositionPatch) -> Optional[Disposition]:
        """Set the supplied window bounds on the current row for ``symbol``.

        Older windows sharing the symbol are left untouched. ``None`` when the
        symbol has no rows.
        """

        values = _changed_values(
            ((dispositions.c.start, patch.start), (dispositions.c.end, patch.end))
        )
        current = DispositionRepository.get_by_symbol(conn, symbol)
        if current is None or not values:
            return current

        LOGGER.debug("Updating disposition %s columns %s", symbol, ", ".join(values))
        stmt = (
            update(dispositions)
            .where(dispositions.c.symbol == symbol, *_current_row_predicate(current))
            .values(**values)
        )
        result = _execute(conn, stmt)
        # Rows identical in every compared column cannot be told apart.
        if result.rowcount > 1:
            LOGGER.warning(
                "Disposition update for symbol %s touched %d identical rows",
                symbol,
                result.rowcount,
            )
        return DispositionRepository.get_by_symbol(conn, symbol)


__all__ = [
    "UserRepository",
    "DispositionRepository",
    "parse_symbol",
    "is_duplicate_key_error",
    "DUPLICATE_KEY_SIGNATURES",
]
