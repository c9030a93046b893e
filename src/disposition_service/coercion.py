"""Convert nullable driver column values into typed date fields.

Drivers hand back DATE/DATETIME cells in several shapes: ``datetime``/``date``
objects, ISO formatted strings (SQLite, text protocol), structured
``(year, month, day[, hour, minute, second[, microsecond]])`` tuples or NULL.
The helpers below accept any of those and return ``None`` for everything else,
including impossible calendar values such as MySQL's ``0000-00-00``.
"""
from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional

from dateutil import parser


def _from_parts(raw: tuple | list) -> Optional[datetime]:
    if not 3 <= len(raw) <= 7:
        return None
    if not all(isinstance(part, int) and not isinstance(part, bool) for part in raw):
        return None
    try:
        return datetime(*raw)
    except (ValueError, OverflowError):
        return None


def _from_text(raw: str | bytes) -> Optional[datetime]:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("ascii")
        except UnicodeDecodeError:
            return None
    raw = raw.strip()
    if not raw:
        return None
    try:
        return parser.isoparse(raw)
    except (ValueError, OverflowError):
        return None


def coerce_to_timestamp(raw_value: object) -> Optional[datetime]:
    """Return ``raw_value`` as a ``datetime`` or ``None`` when it is not one."""

    if isinstance(raw_value, datetime):
        return raw_value
    if isinstance(raw_value, date):
        return datetime.combine(raw_value, time())
    if isinstance(raw_value, (tuple, list)):
        return _from_parts(raw_value)
    if isinstance(raw_value, (str, bytes)):
        return _from_text(raw_value)
    return None


def coerce_to_date(raw_value: object) -> Optional[date]:
    """Return the calendar date part of ``raw_value`` or ``None``."""

    if isinstance(raw_value, datetime):
        return raw_value.date()
    if isinstance(raw_value, date):
        return raw_value
    timestamp = coerce_to_timestamp(raw_value)
    return timestamp.date() if timestamp is not None else None


__all__ = ["coerce_to_timestamp", "coerce_to_date"]
