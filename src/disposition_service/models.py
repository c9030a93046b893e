"""Domain records, patch shapes and the response envelope."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(slots=True)
class User:
    """A row of the ``user`` table."""

    id: int
    name: str
    email: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class CreateUser:
    name: str
    email: str


@dataclass
class UserPatch:
    """Partial user update; ``None`` leaves the column unchanged."""

    name: Optional[str] = None
    email: Optional[str] = None


@dataclass(slots=True)
class Disposition:
    """A disposition window applied to a stock symbol."""

    market: str
    symbol: int
    name: str
    stock_date: Optional[date] = None
    start: Optional[date] = None
    end: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class CreateDisposition:
    stock_date: Optional[date]
    market: str
    symbol: str  # parsed to an integer by the repository
    name: str


@dataclass
class DispositionPatch:
    """Partial disposition update; only the window bounds may change."""

    start: Optional[date] = None
    end: Optional[date] = None


@dataclass(frozen=True)
class ApiResponse(Generic[T]):
    """Uniform success/error wrapper returned to API clients.

    Build instances through :meth:`ok` and :meth:`error`; ``data`` is only
    populated for successful responses.
    """

    success: bool
    message: str
    data: Optional[T] = None

    @classmethod
    def ok(cls, data: T, message: str) -> "ApiResponse[T]":
        return cls(success=True, message=message, data=data)

    @classmethod
    def error(cls, message: str) -> "ApiResponse[T]":
        return cls(success=False, message=message, data=None)


__all__ = [
    "User",
    "CreateUser",
    "UserPatch",
    "Disposition",
    "CreateDisposition",
    "DispositionPatch",
    "ApiResponse",
]
