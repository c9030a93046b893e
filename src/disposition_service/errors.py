"""Exception hierarchy shared by the pool, repositories and HTTP layer."""
from __future__ import annotations


class DispositionServiceError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(DispositionServiceError, RuntimeError):
    """Configuration is missing or the database cannot be reached at startup."""


class AcquisitionError(DispositionServiceError):
    """The pool could not hand out a connection."""


class RepositoryError(DispositionServiceError):
    """Base class for failures reported by repository operations."""


class ConflictError(RepositoryError):
    """A unique key (e.g. the user email) already exists."""


class InvalidSymbolError(RepositoryError):
    """The textual stock symbol could not be parsed into an integer."""

    def __init__(self, symbol: str, reason: str | None = None) -> None:
        self.symbol = symbol
        message = f"Invalid symbol format '{symbol}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ConsistencyError(RepositoryError):
    """A row that was just written could not be read back."""


class StorageError(RepositoryError):
    """Any other failure raised by the database driver."""


__all__ = [
    "DispositionServiceError",
    "ConfigError",
    "AcquisitionError",
    "RepositoryError",
    "ConflictError",
    "InvalidSymbolError",
    "ConsistencyError",
    "StorageError",
]
