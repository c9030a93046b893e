"""FastAPI application exposing the user and disposition collections."""
from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Connection

from .config import Settings
from .db import ConnectionPool
from .errors import (
    AcquisitionError,
    ConflictError,
    ConsistencyError,
    InvalidSymbolError,
    RepositoryError,
)
from .models import (
    ApiResponse,
    CreateDisposition,
    CreateUser,
    DispositionPatch,
    UserPatch,
)
from .repository import DispositionRepository, UserRepository

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _respond(envelope: ApiResponse[Any], status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(envelope))


def _error(message: str, status_code: int) -> JSONResponse:
    return _respond(ApiResponse.error(message), status_code)


def get_pool(request: Request) -> ConnectionPool:
    return request.app.state.pool


def _run(
    pool: ConnectionPool,
    action: str,
    operation: Callable[[Connection], T],
    *,
    conflict_message: str = "Email already exists",
) -> T | JSONResponse:
    """Run ``operation`` on a pooled connection, mapping failures to responses."""

    try:
        with pool.acquire() as conn:
            return operation(conn)
    except AcquisitionError as exc:
        LOGGER.error("Database connection failed while trying to %s: %s", action, exc)
        return _error(f"Database connection failed: {exc}", status.HTTP_500_INTERNAL_SERVER_ERROR)
    except ConflictError:
        return _error(conflict_message, status.HTTP_400_BAD_REQUEST)
    except InvalidSymbolError as exc:
        LOGGER.warning("Rejected request to %s: %s", action, exc)
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)
    except ConsistencyError as exc:
        LOGGER.error("Failed to %s: %s", action, exc)
        return _error(f"Failed to {action}: {exc}", status.HTTP_500_INTERNAL_SERVER_ERROR)
    except RepositoryError as exc:
        LOGGER.exception("Failed to %s", action)
        return _error(f"Failed to {action}: {exc}", status.HTTP_500_INTERNAL_SERVER_ERROR)


def create_app(settings: Settings, pool: ConnectionPool) -> FastAPI:
    """Build the API around an already verified connection pool."""

    app = FastAPI(title="Disposition Service")
    app.state.pool = pool
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept"],
        allow_credentials=True,
        max_age=3600,
    )

    @app.get("/health")
    def health_check() -> JSONResponse:
        return _respond(ApiResponse.ok("OK", "Service is running"))

    @app.get("/user")
    def list_users(pool: ConnectionPool = Depends(get_pool)) -> JSONResponse:
        result = _run(pool, "load users", UserRepository.get_all)
        if isinstance(result, JSONResponse):
            return result
        return _respond(ApiResponse.ok(result, "Loaded all users"))

    @app.get("/user/{user_id}")
    def get_user(user_id: int, pool: ConnectionPool = Depends(get_pool)) -> JSONResponse:
        result = _run(pool, "load user", lambda conn: UserRepository.get_by_id(conn, user_id))
        if isinstance(result, JSONResponse):
            return result
        if result is None:
            return _error(f"No user with id {user_id}", status.HTTP_404_NOT_FOUND)
        return _respond(ApiResponse.ok(result, "Loaded user"))

    @app.post("/user")
    def create_user(payload: CreateUser, pool: ConnectionPool = Depends(get_pool)) -> JSONResponse:
        result = _run(pool, "create user", lambda conn: UserRepository.create(conn, payload))
        if isinstance(result, JSONResponse):
            return result
        return _respond(ApiResponse.ok(result, "Created user"), status.HTTP_201_CREATED)

    @app.put("/user/{user_id}")
    def update_user(
        user_id: int, patch: UserPatch, pool: ConnectionPool = Depends(get_pool)
    ) -> JSONResponse:
        result = _run(pool, "update user", lambda conn: UserRepository.update(conn, user_id, patch))
        if isinstance(result, JSONResponse):
            return result
        if result is None:
            return _error(f"No user with id {user_id}", status.HTTP_404_NOT_FOUND)
        return _respond(ApiResponse.ok(result, "Updated user"))

    @app.delete("/user/{user_id}")
    def delete_user(user_id: int, pool: ConnectionPool = Depends(get_pool)) -> JSONResponse:
        result = _run(pool, "delete user", lambda conn: UserRepository.delete(conn, user_id))
        if isinstance(result, JSONResponse):
            return result
        if not result:
            return _error(f"No user with id {user_id}", status.HTTP_404_NOT_FOUND)
        return _respond(ApiResponse.ok(True, "Deleted user"))

    @app.get("/disposition")
    def list_dispositions(pool: ConnectionPool = Depends(get_pool)) -> JSONResponse:
        result = _run(pool, "load dispositions", DispositionRepository.get_all)
        if isinstance(result, JSONResponse):
            return result
        return _respond(ApiResponse.ok(result, "Loaded all dispositions"))

    @app.get("/disposition/{symbol}")
    def get_disposition(symbol: int, pool: ConnectionPool = Depends(get_pool)) -> JSONResponse:
        result = _run(
            pool, "load disposition", lambda conn: DispositionRepository.get_by_symbol(conn, symbol)
        )
        if isinstance(result, JSONResponse):
            return result
        if result is None:
            return _error(f"No disposition for symbol {symbol}", status.HTTP_404_NOT_FOUND)
        return _respond(ApiResponse.ok(result, "Loaded disposition"))

    @app.post("/disposition")
    def create_disposition(
        payload: CreateDisposition, pool: ConnectionPool = Depends(get_pool)
    ) -> JSONResponse:
        result = _run(
            pool,
            "create disposition",
            lambda conn: DispositionRepository.create(conn, payload),
            conflict_message="Disposition already exists",
        )
        if isinstance(result, JSONResponse):
            return result
        return _respond(ApiResponse.ok(result, "Created disposition"), status.HTTP_201_CREATED)

    @app.put("/disposition/{symbol}")
    def update_disposition(
        symbol: int, patch: DispositionPatch, pool: ConnectionPool = Depends(get_pool)
    ) -> JSONResponse:
        result = _run(
            pool,
            "update disposition",
            lambda conn: DispositionRepository.update(conn, symbol, patch),
        )
        if isinstance(result, JSONResponse):
            return result
        if result is None:
            return _error(f"No disposition for symbol {symbol}", status.HTTP_404_NOT_FOUND)
        return _respond(ApiResponse.ok(result, "Updated disposition"))

    return app


__all__ = ["create_app", "get_pool"]
