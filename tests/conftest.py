"""
Test configuration and fixtures
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from disposition_service.app import create_app
from disposition_service.config import Settings
from disposition_service.db import create_pool, ensure_schema, metadata

SQLITE_URL = "sqlite://"


@pytest.fixture
def pool():
    """In-memory SQLite pool with a fresh schema per test"""
    pool = create_pool(
        SQLITE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    ensure_schema(pool)
    try:
        yield pool
    finally:
        metadata.drop_all(pool.engine)
        pool.dispose()


@pytest.fixture
def conn(pool):
    """Connection checked out inside a committed transaction"""
    with pool.acquire() as connection:
        yield connection


@pytest.fixture
def settings():
    return Settings(database_url=SQLITE_URL)


@pytest.fixture
def client(settings, pool):
    app = create_app(settings, pool)
    with TestClient(app) as test_client:
        yield test_client
