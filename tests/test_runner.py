"""
Tests for the command line entry point
"""
from unittest.mock import patch

from sqlalchemy import inspect

from disposition_service import runner
from disposition_service.config import Settings


def test_main_exits_non_zero_without_database(monkeypatch):
    monkeypatch.delenv("DISPOSITION_SERVICE_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("DISPOSITION_SERVICE_DB_HOST", raising=False)

    with patch("disposition_service.runner.uvicorn.run") as mock_run:
        assert runner.main([]) == 1

    mock_run.assert_not_called()


def test_build_pool_creates_schema_when_asked(tmp_path):
    settings = Settings(database_url=f"sqlite:///{tmp_path / 'db.sqlite'}", create_schema=True)

    pool = runner.build_pool(settings)
    try:
        assert {"user", "s_disposition"} <= set(inspect(pool.engine).get_table_names())
    finally:
        pool.dispose()


def test_main_serves_app(monkeypatch, tmp_path):
    monkeypatch.setenv("DISPOSITION_SERVICE_DATABASE_URL", f"sqlite:///{tmp_path / 'db.sqlite'}")

    with patch("disposition_service.runner.uvicorn.run") as mock_run:
        assert runner.main(["--port", "9999", "--create-schema"]) == 0

    _, kwargs = mock_run.call_args
    assert kwargs["host"] == "127.0.0.1"
    assert kwargs["port"] == 9999
