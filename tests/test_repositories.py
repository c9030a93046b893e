"""
Tests for the user and disposition repositories
"""
from datetime import date

import pytest
from sqlalchemy import insert, select

from disposition_service.db import dispositions, users
from disposition_service.errors import (
    ConflictError,
    ConsistencyError,
    InvalidSymbolError,
    StorageError,
)
from disposition_service.models import (
    CreateDisposition,
    CreateUser,
    DispositionPatch,
    User,
    UserPatch,
)
from disposition_service.repository import (
    DispositionRepository,
    UserRepository,
    is_duplicate_key_error,
    parse_symbol,
)


def _insert_window(conn, symbol, end, name="Foo Corp", start=None):
    conn.execute(
        insert(dispositions).values(
            stock_date=date(2024, 1, 1),
            market="TWSE",
            symbol=symbol,
            name=name,
            start=start,
            end=end,
        )
    )


class TestUserRepository:
    def test_create_returns_stored_user(self, conn):
        user = UserRepository.create(conn, CreateUser(name="Alice", email="a@x.com"))

        assert isinstance(user, User)
        assert user.id == 1
        assert user.name == "Alice"
        assert user.email == "a@x.com"
        assert user.created_at is not None
        assert user.updated_at is not None
        assert UserRepository.get_all(conn) == [user]

    def test_create_then_get_by_id_matches(self, conn):
        created = UserRepository.create(conn, CreateUser(name="Bob", email="b@x.com"))

        assert UserRepository.get_by_id(conn, created.id) == created

    def test_get_by_id_missing_is_none(self, conn):
        assert UserRepository.get_by_id(conn, 404) is None

    def test_get_all_empty(self, conn):
        assert UserRepository.get_all(conn) == []

    def test_duplicate_email_is_conflict(self, conn):
        UserRepository.create(conn, CreateUser(name="Alice", email="a@x.com"))

        with pytest.raises(ConflictError):
            UserRepository.create(conn, CreateUser(name="Other", email="a@x.com"))

    def test_update_to_taken_email_is_conflict(self, conn):
        UserRepository.create(conn, CreateUser(name="Alice", email="a@x.com"))
        bob = UserRepository.create(conn, CreateUser(name="Bob", email="b@x.com"))

        with pytest.raises(ConflictError):
            UserRepository.update(conn, bob.id, UserPatch(email="a@x.com"))

    def test_update_name_only_keeps_email(self, conn):
        created = UserRepository.create(conn, CreateUser(name="Alice", email="a@x.com"))

        updated = UserRepository.update(conn, created.id, UserPatch(name="X"))

        assert updated.name == "X"
        assert updated.email == "a@x.com"
        assert updated.created_at == created.created_at

    def test_update_both_fields(self, conn):
        created = UserRepository.create(conn, CreateUser(name="Alice", email="a@x.com"))

        updated = UserRepository.update(conn, created.id, UserPatch(name="Al", email="al@x.com"))

        assert (updated.name, updated.email) == ("Al", "al@x.com")

    def test_empty_patch_is_plain_read(self, conn, monkeypatch):
        created = UserRepository.create(conn, CreateUser(name="Alice", email="a@x.com"))
        statements = []
        original_execute = conn.execute

        def recording_execute(stmt, *args, **kwargs):
            statements.append(stmt)
            return original_execute(stmt, *args, **kwargs)

        monkeypatch.setattr(conn, "execute", recording_execute)

        assert UserRepository.update(conn, created.id, UserPatch()) == created
        assert len(statements) == 1
        assert statements[0].is_select

    def test_update_missing_id_is_none(self, conn):
        assert UserRepository.update(conn, 99, UserPatch(name="ghost")) is None

    def test_delete_is_true_once(self, conn):
        created = UserRepository.create(conn, CreateUser(name="Alice", email="a@x.com"))

        assert UserRepository.delete(conn, created.id) is True
        assert UserRepository.delete(conn, created.id) is False
        assert UserRepository.get_by_id(conn, created.id) is None

    def test_missing_read_back_is_consistency_error(self, conn, monkeypatch):
        monkeypatch.setattr(UserRepository, "get_by_id", staticmethod(lambda conn, user_id: None))

        with pytest.raises(ConsistencyError, match="newly created"):
            UserRepository.create(conn, CreateUser(name="Alice", email="a@x.com"))


class TestDispositionRepository:
    def test_create_parses_symbol(self, conn):
        created = DispositionRepository.create(
            conn,
            CreateDisposition(
                stock_date=date(2024, 5, 2), market="TPEx", symbol="2330", name="TSMC"
            ),
        )

        assert created.symbol == 2330
        assert created.market == "TPEx"
        assert created.name == "TSMC"
        assert created.stock_date == date(2024, 5, 2)
        assert created.start is None
        assert created.end is None
        assert created.created_at is not None

    def test_create_rejects_non_numeric_symbol(self, conn):
        with pytest.raises(InvalidSymbolError, match="ABCD") as excinfo:
            DispositionRepository.create(
                conn,
                CreateDisposition(stock_date=None, market="TWSE", symbol="ABCD", name="Bad"),
            )

        assert excinfo.value.symbol == "ABCD"
        assert conn.execute(select(dispositions)).all() == []

    def test_get_by_symbol_picks_latest_end(self, conn):
        _insert_window(conn, 1101, date(2024, 1, 10), name="old")
        _insert_window(conn, 1101, date(2024, 3, 10), name="latest")
        _insert_window(conn, 1101, date(2024, 2, 10), name="middle")
        _insert_window(conn, 2202, date(2025, 1, 1), name="other")

        current = DispositionRepository.get_by_symbol(conn, 1101)

        assert current.name == "latest"
        assert current.end == date(2024, 3, 10)

    def test_get_by_symbol_sorts_null_end_last(self, conn):
        _insert_window(conn, 1101, None, name="open")
        _insert_window(conn, 1101, date(2024, 1, 10), name="closed")

        assert DispositionRepository.get_by_symbol(conn, 1101).name == "closed"

    def test_get_by_symbol_missing_is_none(self, conn):
        assert DispositionRepository.get_by_symbol(conn, 9999) is None

    def test_get_all_returns_every_row(self, conn):
        _insert_window(conn, 1101, date(2024, 1, 10))
        _insert_window(conn, 1101, date(2024, 2, 10))

        rows = DispositionRepository.get_all(conn)

        assert len(rows) == 2
        assert {row.end for row in rows} == {date(2024, 1, 10), date(2024, 2, 10)}

    def test_update_sets_window(self, conn):
        DispositionRepository.create(
            conn, CreateDisposition(stock_date=None, market="TWSE", symbol="3008", name="Largan")
        )

        updated = DispositionRepository.update(
            conn, 3008, DispositionPatch(start=date(2024, 6, 1), end=date(2024, 6, 14))
        )

        assert updated.start == date(2024, 6, 1)
        assert updated.end == date(2024, 6, 14)

    def test_update_start_only_keeps_end(self, conn):
        _insert_window(conn, 3008, date(2024, 6, 14))

        updated = DispositionRepository.update(conn, 3008, DispositionPatch(start=date(2024, 6, 1)))

        assert updated.start == date(2024, 6, 1)
        assert updated.end == date(2024, 6, 14)

    def test_update_only_touches_current_window(self, conn):
        _insert_window(conn, 3008, date(2024, 1, 1), name="old")
        _insert_window(conn, 3008, date(2024, 2, 1), name="latest")
        _insert_window(conn, 4004, date(2024, 2, 1), name="latest")

        updated = DispositionRepository.update(
            conn, 3008, DispositionPatch(start=date(2023, 12, 1))
        )

        assert updated.name == "latest"
        assert updated.start == date(2023, 12, 1)
        rows = conn.execute(
            select(dispositions.c.symbol, dispositions.c.name, dispositions.c.start)
        ).all()
        assert sorted(tuple(row) for row in rows) == [
            (3008, "latest", date(2023, 12, 1)),
            (3008, "old", None),
            (4004, "latest", None),
        ]

    def test_update_matches_current_window_with_open_end(self, conn):
        _insert_window(conn, 3008, None, name="open", start=date(2024, 3, 1))

        updated = DispositionRepository.update(conn, 3008, DispositionPatch(end=date(2024, 3, 15)))

        assert updated.start == date(2024, 3, 1)
        assert updated.end == date(2024, 3, 15)

    def test_empty_patch_is_plain_read(self, conn):
        _insert_window(conn, 3008, date(2024, 6, 14))

        assert DispositionRepository.update(conn, 3008, DispositionPatch()) == (
            DispositionRepository.get_by_symbol(conn, 3008)
        )

    def test_update_missing_symbol_is_none(self, conn):
        assert DispositionRepository.update(conn, 1, DispositionPatch(end=date(2024, 1, 1))) is None


class TestParseSymbol:
    @pytest.mark.parametrize("text,expected", [("2330", 2330), ("-7", -7), ("+8", 8)])
    def test_valid(self, text, expected):
        assert parse_symbol(text) == expected

    @pytest.mark.parametrize(
        "text", ["ABCD", "", " 42 ", "42\n", "12.5", "1_000", "0x10", "99999999999"]
    )
    def test_invalid_carries_text(self, text):
        with pytest.raises(InvalidSymbolError) as excinfo:
            parse_symbol(text)

        assert excinfo.value.symbol == text
        assert f"'{text}'" in str(excinfo.value)


class TestErrorTranslation:
    def test_duplicate_signatures(self):
        assert is_duplicate_key_error(Exception("(1062, \"Duplicate entry 'a@x.com' for key 'email'\")"))
        assert is_duplicate_key_error(Exception("UNIQUE constraint failed: user.email"))
        assert not is_duplicate_key_error(Exception("NOT NULL constraint failed: user.name"))

    def test_not_null_violation_is_storage_error(self, conn):
        with pytest.raises(StorageError, match="NOT NULL"):
            UserRepository.create(conn, CreateUser(name=None, email="a@x.com"))

    def test_missing_table_is_storage_error(self, conn):
        users.drop(conn)

        with pytest.raises(StorageError):
            UserRepository.get_all(conn)
