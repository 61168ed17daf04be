"""Tests for the database drivers and their helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import pytest

from regionsql.driver import (
    AsyncpgDriver,
    DriverError,
    SqliteDriver,
    affected_rows,
    driver_for_url,
    sqlite_path,
    to_numbered_placeholders,
)
from regionsql.errors import ConfigurationError


def test_placeholders_are_numbered_in_order() -> None:
    sql = "INSERT INTO employees(name, age, id) VALUES (?,?,?)"

    assert to_numbered_placeholders(sql) == "INSERT INTO employees(name, age, id) VALUES ($1,$2,$3)"


def test_placeholders_inside_literals_are_kept() -> None:
    sql = "SELECT * FROM t WHERE note = 'why?' AND id = ?"

    assert to_numbered_placeholders(sql) == "SELECT * FROM t WHERE note = 'why?' AND id = $1"


@pytest.mark.parametrize(
    ("status", "expected"),
    [("INSERT 0 1", 1), ("UPDATE 3", 3), ("DELETE 0", 0), ("SELECT", 0), ("", 0), (None, 0)],
)
def test_affected_rows(status: str | None, expected: int) -> None:
    assert affected_rows(status) == expected


@pytest.mark.parametrize(
    ("url", "path"),
    [
        ("sqlite://", ":memory:"),
        ("sqlite:///:memory:", ":memory:"),
        ("sqlite:///data/app.db", "data/app.db"),
        ("sqlite:////var/lib/app.db", "/var/lib/app.db"),
    ],
)
def test_sqlite_path(url: str, path: str) -> None:
    assert sqlite_path(url) == path


def test_driver_for_url_picks_by_scheme() -> None:
    assert isinstance(driver_for_url("postgresql://localhost/db"), AsyncpgDriver)
    assert isinstance(driver_for_url("postgres://localhost/db"), AsyncpgDriver)
    assert isinstance(driver_for_url("sqlite://"), SqliteDriver)


def test_driver_for_url_rejects_unknown_schemes() -> None:
    with pytest.raises(ConfigurationError, match="No driver"):
        driver_for_url("jdbc:derby:memory:db")


def test_sqlite_statements_and_catalog() -> None:
    connection = SqliteDriver().connect("sqlite://", None, None)
    try:
        connection.prepare("CREATE TABLE Employees (id varchar(10) PRIMARY KEY, name varchar(10))").execute()
        insert = connection.prepare("INSERT INTO Employees(name, id) VALUES (?,?)")
        insert.bind(1, "Emp1")
        insert.bind(2, "1")

        assert insert.execute() == 1

        select = connection.prepare("SELECT * FROM Employees WHERE id = ?")
        select.bind(1, "1")
        result = select.execute_query()
        assert result.columns == ("id", "name")
        assert result.rows == (("1", "Emp1"),)

        catalog = connection.metadata()
        assert catalog.list_tables() == ("Employees",)
        assert catalog.list_primary_keys("Employees") == ("id",)
    finally:
        connection.close()

    assert connection.is_closed()


def test_sqlite_reports_composite_keys_in_order() -> None:
    connection = SqliteDriver().connect("sqlite://", None, None)
    try:
        connection.prepare("CREATE TABLE pairs (b int, a int, PRIMARY KEY (a, b))").execute()

        assert connection.metadata().list_primary_keys("pairs") == ("a", "b")
    finally:
        connection.close()


def test_sqlite_errors_become_driver_errors() -> None:
    connection = SqliteDriver().connect("sqlite://", None, None)
    try:
        with pytest.raises(DriverError):
            connection.prepare("SELECT * FROM missing").execute_query()
    finally:
        connection.close()

    with pytest.raises(DriverError):
        connection.prepare("SELECT 1")


@dataclass
class _Attribute:
    name: str


class _FakePrepared:
    def __init__(self, sql: str, records: list[tuple[Any, ...]], status: str) -> None:
        self.sql = sql
        self.records = records
        self.status = status
        self.calls: list[tuple[Any, ...]] = []

    async def fetch(self, *args: Any) -> list[tuple[Any, ...]]:
        self.calls.append(args)
        return self.records

    def get_statusmsg(self) -> str:
        return self.status

    def get_attributes(self) -> tuple[_Attribute, ...]:
        return (_Attribute("id"), _Attribute("name"))


class _FakeAsyncpgConnection:
    def __init__(self) -> None:
        self.prepared: list[_FakePrepared] = []
        self.queries: list[tuple[str, tuple[Any, ...]]] = []
        self.closed = False

    async def prepare(self, sql: str) -> _FakePrepared:
        if sql.startswith("SELECT"):
            statement = _FakePrepared(sql, [("1", "Emp1")], "SELECT 1")
        else:
            statement = _FakePrepared(sql, [], "INSERT 0 1")
        self.prepared.append(statement)
        return statement

    async def fetch(self, query: str, *args: Any) -> list[tuple[str]]:
        self.queries.append((query, args))
        if "PRIMARY KEY" in query:
            return [("id",)]
        return [("employees",)]

    def is_closed(self) -> bool:
        return self.closed

    async def close(self) -> None:
        self.closed = True


def test_asyncpg_connection_runs_statements(monkeypatch: pytest.MonkeyPatch) -> None:
    fake_conn = _FakeAsyncpgConnection()
    seen: dict[str, Any] = {}

    async def _fake_connect(**kwargs: Any) -> _FakeAsyncpgConnection:
        seen.update(kwargs)
        return fake_conn

    monkeypatch.setattr("regionsql.driver.asyncpg.connect", _fake_connect)
    connection = AsyncpgDriver(connect_timeout=2.0).connect("postgresql://localhost/db", "scott", "tiger")

    try:
        assert seen == {"dsn": "postgresql://localhost/db", "timeout": 2.0, "user": "scott", "password": "tiger"}

        insert = connection.prepare("INSERT INTO employees(name, id) VALUES (?,?)")
        insert.bind(1, "Emp1")
        insert.bind(2, "1")
        assert insert.execute() == 1
        assert fake_conn.prepared[0].sql == "INSERT INTO employees(name, id) VALUES ($1,$2)"
        assert fake_conn.prepared[0].calls == [("Emp1", "1")]

        select = connection.prepare("SELECT * FROM employees WHERE id = ?")
        select.bind(1, "1")
        result = select.execute_query()
        assert result.columns == ("id", "name")
        assert result.rows == (("1", "Emp1"),)

        catalog = connection.metadata()
        assert catalog.list_tables("%") == ("employees",)
        assert catalog.list_primary_keys("employees") == ("id",)
        assert fake_conn.queries[-1][1] == ("employees",)
    finally:
        connection.close()

    assert fake_conn.closed is True
    assert connection.is_closed()


def test_asyncpg_connect_errors_become_driver_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _broken_connect(**kwargs: Any) -> None:
        raise OSError("connection refused")

    monkeypatch.setattr("regionsql.driver.asyncpg.connect", _broken_connect)

    with pytest.raises(DriverError, match="connection refused"):
        AsyncpgDriver().connect("postgresql://localhost/db", None, None)


def test_asyncpg_statement_errors_become_driver_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    fake_conn = _FakeAsyncpgConnection()

    async def _fake_connect(**kwargs: Any) -> _FakeAsyncpgConnection:
        assert "user" not in kwargs
        return fake_conn

    async def _failing_prepare(sql: str) -> None:
        raise ValueError("syntax error")

    monkeypatch.setattr("regionsql.driver.asyncpg.connect", _fake_connect)
    monkeypatch.setattr(fake_conn, "prepare", _failing_prepare)
    connection = AsyncpgDriver().connect("postgresql://localhost/db", None, None)

    try:
        with pytest.raises(DriverError, match="syntax error"):
            connection.prepare("UPDATE employees SET WHERE id = ?")
    finally:
        connection.close()


def test_asyncpg_close_releases_event_loop(monkeypatch: pytest.MonkeyPatch) -> None:
    fake_conn = _FakeAsyncpgConnection()

    async def _fake_connect(**kwargs: Any) -> _FakeAsyncpgConnection:
        return fake_conn

    monkeypatch.setattr("regionsql.driver.asyncpg.connect", _fake_connect)
    connection = AsyncpgDriver().connect("postgresql://localhost/db", None, None)

    connection.close()
    connection.close()

    assert fake_conn.closed is True
    assert not connection._loop_thread.is_alive()
    assert connection._loop.is_closed()
