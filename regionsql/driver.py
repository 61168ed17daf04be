"""Database drivers exposing the synchronous connection/statement contract."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from dataclasses import dataclass
from typing import Any, Coroutine, Protocol, Sequence, TypeVar, runtime_checkable

import asyncpg

from .errors import ConfigurationError

T = TypeVar("T")


class DriverError(RuntimeError):
    """Raised when the database rejects a statement or cannot be reached."""


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Rows returned by a query along with their column labels."""

    columns: tuple[str, ...]
    rows: tuple[tuple[Any, ...], ...]


@runtime_checkable
class Statement(Protocol):
    """Prepared statement with positional (1-based) parameters."""

    def bind(self, index: int, value: Any) -> None: ...

    def execute(self) -> int:
        """Run a write and return the affected-row count."""

    def execute_query(self) -> QueryResult: ...

    def clear_parameters(self) -> None: ...


@runtime_checkable
class CatalogMetadata(Protocol):
    """Catalog lookups used to discover tables and their primary keys."""

    def list_tables(self, pattern: str = "%") -> Sequence[str]: ...

    def list_primary_keys(self, table_name: str) -> Sequence[str]: ...


@runtime_checkable
class Connection(Protocol):
    """A single physical database connection."""

    def prepare(self, sql: str) -> Statement: ...

    def metadata(self) -> CatalogMetadata: ...

    def is_closed(self) -> bool: ...

    def close(self) -> None: ...


class Driver(Protocol):
    """Factory for connections."""

    def connect(self, url: str, user: str | None, password: str | None) -> Connection: ...


class AsyncpgDriver:
    """Connects to PostgreSQL via asyncpg."""

    def __init__(self, *, connect_timeout: float = 5.0) -> None:
        self._connect_timeout = connect_timeout

    def connect(self, url: str, user: str | None, password: str | None) -> AsyncpgConnection:
        kwargs: dict[str, object] = {"dsn": url, "timeout": self._connect_timeout}
        if user:
            kwargs["user"] = user
        if password:
            kwargs["password"] = password
        return AsyncpgConnection(kwargs)


class AsyncpgConnection:
    """Synchronous facade over an asyncpg connection running on a private event loop."""

    def __init__(self, connect_kwargs: dict[str, object]) -> None:
        self._lock = threading.RLock()
        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self._loop.run_forever,
            name="regionsql-asyncpg",
            daemon=True,
        )
        self._loop_thread.start()
        try:
            self._conn = self.run(asyncpg.connect(**connect_kwargs))
        except DriverError:
            self._stop_loop()
            raise

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run ``coro`` on the connection loop, one operation at a time."""

        with self._lock:
            future = asyncio.run_coroutine_threadsafe(coro, self._loop)
            try:
                return future.result()
            except Exception as exc:
                raise DriverError(str(exc)) from exc

    def prepare(self, sql: str) -> AsyncpgStatement:
        prepared = self.run(self._conn.prepare(to_numbered_placeholders(sql)))
        return AsyncpgStatement(self, prepared)

    def metadata(self) -> AsyncpgCatalog:
        return AsyncpgCatalog(self)

    def fetch_column(self, query: str, *args: object) -> tuple[str, ...]:
        records = self.run(self._conn.fetch(query, *args))
        return tuple(str(record[0]) for record in records)

    def is_closed(self) -> bool:
        return self._conn.is_closed()

    def close(self) -> None:
        try:
            if not self._conn.is_closed():
                self.run(self._conn.close())
        finally:
            self._stop_loop()

    def _stop_loop(self) -> None:
        if self._loop.is_running():
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._loop_thread.join(timeout=1)
        # Each connection owns its loop; release the selector once the thread is gone.
        if not self._loop_thread.is_alive() and not self._loop.is_closed():
            self._loop.close()


class AsyncpgStatement:
    """Prepared statement bound to an :class:`AsyncpgConnection`."""

    def __init__(self, connection: AsyncpgConnection, prepared: Any) -> None:
        self._connection = connection
        self._prepared = prepared
        self._params: dict[int, Any] = {}

    def bind(self, index: int, value: Any) -> None:
        self._params[index] = value

    def execute(self) -> int:
        self._connection.run(self._prepared.fetch(*self._args()))
        return affected_rows(self._prepared.get_statusmsg())

    def execute_query(self) -> QueryResult:
        records = self._connection.run(self._prepared.fetch(*self._args()))
        columns = tuple(attribute.name for attribute in self._prepared.get_attributes())
        rows = tuple(tuple(record[idx] for idx in range(len(columns))) for record in records)
        return QueryResult(columns=columns, rows=rows)

    def clear_parameters(self) -> None:
        self._params.clear()

    def _args(self) -> list[Any]:
        return [self._params.get(idx) for idx in range(1, len(self._params) + 1)]


class AsyncpgCatalog:
    """information_schema lookups for PostgreSQL."""

    _TABLES_QUERY = """
        SELECT table_name
        FROM information_schema.tables
        WHERE table_schema NOT IN ('pg_catalog', 'information_schema')
          AND table_name LIKE $1
        ORDER BY table_schema, table_name
    """

    _PRIMARY_KEYS_QUERY = """
        SELECT kcu.column_name
        FROM information_schema.table_constraints tc
        JOIN information_schema.key_column_usage kcu
          ON tc.constraint_name = kcu.constraint_name
         AND tc.table_schema = kcu.table_schema
         AND tc.table_name = kcu.table_name
        WHERE tc.constraint_type = 'PRIMARY KEY'
          AND tc.table_name = $1
        ORDER BY kcu.ordinal_position
    """

    def __init__(self, connection: AsyncpgConnection) -> None:
        self._connection = connection

    def list_tables(self, pattern: str = "%") -> tuple[str, ...]:
        return self._connection.fetch_column(self._TABLES_QUERY, pattern)

    def list_primary_keys(self, table_name: str) -> tuple[str, ...]:
        return self._connection.fetch_column(self._PRIMARY_KEYS_QUERY, table_name)


class SqliteDriver:
    """Connects to an embedded SQLite database (``sqlite://`` URLs)."""

    def connect(self, url: str, user: str | None, password: str | None) -> SqliteConnection:
        return SqliteConnection(sqlite_path(url))


class SqliteConnection:
    """Autocommit SQLite connection shared across threads."""

    def __init__(self, path: str) -> None:
        self._lock = threading.RLock()
        self._closed = False
        try:
            self._conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
        except sqlite3.Error as exc:
            raise DriverError(f"Could not open {path}: {exc}") from exc

    def run(self, sql: str, params: Sequence[Any] = ()) -> tuple[int, QueryResult]:
        """Execute ``sql`` and return its row count plus any fetched rows."""

        with self._lock:
            if self._closed:
                raise DriverError("Cannot operate on a closed database.")
            try:
                cursor = self._conn.execute(sql, tuple(params))
                columns = tuple(description[0] for description in cursor.description or ())
                rows = tuple(tuple(row) for row in cursor.fetchall()) if columns else ()
            except sqlite3.Error as exc:
                raise DriverError(str(exc)) from exc
        return cursor.rowcount, QueryResult(columns=columns, rows=rows)

    def prepare(self, sql: str) -> SqliteStatement:
        if self._closed:
            raise DriverError("Cannot operate on a closed database.")
        return SqliteStatement(self, sql)

    def metadata(self) -> SqliteCatalog:
        return SqliteCatalog(self)

    def is_closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._conn.close()


class SqliteStatement:
    """Statement text plus bound parameters; sqlite3 caches the compiled form."""

    def __init__(self, connection: SqliteConnection, sql: str) -> None:
        self._connection = connection
        self._sql = sql
        self._params: dict[int, Any] = {}

    def bind(self, index: int, value: Any) -> None:
        self._params[index] = value

    def execute(self) -> int:
        count, _ = self._connection.run(self._sql, self._args())
        return count

    def execute_query(self) -> QueryResult:
        _, result = self._connection.run(self._sql, self._args())
        return result

    def clear_parameters(self) -> None:
        self._params.clear()

    def _args(self) -> list[Any]:
        return [self._params.get(idx) for idx in range(1, len(self._params) + 1)]


class SqliteCatalog:
    """sqlite_master and PRAGMA lookups."""

    def __init__(self, connection: SqliteConnection) -> None:
        self._connection = connection

    def list_tables(self, pattern: str = "%") -> tuple[str, ...]:
        _, result = self._connection.run(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name LIKE ? ORDER BY name",
            (pattern,),
        )
        return tuple(str(row[0]) for row in result.rows)

    def list_primary_keys(self, table_name: str) -> tuple[str, ...]:
        quoted = table_name.replace('"', '""')
        _, result = self._connection.run(f'PRAGMA table_info("{quoted}")')
        # table_info rows: (cid, name, type, notnull, dflt_value, pk)
        keyed = sorted((row[5], str(row[1])) for row in result.rows if row[5])
        return tuple(name for _, name in keyed)


def driver_for_url(url: str) -> Driver:
    """Pick a driver from the URL scheme."""

    scheme = url.split(":", 1)[0].lower() if ":" in url else ""
    if scheme in {"postgres", "postgresql"}:
        return AsyncpgDriver()
    if scheme == "sqlite":
        return SqliteDriver()
    raise ConfigurationError(f"No driver available for url '{url}'")


def sqlite_path(url: str) -> str:
    """Map ``sqlite://`` URLs to a path: ``sqlite://`` is in-memory, ``sqlite:///rel.db`` is relative."""

    rest = url.split(":", 1)[1] if ":" in url else url
    if rest.startswith("//"):
        rest = rest[2:]
        if rest.startswith("/"):
            rest = rest[1:]
    if not rest or rest == ":memory:":
        return ":memory:"
    return rest


def to_numbered_placeholders(sql: str) -> str:
    """Rewrite ``?`` placeholders as ``$1``, ``$2``... outside quoted literals."""

    out: list[str] = []
    index = 0
    quote: str | None = None
    for char in sql:
        if quote:
            if char == quote:
                quote = None
        elif char in {"'", '"'}:
            quote = char
        elif char == "?":
            index += 1
            out.append(f"${index}")
            continue
        out.append(char)
    return "".join(out)


def affected_rows(status: str | None) -> int:
    """Extract the row count from a command tag such as ``INSERT 0 1`` or ``UPDATE 3``."""

    if not status:
        return 0
    tail = status.rsplit(" ", 1)[-1]
    try:
        return int(tail)
    except ValueError:
        return 0


__all__ = [
    "AsyncpgConnection",
    "AsyncpgDriver",
    "CatalogMetadata",
    "Connection",
    "Driver",
    "DriverError",
    "QueryResult",
    "SqliteConnection",
    "SqliteDriver",
    "Statement",
    "affected_rows",
    "driver_for_url",
    "sqlite_path",
    "to_numbered_placeholders",
]
