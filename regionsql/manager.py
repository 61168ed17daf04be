"""Read/write synchronization between regions and relational tables."""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Sequence

from .config import MappingConfig
from .driver import Connection, Driver, DriverError, Statement, driver_for_url
from .errors import DataConsistencyError, MissingValueError, StoreExecutionError, UnsupportedOperationError
from .metadata import TableMetadataResolver
from .models import ColumnValue, Operation, StatementKey, StructuredRecord
from .sqlbuilder import build_sql
from .statements import CachedStatement, StatementCache, WorkerId, current_worker

LOG = logging.getLogger(__name__)

_WRITE_OPERATIONS = frozenset({Operation.CREATE, Operation.UPDATE, Operation.DESTROY})


class RelationalSyncManager:
    """Translates single-key region reads and writes into SQL on one shared connection.

    The connection is opened lazily and replaced on the next call after the
    driver reports it closed. Prepared statements are cached per worker and
    each one is executed by at most one thread at a time.
    """

    def __init__(self, config: MappingConfig, *, driver: Driver | None = None) -> None:
        self._config = config
        self._driver = driver or driver_for_url(config.url)
        self._connection: Connection | None = None
        self._connection_lock = threading.Lock()
        self._statements = StatementCache()
        self._metadata = TableMetadataResolver(self.connection)

    @property
    def config(self) -> MappingConfig:
        return self._config

    @property
    def statements(self) -> StatementCache:
        return self._statements

    @property
    def metadata(self) -> TableMetadataResolver:
        return self._metadata

    def connection(self) -> Connection:
        """Return the live connection, reconnecting if it was closed."""

        with self._connection_lock:
            current = self._connection
            if current is not None and not _is_closed(current):
                return current
            if current is not None:
                LOG.info("Replacing closed connection", extra={"url": self._config.url})
                # Cached statements belong to the closed connection.
                self._statements.clear()
            try:
                connection = self._driver.connect(self._config.url, self._config.user, self._config.password)
            except DriverError as exc:
                raise StoreExecutionError(f"Could not connect to {self._config.url}") from exc
            self._connection = connection
            LOG.info("Opened connection", extra={"url": self._config.url})
            return connection

    def read(self, region: Any, key: Any, *, worker: WorkerId | None = None) -> StructuredRecord | None:
        """Load the row for ``key``; None when the table has no such row."""

        region_name = _region_name(region)
        worker = worker if worker is not None else current_worker()
        self.connection()
        table_name = self._config.table_for_region(region_name)
        columns = self._column_values(region_name, table_name, key, None, Operation.GET)
        cached = self._statement(worker, table_name, columns, Operation.GET, 0)
        with cached.lock:
            try:
                _bind(cached.statement, columns)
                result = cached.statement.execute_query()
            except DriverError as exc:
                raise StoreExecutionError(f"Failed to read key {key!r} from {table_name}: {exc}") from exc
            finally:
                _clear_parameters(cached.statement)
        if not result.rows:
            return None
        if len(result.rows) > 1:
            raise DataConsistencyError(f"Multiple rows returned for key {key!r} on table {table_name}")
        return self._to_record(region_name, table_name, result.columns, result.rows[0])

    def write(
        self,
        region: Any,
        operation: Operation | str,
        key: Any,
        value: StructuredRecord | Mapping[str, Any] | None,
        *,
        worker: WorkerId | None = None,
    ) -> None:
        """Apply a create, update, or destroy of ``key`` to the region's table.

        A create or update that affects no rows is retried once with the
        opposite verb; the retry must affect exactly one row.
        """

        operation = _write_operation(operation)
        record = _as_record(value)
        if record is None and operation is not Operation.DESTROY:
            raise MissingValueError(f"A value is required for {operation.value} of key {key!r}")
        region_name = _region_name(region)
        worker = worker if worker is not None else current_worker()
        self.connection()
        table_name = self._config.table_for_region(region_name)
        type_id = record.type_id if record is not None and operation is not Operation.DESTROY else 0
        columns = self._column_values(region_name, table_name, key, record, operation)

        update_count = self._execute_write(worker, table_name, columns, operation, type_id, fallback=False)
        if operation is Operation.DESTROY:
            # Deleting a row that does not exist is not an error.
            return
        if update_count > 0:
            return
        upsert = Operation.CREATE if operation is Operation.UPDATE else Operation.UPDATE
        LOG.debug(
            "Retrying write with opposite verb",
            extra={"table": table_name, "operation": operation.value, "upsert": upsert.value},
        )
        update_count = self._execute_write(worker, table_name, columns, upsert, type_id, fallback=True)
        if update_count != 1:
            raise DataConsistencyError(f"Unexpected updateCount {update_count}")

    def close(self) -> None:
        """Release the connection; the next call reconnects."""

        with self._connection_lock:
            connection, self._connection = self._connection, None
            self._statements.clear()
        if connection is None:
            return
        try:
            connection.close()
        except DriverError:
            LOG.debug("Ignoring error while closing connection", exc_info=True)
        LOG.info("Closed connection", extra={"url": self._config.url})

    def __enter__(self) -> RelationalSyncManager:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _execute_write(
        self,
        worker: WorkerId,
        table_name: str,
        columns: Sequence[ColumnValue],
        operation: Operation,
        type_id: int,
        *,
        fallback: bool,
    ) -> int:
        cached = self._statement(worker, table_name, columns, operation, type_id)
        with cached.lock:
            try:
                _bind(cached.statement, columns)
                return cached.statement.execute()
            except DriverError as exc:
                if fallback or operation is Operation.DESTROY:
                    raise StoreExecutionError(
                        f"Failed to {operation.value} row in {table_name}: {exc}"
                    ) from exc
                LOG.warning(
                    "Write failed; retrying with opposite verb",
                    extra={"table": table_name, "operation": operation.value, "error": str(exc)},
                )
                return 0
            finally:
                _clear_parameters(cached.statement)

    def _statement(
        self,
        worker: WorkerId,
        table_name: str,
        columns: Sequence[ColumnValue],
        operation: Operation,
        type_id: int,
    ) -> CachedStatement:
        key = StatementKey(operation=operation, table_name=table_name, value_type_id=type_id)

        def _prepare(connection: Connection) -> CachedStatement:
            sql = build_sql(table_name, columns, operation)
            LOG.debug("Preparing statement", extra={"sql": sql, "table": table_name, "operation": operation.value})
            try:
                statement = connection.prepare(sql)
            except DriverError as exc:
                raise StoreExecutionError(f"Failed to prepare statement for {table_name}: {exc}") from exc
            return CachedStatement(sql=sql, statement=statement, connection=connection)

        while True:
            connection = self.connection()
            cached = self._statements.get_or_prepare(worker, key, lambda: _prepare(connection))
            # The connection may have been replaced while this statement was prepared.
            if cached.connection is self.connection():
                return cached
            LOG.debug(
                "Discarding statement prepared on a replaced connection",
                extra={"table": table_name, "operation": operation.value},
            )
            self._statements.discard(worker, key, cached)

    def _column_values(
        self,
        region_name: str,
        table_name: str,
        key: Any,
        record: StructuredRecord | None,
        operation: Operation,
    ) -> list[ColumnValue]:
        key_column = self._metadata.resolve_key_column(table_name)
        key_binding = ColumnValue(is_key=True, column_name=key_column, value=key)
        if operation in {Operation.DESTROY, Operation.GET} or record is None:
            return [key_binding]
        columns: list[ColumnValue] = []
        for field_name in record.field_names:
            column_name = self._config.column_for_field(region_name, field_name)
            if column_name.lower() == key_column.lower():
                continue
            columns.append(ColumnValue(is_key=False, column_name=column_name, value=record.get_field(field_name)))
        columns.append(key_binding)
        return columns

    def _to_record(
        self,
        region_name: str,
        table_name: str,
        column_names: Sequence[str],
        row: Sequence[Any],
    ) -> StructuredRecord:
        key_column = self._metadata.resolve_key_column(table_name)
        include_key = self._config.is_key_part_of_value(region_name)
        record = StructuredRecord(type_name=self._config.value_type_for_region(region_name))
        for column_name, value in zip(column_names, row):
            if not include_key and column_name.lower() == key_column.lower():
                continue
            record.write_field(self._config.field_for_column(region_name, column_name), value)
        return record


def _write_operation(operation: Operation | str) -> Operation:
    try:
        resolved = Operation(operation)
    except ValueError:
        raise UnsupportedOperationError(f"unsupported operation {operation}") from None
    if resolved not in _WRITE_OPERATIONS:
        raise UnsupportedOperationError(f"unsupported operation {resolved.value}")
    return resolved


def _region_name(region: Any) -> str:
    if isinstance(region, str):
        return region
    return str(getattr(region, "name"))


def _as_record(value: StructuredRecord | Mapping[str, Any] | None) -> StructuredRecord | None:
    if value is None or isinstance(value, StructuredRecord):
        return value
    return StructuredRecord(value)


def _bind(statement: Statement, columns: Sequence[ColumnValue]) -> None:
    for idx, column in enumerate(columns, start=1):
        statement.bind(idx, column.value)


def _clear_parameters(statement: Statement) -> None:
    try:
        statement.clear_parameters()
    except DriverError:
        LOG.debug("Ignoring error while clearing statement parameters", exc_info=True)


def _is_closed(connection: Connection) -> bool:
    try:
        return connection.is_closed()
    except DriverError:
        return True


__all__ = ["RelationalSyncManager"]
