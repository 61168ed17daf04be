"""Primary-key discovery backed by the database catalog."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from .driver import Connection, DriverError
from .errors import SchemaResolutionError, StoreExecutionError

LOG = logging.getLogger(__name__)


class TableMetadataResolver:
    """Resolves and caches the single primary-key column of each table.

    Results are cached for the lifetime of the resolver; failed resolutions
    are not cached, so the next call for the same table queries again.
    """

    def __init__(self, connection_factory: Callable[[], Connection]) -> None:
        self._connection_factory = connection_factory
        self._key_columns: dict[str, str] = {}
        self._lock = threading.Lock()

    def resolve_key_column(self, table_name: str) -> str:
        """Return the primary-key column of ``table_name``."""

        with self._lock:
            cached = self._key_columns.get(table_name)
        if cached is not None:
            return cached
        key_column = self._compute_key_column(table_name)
        with self._lock:
            return self._key_columns.setdefault(table_name, key_column)

    def cached_tables(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._key_columns)

    def _compute_key_column(self, table_name: str) -> str:
        connection = self._connection_factory()
        try:
            catalog = connection.metadata()
            matches = [name for name in catalog.list_tables("%") if name.lower() == table_name.lower()]
            if not matches:
                raise SchemaResolutionError(f"no table was found that matches {table_name}")
            if len(matches) > 1:
                raise SchemaResolutionError(f"Duplicate tables that match region name {table_name}")
            real_table_name = matches[0]
            primary_keys = tuple(catalog.list_primary_keys(real_table_name))
        except DriverError as exc:
            raise StoreExecutionError(f"Failed to read catalog metadata for {table_name}: {exc}") from exc
        if not primary_keys:
            raise SchemaResolutionError(f"The table {table_name} does not have a primary key column.")
        if len(primary_keys) > 1:
            raise SchemaResolutionError(f"The table {table_name} has more than one primary key column.")
        LOG.debug(
            "Resolved key column",
            extra={"table": table_name, "catalog_table": real_table_name, "key_column": primary_keys[0]},
        )
        return primary_keys[0]


__all__ = ["TableMetadataResolver"]
