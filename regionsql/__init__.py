"""Read-through and write-through synchronization between key-value regions and SQL tables."""

from __future__ import annotations

from .adapters import RegionLoader, RegionWriter
from .config import MappingConfig
from .driver import AsyncpgDriver, DriverError, QueryResult, SqliteDriver, driver_for_url
from .errors import (
    ConfigurationError,
    DataConsistencyError,
    MissingValueError,
    RegionSqlError,
    SchemaResolutionError,
    StoreExecutionError,
    UnsupportedOperationError,
)
from .manager import RelationalSyncManager
from .metadata import TableMetadataResolver
from .models import ColumnValue, EntryEvent, Operation, StatementKey, StructuredRecord
from .sqlbuilder import build_sql
from .statements import StatementCache

__version__ = "0.1.0"

__all__ = [
    "AsyncpgDriver",
    "ColumnValue",
    "ConfigurationError",
    "DataConsistencyError",
    "DriverError",
    "EntryEvent",
    "MappingConfig",
    "MissingValueError",
    "Operation",
    "QueryResult",
    "RegionLoader",
    "RegionSqlError",
    "RegionWriter",
    "RelationalSyncManager",
    "SchemaResolutionError",
    "SqliteDriver",
    "StatementCache",
    "StatementKey",
    "StoreExecutionError",
    "StructuredRecord",
    "TableMetadataResolver",
    "UnsupportedOperationError",
    "__version__",
    "build_sql",
    "driver_for_url",
]
