"""Error taxonomy raised by the region/table synchronization layer."""

from __future__ import annotations


class RegionSqlError(RuntimeError):
    """Base error for region synchronization failures."""


class ConfigurationError(RegionSqlError, ValueError):
    """Raised when connector properties are unknown, missing, or malformed."""


class SchemaResolutionError(RegionSqlError):
    """Raised when a table or its primary key cannot be resolved unambiguously."""


class UnsupportedOperationError(RegionSqlError):
    """Raised for operation kinds the manager does not translate to SQL."""


class MissingValueError(RegionSqlError, ValueError):
    """Raised when a create or update arrives without a value."""


class DataConsistencyError(RegionSqlError):
    """Raised when the table contents contradict a unique-key assumption."""


class StoreExecutionError(RegionSqlError):
    """Raised when the underlying driver fails to connect or execute."""


__all__ = [
    "ConfigurationError",
    "DataConsistencyError",
    "MissingValueError",
    "RegionSqlError",
    "SchemaResolutionError",
    "StoreExecutionError",
    "UnsupportedOperationError",
]
