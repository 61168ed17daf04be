"""Tests for primary-key discovery."""

from __future__ import annotations

import pytest

from regionsql.driver import DriverError
from regionsql.errors import SchemaResolutionError, StoreExecutionError
from regionsql.metadata import TableMetadataResolver


class _Catalog:
    def __init__(self, tables: dict[str, tuple[str, ...]]) -> None:
        self.tables = tables
        self.lookups = 0

    def list_tables(self, pattern: str = "%") -> tuple[str, ...]:
        self.lookups += 1
        return tuple(self.tables)

    def list_primary_keys(self, table_name: str) -> tuple[str, ...]:
        return self.tables[table_name]


class _Connection:
    def __init__(self, catalog: _Catalog) -> None:
        self.catalog = catalog

    def metadata(self) -> _Catalog:
        return self.catalog


def _resolver(tables: dict[str, tuple[str, ...]]) -> tuple[TableMetadataResolver, _Catalog]:
    catalog = _Catalog(tables)
    connection = _Connection(catalog)
    return TableMetadataResolver(lambda: connection), catalog  # type: ignore[arg-type,return-value]


def test_key_column_matches_table_case_insensitively() -> None:
    resolver, _ = _resolver({"EMPLOYEES": ("ID",)})

    assert resolver.resolve_key_column("employees") == "ID"


def test_key_column_is_cached() -> None:
    resolver, catalog = _resolver({"employees": ("id",)})

    resolver.resolve_key_column("employees")
    resolver.resolve_key_column("employees")

    assert catalog.lookups == 1
    assert resolver.cached_tables() == ("employees",)


def test_missing_table_is_reported_and_not_cached() -> None:
    resolver, catalog = _resolver({"other": ("id",)})

    with pytest.raises(SchemaResolutionError, match="no table was found that matches employees"):
        resolver.resolve_key_column("employees")

    catalog.tables["employees"] = ("id",)
    assert resolver.resolve_key_column("employees") == "id"


def test_tables_differing_only_in_case_are_ambiguous() -> None:
    resolver, _ = _resolver({"Employees": ("id",), "EMPLOYEES": ("id",)})

    with pytest.raises(SchemaResolutionError, match="Duplicate tables"):
        resolver.resolve_key_column("employees")


def test_table_without_primary_key_fails() -> None:
    resolver, _ = _resolver({"employees": ()})

    with pytest.raises(SchemaResolutionError, match="does not have a primary key column"):
        resolver.resolve_key_column("employees")


def test_composite_primary_key_fails() -> None:
    resolver, _ = _resolver({"employees": ("id", "dept")})

    with pytest.raises(SchemaResolutionError, match="more than one primary key column"):
        resolver.resolve_key_column("employees")


def test_catalog_driver_errors_are_wrapped() -> None:
    class _BrokenCatalog(_Catalog):
        def list_tables(self, pattern: str = "%") -> tuple[str, ...]:
            raise DriverError("permission denied")

    connection = _Connection(_BrokenCatalog({}))
    resolver = TableMetadataResolver(lambda: connection)  # type: ignore[arg-type,return-value]

    with pytest.raises(StoreExecutionError, match="permission denied"):
        resolver.resolve_key_column("employees")
