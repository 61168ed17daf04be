"""SQL text generation for single-row reads and writes."""

from __future__ import annotations

from typing import Sequence

from .errors import UnsupportedOperationError
from .models import ColumnValue, Operation


def build_sql(table_name: str, columns: Sequence[ColumnValue], operation: Operation) -> str:
    """Return the statement text for ``operation`` against ``table_name``.

    ``columns`` lists the non-key bindings in field order followed by the key
    binding; the generated placeholders follow the same order.
    """

    if operation is Operation.CREATE:
        return insert_sql(table_name, columns)
    if operation is Operation.UPDATE:
        return update_sql(table_name, columns)
    if operation is Operation.DESTROY:
        return delete_sql(table_name, columns)
    if operation is Operation.GET:
        return select_sql(table_name, columns)
    raise UnsupportedOperationError(f"unsupported operation {operation}")


def select_sql(table_name: str, columns: Sequence[ColumnValue]) -> str:
    key = _single_key(columns)
    return f"SELECT * FROM {table_name} WHERE {key.column_name} = ?"


def delete_sql(table_name: str, columns: Sequence[ColumnValue]) -> str:
    key = _single_key(columns)
    return f"DELETE FROM {table_name} WHERE {key.column_name} = ?"


def update_sql(table_name: str, columns: Sequence[ColumnValue]) -> str:
    assignments = ", ".join(f"{cv.column_name} = ?" for cv in columns if not cv.is_key)
    key = _trailing_key(columns)
    return f"UPDATE {table_name} SET {assignments} WHERE {key.column_name} = ?"


def insert_sql(table_name: str, columns: Sequence[ColumnValue]) -> str:
    _trailing_key(columns)
    names = ", ".join(cv.column_name for cv in columns)
    placeholders = ",".join("?" for _ in columns)
    return f"INSERT INTO {table_name}({names}) VALUES ({placeholders})"


def _single_key(columns: Sequence[ColumnValue]) -> ColumnValue:
    if len(columns) != 1 or not columns[0].is_key:
        raise ValueError("Expected exactly one key column binding")
    return columns[0]


def _trailing_key(columns: Sequence[ColumnValue]) -> ColumnValue:
    if not columns or not columns[-1].is_key:
        raise ValueError("Expected the key column binding last")
    if any(cv.is_key for cv in columns[:-1]):
        raise ValueError("Expected exactly one key column binding")
    return columns[-1]


__all__ = [
    "build_sql",
    "delete_sql",
    "insert_sql",
    "select_sql",
    "update_sql",
]
