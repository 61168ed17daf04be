"""Shared dataclasses used across the config, builder, and manager modules."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Hashable, Iterator, Mapping


class Operation(str, Enum):
    """Operation kinds the manager can translate into SQL."""

    CREATE = "create"
    UPDATE = "update"
    DESTROY = "destroy"
    GET = "get"

    @property
    def is_write(self) -> bool:
        return self is not Operation.GET


@dataclass(frozen=True, slots=True)
class ColumnValue:
    """One column binding produced for a single read or write."""

    is_key: bool
    column_name: str
    value: Any


@dataclass(frozen=True, slots=True)
class StatementKey:
    """Identifies a cached prepared statement."""

    operation: Operation
    table_name: str
    value_type_id: int = 0


class StructuredRecord:
    """Ordered collection of named fields, optionally tagged with a type name.

    Field order is the insertion order and drives the column order of
    generated INSERT/UPDATE statements.
    """

    __slots__ = ("_fields", "_type_name")

    def __init__(self, fields: Mapping[str, Any] | None = None, type_name: str | None = None) -> None:
        self._fields: dict[str, Any] = dict(fields or {})
        self._type_name = type_name

    @property
    def type_name(self) -> str | None:
        """Configured value type, or None for an untyped record."""

        return self._type_name

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(self._fields)

    @property
    def type_id(self) -> int:
        """Identifier of the record's shape (type name plus field names)."""

        return hash((self._type_name, self.field_names))

    def get_field(self, name: str) -> Any:
        return self._fields[name]

    def write_field(self, name: str, value: Any) -> None:
        self._fields[name] = value

    def as_dict(self) -> dict[str, Any]:
        return dict(self._fields)

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StructuredRecord):
            return NotImplemented
        return self._type_name == other._type_name and self._fields == other._fields

    def __repr__(self) -> str:
        return f"StructuredRecord(type_name={self._type_name!r}, fields={self._fields!r})"


@dataclass(frozen=True, slots=True)
class EntryEvent:
    """Mutation notification handed to a region writer."""

    region: str
    operation: Operation
    key: Hashable
    new_value: StructuredRecord | Mapping[str, Any] | None = None


__all__ = [
    "ColumnValue",
    "EntryEvent",
    "Operation",
    "StatementKey",
    "StructuredRecord",
]
