"""Connector property parsing and per-region naming lookups."""

from __future__ import annotations

import os
import re
from typing import Any, Callable, Mapping, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigurationError

SEPARATOR_ENV = "REGIONSQL_SEPARATOR"
DEFAULT_SEPARATOR = ":"

URL = "url"
USER = "user"
PASSWORD = "password"
# [region<sep>]typeName[,...]; at most one item without a region is the default.
VALUE_CLASS_NAME = "valueClassName"
# [region<sep>]bool[,...]; at most one item without a region is the default.
IS_KEY_PART_OF_VALUE = "isKeyPartOfValue"
# region<sep>table[,...]
REGION_TO_TABLE = "regionToTable"
# [region<sep>]field<sep>column[,...]
FIELD_TO_COLUMN = "fieldToColumn"

KNOWN_PROPERTIES: tuple[str, ...] = (
    URL,
    USER,
    PASSWORD,
    VALUE_CLASS_NAME,
    IS_KEY_PART_OF_VALUE,
    REGION_TO_TABLE,
    FIELD_TO_COLUMN,
)
REQUIRED_PROPERTIES: tuple[str, ...] = (URL,)

# (region or None, field/column name), both lower-cased.
RegionAndName = tuple[str | None, str]

_ITEM_SPLIT = re.compile(r"\s*,\s*")

K = TypeVar("K")
V = TypeVar("V")


class MappingConfig(BaseModel):
    """Immutable naming rules mapping regions and fields onto tables and columns.

    Region and field/column lookups are case-insensitive. ``column_to_field``
    is always derived from ``field_to_column`` and is never supplied directly.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    user: str | None = None
    password: str | None = Field(default=None, repr=False)
    separator: str = DEFAULT_SEPARATOR
    value_type_default: str | None = None
    region_to_value_type: dict[str, str] = Field(default_factory=dict)
    key_part_of_value_default: bool = False
    region_to_key_part_of_value: dict[str, bool] = Field(default_factory=dict)
    region_to_table: dict[str, str] = Field(default_factory=dict)
    field_to_column: dict[RegionAndName, str] = Field(default_factory=dict)
    column_to_field: dict[RegionAndName, str] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _normalize_maps(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        for name in ("region_to_value_type", "region_to_key_part_of_value", "region_to_table"):
            raw = data.get(name)
            if raw:
                data[name] = _lower_keys(raw, name)
        separator = data.get("separator") or DEFAULT_SEPARATOR
        field_to_column: dict[RegionAndName, str] = {}
        column_to_field: dict[RegionAndName, str] = {}
        for (region, field_name), column in dict(data.get("field_to_column") or {}).items():
            region = region.lower() if region else None
            key = (region, field_name.lower())
            if key in field_to_column:
                raise ValueError(f"Duplicate item {_describe(region, field_name, separator)} is not allowed.")
            field_to_column[key] = column
            inverse_key = (region, column.lower())
            if inverse_key in column_to_field:
                raise ValueError(
                    f"The column {_describe(region, column, separator)} can not be mapped to two different fields."
                )
            column_to_field[inverse_key] = field_name
        data["field_to_column"] = field_to_column
        data["column_to_field"] = column_to_field
        return data

    @classmethod
    def from_properties(
        cls,
        properties: Mapping[str, str],
        *,
        separator: str | None = None,
    ) -> MappingConfig:
        """Parse a flat property set into a validated configuration."""

        _validate_known_properties(properties)
        _validate_required_properties(properties)
        sep = separator or os.environ.get(SEPARATOR_ENV) or DEFAULT_SEPARATOR

        value_type_prop = properties.get(VALUE_CLASS_NAME)
        key_part_prop = properties.get(IS_KEY_PART_OF_VALUE)
        field_entries = _parse_map(
            properties.get(FIELD_TO_COLUMN),
            sep,
            lambda item: _parse_region_field(item, sep),
            lambda value: value,
            fail_on_no_separator=True,
        )
        try:
            return cls(
                url=properties[URL],
                user=properties.get(USER),
                password=properties.get(PASSWORD),
                separator=sep,
                value_type_default=_parse_default(VALUE_CLASS_NAME, value_type_prop, sep, lambda v: v, None),
                region_to_value_type=_parse_map(
                    value_type_prop, sep, lambda k: _parse_region_key(k, sep), lambda v: v
                ),
                key_part_of_value_default=_parse_default(
                    IS_KEY_PART_OF_VALUE, key_part_prop, sep, _parse_bool, False
                ),
                region_to_key_part_of_value=_parse_map(
                    key_part_prop, sep, lambda k: _parse_region_key(k, sep), _parse_bool
                ),
                region_to_table=_parse_map(
                    properties.get(REGION_TO_TABLE),
                    sep,
                    lambda k: _parse_region_key(k, sep),
                    lambda v: v,
                    fail_on_no_separator=True,
                ),
                field_to_column=field_entries,
            )
        except ValidationError as exc:
            messages = "; ".join(str(error["msg"]).removeprefix("Value error, ") for error in exc.errors())
            raise ConfigurationError(messages) from exc

    def table_for_region(self, region_name: str) -> str:
        """Table backing the region; the region name itself absent an override."""

        return self.region_to_table.get(region_name.lower(), region_name)

    def value_type_for_region(self, region_name: str) -> str | None:
        return self.region_to_value_type.get(region_name.lower(), self.value_type_default)

    def is_key_part_of_value(self, region_name: str) -> bool:
        return self.region_to_key_part_of_value.get(region_name.lower(), self.key_part_of_value_default)

    def column_for_field(self, region_name: str, field_name: str) -> str:
        """Column for a field; region entries win over unqualified ones."""

        column = _lookup(self.field_to_column, region_name, field_name)
        return column if column is not None else field_name

    def field_for_column(self, region_name: str, column_name: str) -> str:
        """Field for a column; falls back to the lower-cased column name."""

        field_name = _lookup(self.column_to_field, region_name, column_name)
        return field_name if field_name is not None else column_name.lower()


def _lookup(mapping: Mapping[RegionAndName, str], region_name: str, name: str) -> str | None:
    lowered = name.lower()
    value = mapping.get((region_name.lower(), lowered))
    if value is None:
        value = mapping.get((None, lowered))
    return value


def _validate_known_properties(properties: Mapping[str, str]) -> None:
    unknown = sorted(set(properties) - set(KNOWN_PROPERTIES))
    if unknown:
        raise ConfigurationError(f"unknown properties: [{', '.join(unknown)}]")


def _validate_required_properties(properties: Mapping[str, str]) -> None:
    missing = sorted(set(REQUIRED_PROPERTIES) - set(properties))
    if missing:
        raise ConfigurationError(f"missing required properties: [{', '.join(missing)}]")


def _split_items(value: str) -> list[str]:
    return _ITEM_SPLIT.split(value.strip())


def _parse_map(
    value: str | None,
    separator: str,
    key_parser: Callable[[str], K],
    value_parser: Callable[[str], V],
    *,
    fail_on_no_separator: bool = False,
) -> dict[K, V]:
    """Parse ``key<sep>value`` items, splitting each on its last separator."""

    result: dict[K, V] = {}
    if value is None:
        return result
    for item in _split_items(value):
        idx = item.rfind(separator)
        if idx == -1:
            if fail_on_no_separator:
                raise ConfigurationError(f"{item} does not contain {separator}")
            continue
        key_string = item[:idx]
        value_string = item[idx + len(separator) :]
        if not key_string or not value_string:
            raise ConfigurationError(f"Empty string found while splitting {item} on the {separator} separator")
        key = key_parser(key_string)
        if key in result:
            raise ConfigurationError(f"Duplicate item {key_string} is not allowed.")
        result[key] = value_parser(value_string)
    return result


def _parse_default(
    property_name: str,
    value: str | None,
    separator: str,
    parser: Callable[[str], V],
    default: V,
) -> V:
    """Return the single item without a region qualifier, if any."""

    if value is None:
        return default
    result: V | None = None
    found = False
    for item in _split_items(value):
        if separator in item:
            continue
        if found:
            raise ConfigurationError(
                f"{property_name} can have at most one item that does not have a {separator} in it."
            )
        result = parser(item)
        found = True
    return result if found else default  # type: ignore[return-value]


def _parse_region_key(key: str, separator: str) -> str:
    if separator in key:
        raise ConfigurationError(f"Too many {separator} separators in {key}")
    return key.lower()


def _parse_region_field(item: str, separator: str) -> tuple[str | None, str]:
    idx = item.find(separator)
    if idx == -1:
        return None, item
    region_name = item[:idx]
    field_name = item[idx + len(separator) :]
    if not region_name or not field_name:
        raise ConfigurationError(f"Empty string found while splitting {item} on the {separator} separator")
    if separator in field_name:
        raise ConfigurationError(f"Too many {separator} separators in {field_name}")
    return region_name.lower(), field_name


def _parse_bool(value: str) -> bool:
    return value.strip().lower() == "true"


def _lower_keys(mapping: Mapping[str, V], name: str) -> dict[str, V]:
    result: dict[str, V] = {}
    for key, value in mapping.items():
        lowered = key.lower()
        if lowered in result:
            raise ValueError(f"Duplicate item {key} in {name} is not allowed.")
        result[lowered] = value
    return result


def _describe(region: str | None, name: str, separator: str) -> str:
    if region is None:
        return name
    return f"{region}{separator}{name}"


__all__ = [
    "DEFAULT_SEPARATOR",
    "FIELD_TO_COLUMN",
    "IS_KEY_PART_OF_VALUE",
    "KNOWN_PROPERTIES",
    "MappingConfig",
    "PASSWORD",
    "REGION_TO_TABLE",
    "REQUIRED_PROPERTIES",
    "RegionAndName",
    "SEPARATOR_ENV",
    "URL",
    "USER",
    "VALUE_CLASS_NAME",
]
