"""Loader and writer hooks a key-value store calls for read-through and write-through."""

from __future__ import annotations

from typing import Any, Mapping

from .config import MappingConfig
from .driver import Driver
from .errors import RegionSqlError
from .manager import RelationalSyncManager
from .models import EntryEvent, StructuredRecord


class _ManagedHook:
    """Shared ``init``/``close`` lifecycle for loader and writer hooks."""

    def __init__(self, *, driver: Driver | None = None) -> None:
        self._driver = driver
        self._manager: RelationalSyncManager | None = None

    def init(self, properties: Mapping[str, str]) -> None:
        """Build the configuration and manager from connector properties."""

        config = MappingConfig.from_properties(properties)
        self._manager = RelationalSyncManager(config, driver=self._driver)

    @property
    def manager(self) -> RelationalSyncManager:
        if self._manager is None:
            raise RegionSqlError(f"{type(self).__name__} used before init()")
        return self._manager

    def close(self) -> None:
        if self._manager is not None:
            self._manager.close()


class RegionLoader(_ManagedHook):
    """Satisfies region misses by reading the matching table row."""

    def load(self, region: Any, key: Any) -> StructuredRecord | None:
        return self.manager.read(region, key)


class RegionWriter(_ManagedHook):
    """Pushes region mutations to the table before the store applies them."""

    def before_create(self, event: EntryEvent) -> None:
        self._write(event)

    def before_update(self, event: EntryEvent) -> None:
        self._write(event)

    def before_destroy(self, event: EntryEvent) -> None:
        self._write(event)

    def before_region_destroy(self, event: Any) -> None:
        # Region-wide events are not propagated to the table.
        return None

    def before_region_clear(self, event: Any) -> None:
        return None

    def _write(self, event: EntryEvent) -> None:
        self.manager.write(event.region, event.operation, event.key, event.new_value)


__all__ = ["RegionLoader", "RegionWriter"]
