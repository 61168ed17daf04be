"""Per-worker cache of prepared statements."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Hashable

from .driver import Connection, Statement
from .models import StatementKey

WorkerId = Hashable


@dataclass(slots=True)
class CachedStatement:
    """A prepared statement, its connection, and the lock serializing bind/execute/clear."""

    sql: str
    statement: Statement
    connection: Connection
    lock: threading.Lock = field(default_factory=threading.Lock)


class StatementCache:
    """Maps ``(worker, StatementKey)`` to a prepared statement.

    Workers never share an entry. Entries are not closed individually; they
    are dropped with :meth:`clear` when their connection goes away, or with
    :meth:`discard` when a caller finds one prepared on a replaced connection.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[WorkerId, StatementKey], CachedStatement] = {}
        self._lock = threading.Lock()

    def get_or_prepare(
        self,
        worker: WorkerId,
        key: StatementKey,
        prepare: Callable[[], CachedStatement],
    ) -> CachedStatement:
        """Return the cached statement for ``key``, preparing it on first use."""

        cache_key = (worker, key)
        with self._lock:
            entry = self._entries.get(cache_key)
        if entry is not None:
            return entry
        entry = prepare()
        with self._lock:
            return self._entries.setdefault(cache_key, entry)

    def discard(self, worker: WorkerId, key: StatementKey, entry: CachedStatement) -> None:
        """Drop ``entry`` if it is still the one cached for ``key``."""

        cache_key = (worker, key)
        with self._lock:
            if self._entries.get(cache_key) is entry:
                del self._entries[cache_key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys_for(self, worker: WorkerId) -> tuple[StatementKey, ...]:
        """Statement keys currently cached for ``worker``."""

        with self._lock:
            return tuple(key for owner, key in self._entries if owner == worker)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def current_worker() -> WorkerId:
    return threading.get_ident()


__all__ = ["CachedStatement", "StatementCache", "WorkerId", "current_worker"]
