"""Bounded LRU mapping for in-memory caches.

The discovery cache stores one entry per user identifier; without a bound a
long-running broker would grow without limit as new users federate in.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Callable, Iterator
from typing import Any, Generic, TypeVar

# Fallback when configuration can't be read
DEFAULT_CACHE_MAX_SIZE = 10000

K = TypeVar("K")
V = TypeVar("V")


def get_cache_max_size() -> int:
    """Get the configured cache max size from config."""
    from .config import get_config

    return get_config().cache_max_size


class LRUDict(Generic[K, V]):
    """A mapping with least-recently-used eviction.

    Reads through ``[]`` mark an entry as recently used; ``peek`` does not.
    When the mapping grows beyond ``max_size`` the oldest entries are
    evicted. All operations take an internal re-entrant lock, so the
    mapping can be shared between threads.

    Example:
        cache = LRUDict(max_size=2)
        cache["a"] = 1
        cache["b"] = 2
        cache["a"]           # "a" is now the most recent
        cache["c"] = 3       # evicts "b"
    """

    def __init__(self, max_size: int | None = None) -> None:
        self._max_size = max_size if max_size is not None else get_cache_max_size()
        if self._max_size <= 0:
            raise ValueError(f"max_size must be positive, got {self._max_size}")
        self._data: OrderedDict[K, V] = OrderedDict()
        self._lock = threading.RLock()
        self._evictions = 0

    @property
    def max_size(self) -> int:
        """Maximum number of entries."""
        return self._max_size

    def __setitem__(self, key: K, value: V) -> None:
        with self._lock:
            self._data[key] = value
            self._data.move_to_end(key)
            while len(self._data) > self._max_size:
                self._data.popitem(last=False)
                self._evictions += 1

    def __getitem__(self, key: K) -> V:
        with self._lock:
            value = self._data[key]
            self._data.move_to_end(key)
            return value

    def __delitem__(self, key: K) -> None:
        with self._lock:
            del self._data[key]

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __iter__(self) -> Iterator[K]:
        # Iterate over a snapshot so writers never invalidate the iterator
        with self._lock:
            return iter(list(self._data))

    def get(self, key: K, default: V | None = None) -> V | None:
        """Get an entry and mark it as recently used."""
        with self._lock:
            if key not in self._data:
                return default
            return self[key]

    def peek(self, key: K, default: V | None = None) -> V | None:
        """Get an entry without touching its recency."""
        with self._lock:
            return self._data.get(key, default)

    def pop(self, key: K, default: V | None = None) -> V | None:
        """Remove and return an entry, or ``default`` when absent."""
        with self._lock:
            return self._data.pop(key, default)

    def remove_where(self, predicate: Callable[[K, V], bool]) -> int:
        """Remove every entry for which ``predicate(key, value)`` holds.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            doomed = [k for k, v in self._data.items() if predicate(k, v)]
            for key in doomed:
                del self._data[key]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def items(self) -> list[tuple[K, V]]:
        """Snapshot of entries, oldest first."""
        with self._lock:
            return list(self._data.items())

    def stats(self) -> dict[str, Any]:
        """Return cache statistics."""
        with self._lock:
            return {
                "size": len(self._data),
                "max_size": self._max_size,
                "evictions": self._evictions,
                "utilization": len(self._data) / self._max_size,
            }
