"""In-process TTL cache with stale fallback.

Uses cachetools.TTLCache for zero-infrastructure caching. Each process keeps
its own instances; nothing is shared across workers.

Entries that expire from the fresh tier stay in a bounded stale tier, which
callers may consult when the database is unreachable.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Hashable, Iterable
from typing import Any

from cachetools import TTLCache  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

# Distinguishes "not cached" from a cached None
_MISSING = object()


class AsyncTTLCache:
    """TTL cache with a last-known-good store.

    Two tiers:
      1. ``_cache`` (TTLCache): fresh data, governed by *ttl*.
      2. ``_stale`` (OrderedDict, LRU, bounded by *maxsize*): values that
         survive TTL expiry, read only when the upstream source fails.
    """

    def __init__(self, maxsize: int = 1024, ttl: float = 60.0):
        self._maxsize = maxsize
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._stale: OrderedDict[Hashable, Any] = OrderedDict()

    def get(self, key: Hashable) -> Any:
        """Return fresh value or ``_MISSING``."""
        return self._cache.get(key, _MISSING)

    def set(self, key: Hashable, value: Any) -> None:
        self._cache[key] = value
        self._stale[key] = value
        self._stale.move_to_end(key)
        while len(self._stale) > self._maxsize:
            self._stale.popitem(last=False)

    def get_many(self, keys: Iterable[Hashable]) -> tuple[dict[Hashable, Any], list[Hashable]]:
        """Split *keys* into ``(hits, misses)`` against the fresh tier."""
        hits: dict[Hashable, Any] = {}
        misses: list[Hashable] = []
        for key in keys:
            value = self.get(key)
            if value is _MISSING:
                misses.append(key)
            else:
                hits[key] = value
        return hits, misses

    def set_many(self, items: dict[Hashable, Any]) -> None:
        for key, value in items.items():
            self.set(key, value)

    def get_stale(self, key: Hashable) -> Any:
        """Return last-known-good value or ``_MISSING``."""
        value = self._stale.get(key, _MISSING)
        if value is not _MISSING:
            self._stale.move_to_end(key)
        return value

    def invalidate(self, key: Hashable) -> None:
        """Drop from the fresh tier; the stale tier keeps the value."""
        self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()
        self._stale.clear()

    @property
    def size(self) -> int:
        return len(self._cache)

    @property
    def stale_size(self) -> int:
        return len(self._stale)
