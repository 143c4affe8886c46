from __future__ import annotations

import threading
from typing import Any, Callable, Hashable

from cachetools import LRUCache


def make_cache_key(namespace: str, *, version: int, scope: list[Any] | None = None) -> tuple:
    ns = str(namespace or "").strip().upper()
    parts = tuple(str(s) for s in (scope or []))
    return (ns, int(version)) + parts


class BalanceCache:
    """
    Memo for derived ledger figures.

    Keys carry the transaction-list version, so an entry computed against an
    older list can never be returned after the list changes. `invalidate()`
    is called on every version bump to release the stale entries.
    """

    def __init__(self, max_items: int = 4096):
        self._enabled = max_items > 0
        self._cache: LRUCache = LRUCache(maxsize=max(1, max_items))
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    def get_or_set(self, key: Hashable, factory: Callable[[], Any]) -> Any:
        if not self._enabled:
            return factory()
        with self._lock:
            if key in self._cache:
                self._hits += 1
                return self._cache[key]
            self._misses += 1
        computed = factory()
        with self._lock:
            self._cache[key] = computed
        return computed

    def invalidate(self) -> None:
        with self._lock:
            self._cache.clear()

    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            hit_rate = (self._hits / total * 100) if total > 0 else 0.0
            return {
                "size": len(self._cache),
                "maxsize": self._cache.maxsize,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(hit_rate, 2),
            }
