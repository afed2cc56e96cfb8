"""
Bounded in-memory store of time-stamped cache entries.

The store knows nothing about what it holds. It computes expiry from the
category policy, prunes doubly-expired entries and evicts the oldest writes
once a category grows past its size bound.
"""
import copy
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .core import CacheCategory, CacheEntry, CategoryPolicy
from .policies import POLICY_TABLE

logger = logging.getLogger("cache.store")


class CacheStore:
    """
    Thread-safe key -> CacheEntry map with per-category write ordering.

    Eviction order is write order: a key moves to the back of its category
    every time it is rewritten, reads never reorder anything.
    """

    def __init__(
        self,
        policies: Mapping[CacheCategory, CategoryPolicy] = POLICY_TABLE,
        clock: Callable[[], float] = time.time,
    ):
        self._policies = policies
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._by_category: Dict[CacheCategory, "OrderedDict[str, None]"] = {}
        self._lock = threading.RLock()

    def lookup(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for key, or None."""
        with self._lock:
            return self._entries.get(key)

    def write(self, key: str, data: Any, category: CacheCategory) -> CacheEntry:
        """Store a detached copy of data under key, then clean up the category."""
        policy = self._policies[category]
        now = self._clock()
        entry = CacheEntry(
            key=key,
            data=copy.deepcopy(data),
            stored_at=now,
            expires_at=now + policy.ttl_seconds,
            category=category,
        )
        with self._lock:
            self._unlink(key)
            self._entries[key] = entry
            self._by_category.setdefault(category, OrderedDict())[key] = None
            self.cleanup(category)
        return entry

    def remove(self, keys: Iterable[str]) -> int:
        """Remove keys; unknown keys are ignored. Returns number removed."""
        removed = 0
        with self._lock:
            for key in keys:
                if self._unlink(key):
                    removed += 1
        return removed

    def remove_where(self, predicate: Callable[[str], Any]) -> List[str]:
        """Atomically remove every key the predicate accepts."""
        with self._lock:
            doomed = [k for k in self._entries if predicate(k)]
            for key in doomed:
                self._unlink(key)
        return doomed

    def cleanup(self, category: CacheCategory) -> int:
        """
        Prune dead entries of a category and enforce its size bound.

        Returns:
            Number of entries dropped
        """
        policy = self._policies[category]
        now = self._clock()
        dropped = 0
        with self._lock:
            order = self._by_category.get(category)
            if not order:
                return 0

            dead = [k for k in order if self._entries[k].is_prunable(now)]
            for key in dead:
                self._unlink(key)
            dropped += len(dead)

            while len(order) > policy.max_entries:
                oldest = next(iter(order))
                self._unlink(oldest)
                dropped += 1
                logger.debug(f"Evicted {oldest} ({category.value} over {policy.max_entries})")

        return dropped

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def entries(self) -> List[CacheEntry]:
        with self._lock:
            return list(self._entries.values())

    def count(self, category: Optional[CacheCategory] = None) -> int:
        with self._lock:
            if category is None:
                return len(self._entries)
            return len(self._by_category.get(category, ()))

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._by_category.clear()
            return count

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def _unlink(self, key: str) -> bool:
        # Caller holds the lock
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        order = self._by_category.get(entry.category)
        if order is not None:
            order.pop(key, None)
        return True
