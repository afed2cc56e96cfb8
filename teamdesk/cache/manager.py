"""
Main cache orchestration: read-through get with per-category TTL,
request coalescing and stale-while-revalidate.
"""
import copy
import json
import logging
import threading
import time
from dataclasses import dataclass
from concurrent.futures import Future, ThreadPoolExecutor, as_completed, wait
from typing import Any, Callable, Dict, List, Mapping, Optional, Pattern, Set, Union

from .coalescer import RequestCoalescer
from .core import CacheCategory, CacheEntry, CategoryPolicy
from .policies import POLICY_TABLE, get_policy
from .store import CacheStore

logger = logging.getLogger("cache.manager")

CategoryLike = Union[CacheCategory, str]


@dataclass(eq=False)
class _PendingWrite:
    """Write-back ticket of one running fetch."""
    key: str
    discarded: bool = False


class CacheManager:
    """
    Main cache orchestration with:
    - Per-category TTL and size bounds
    - Request coalescing for concurrent duplicate requests
    - Stale-while-revalidate for background refresh
    - Pattern invalidation and statistics

    Values handed out are deep copies; nothing outside the store can
    mutate a cached entry.
    """

    def __init__(
        self,
        policies: Mapping[CacheCategory, CategoryPolicy] = POLICY_TABLE,
        clock: Callable[[], float] = time.time,
        max_revalidation_workers: int = 4,
        coalesce_timeout: Optional[float] = None,
    ):
        """
        Initialize the cache manager.

        Args:
            policies: Category policy table, read-only for the life of the cache
            clock: Time source in seconds
            max_revalidation_workers: Thread pool size for background revalidation
            coalesce_timeout: Timeout for waiting on coalesced requests (None = no limit)
        """
        self._policies = policies
        self._clock = clock
        self._store = CacheStore(policies=policies, clock=clock)
        self._coalescer = RequestCoalescer(timeout=coalesce_timeout)

        # Background revalidation
        self._revalidation_pool = ThreadPoolExecutor(
            max_workers=max_revalidation_workers,
            thread_name_prefix="cache-revalidate",
        )
        self._revalidating: Set[str] = set()
        self._background: Set[Future] = set()
        self._revalidating_lock = threading.Lock()
        self._closed = False

        # Fetches whose result may still be written back, per key
        self._pending_writes: Dict[str, Set[_PendingWrite]] = {}
        self._writes_lock = threading.Lock()

        # Stats tracking
        self._stats = {
            "hits_fresh": 0,
            "hits_stale": 0,
            "misses": 0,
            "fetches": 0,
            "fetch_failures": 0,
            "revalidations": 0,
        }
        self._stats_lock = threading.Lock()

    def get(
        self,
        cache_key: str,
        fetch_fn: Callable[[], Any],
        category: CategoryLike = CacheCategory.TEAMS,
    ) -> Any:
        """
        Get data from cache or fetch it.

        Args:
            cache_key: Unique cache key
            fetch_fn: Function that loads the data if needed
            category: Category whose policy applies to this key

        Returns:
            A copy of the cached or freshly fetched data

        Raises:
            Exception: Whatever fetch_fn raised on a foreground miss
        """
        category = CacheCategory.coerce(category)
        policy = get_policy(category, self._policies)

        entry = self._store.lookup(cache_key)
        now = self._clock()

        if entry is not None:
            if entry.is_fresh(now):
                logger.debug(f"CACHE HIT (fresh): {cache_key} [age={entry.age(now):.1f}s]")
                self._count("hits_fresh")
                return copy.deepcopy(entry.data)

            if entry.is_usable_stale(now, policy):
                logger.info(
                    f"CACHE HIT (stale, revalidating): {cache_key} "
                    f"[age={entry.age(now):.1f}s]"
                )
                self._count("hits_stale")
                self._trigger_background_refresh(cache_key, fetch_fn, category)
                return copy.deepcopy(entry.data)

        if self._coalescer.is_pending(cache_key):
            logger.info(f"CACHE PENDING: {cache_key}")
        elif entry is None:
            logger.info(f"CACHE MISS: {cache_key}")
        else:
            logger.info(f"CACHE EXPIRED: {cache_key} [age={entry.age(now):.1f}s]")
        self._count("misses")

        data = self._coalescer.coordinate(
            cache_key,
            lambda: self._fetch_and_store(cache_key, fetch_fn, category),
        )
        return copy.deepcopy(data)

    def set(
        self,
        cache_key: str,
        data: Any,
        category: CategoryLike = CacheCategory.TEAMS,
    ) -> None:
        """Prime the cache with data the caller already has."""
        category = CacheCategory.coerce(category)
        get_policy(category, self._policies)
        self._store.write(cache_key, data, category)
        logger.debug(f"CACHE SET: {cache_key} ({category.value})")

    def peek(self, cache_key: str) -> Optional[CacheEntry]:
        """Entry for a key without fetching or counting a hit."""
        entry = self._store.lookup(cache_key)
        if entry is None:
            return None
        return copy.deepcopy(entry)

    def _fetch_and_store(
        self,
        cache_key: str,
        fetch_fn: Callable[[], Any],
        category: CacheCategory,
    ) -> Any:
        """Run fetch_fn and store its result. Runs inside the coalescer."""
        pending = _PendingWrite(cache_key)
        with self._writes_lock:
            self._pending_writes.setdefault(cache_key, set()).add(pending)

        try:
            started = time.perf_counter()
            self._count("fetches")
            try:
                data = fetch_fn()
            except Exception:
                self._count("fetch_failures")
                raise
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(f"Fetched {cache_key} in {elapsed_ms:.0f}ms")

            with self._writes_lock:
                if pending.discarded:
                    logger.info(f"Discarding result for {cache_key}: invalidated mid-fetch")
                    return data
                self._store.write(cache_key, data, category)
            return data
        finally:
            with self._writes_lock:
                self._forget_pending_write(pending)

    def _forget_pending_write(self, pending: _PendingWrite) -> None:
        """Drop a fetch's write ticket. Caller holds _writes_lock."""
        tickets = self._pending_writes.get(pending.key)
        if tickets is None:
            return
        tickets.discard(pending)
        if not tickets:
            del self._pending_writes[pending.key]

    def _discard_pending_writes(self, matches: Callable[[str], Any]) -> int:
        """Stop matching in-flight fetches from writing. Caller holds _writes_lock."""
        discarded = 0
        for key, tickets in self._pending_writes.items():
            if matches(key):
                for pending in tickets:
                    pending.discarded = True
                    discarded += 1
        return discarded

    def _trigger_background_refresh(
        self,
        cache_key: str,
        fetch_fn: Callable[[], Any],
        category: CacheCategory,
    ) -> None:
        """Trigger background refresh without blocking."""
        with self._revalidating_lock:
            if self._closed:
                return
            if cache_key in self._revalidating:
                logger.debug(f"Already revalidating: {cache_key}")
                return
            self._revalidating.add(cache_key)

        def do_refresh():
            try:
                logger.debug(f"Background refresh started: {cache_key}")
                # Same coalescer key as foreground misses
                self._coalescer.coordinate(
                    cache_key,
                    lambda: self._fetch_and_store(cache_key, fetch_fn, category),
                )
                self._count("revalidations")
                logger.debug(f"Background refresh complete: {cache_key}")
            except Exception as e:
                logger.warning(f"Background refresh failed for {cache_key}: {e}")
            finally:
                with self._revalidating_lock:
                    self._revalidating.discard(cache_key)

        try:
            future = self._revalidation_pool.submit(do_refresh)
        except RuntimeError:
            # Pool already shut down
            with self._revalidating_lock:
                self._revalidating.discard(cache_key)
            return

        with self._revalidating_lock:
            self._background.add(future)
        future.add_done_callback(self._forget_future)

    def _forget_future(self, future: Future) -> None:
        with self._revalidating_lock:
            self._background.discard(future)

    def wait_for_background_refreshes(self, timeout: Optional[float] = None) -> bool:
        """
        Block until scheduled background refreshes finish.

        Returns:
            True if none are left running
        """
        with self._revalidating_lock:
            pending = list(self._background)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def invalidate(self, pattern: Union[str, Pattern[str]]) -> int:
        """
        Invalidate all cache entries matching a pattern.

        Args:
            pattern: Substring to look for, or a compiled regex searched in each key

        Returns:
            Number of entries invalidated
        """
        if isinstance(pattern, str):
            matches = lambda key: pattern in key  # noqa: E731
            label = pattern
        else:
            matches = pattern.search
            label = pattern.pattern

        with self._writes_lock:
            # Only fetches of matching keys lose their write-back
            discarded = self._discard_pending_writes(matches)
            removed = self._store.remove_where(matches)

        if discarded:
            logger.debug(f"{discarded} in-flight fetches matching '{label}' will not be stored")

        for key in removed:
            logger.debug(f"Invalidated cache: {key}")
        if removed:
            logger.info(f"Invalidated {len(removed)} entries matching '{label}'")
        return len(removed)

    def clear(self) -> int:
        """
        Clear all cache entries and in-flight bookkeeping.

        Returns:
            Number of entries cleared
        """
        with self._writes_lock:
            self._discard_pending_writes(lambda key: True)
            count = self._store.clear()
            self._coalescer.clear()
        logger.info(f"Cleared {count} cache entries")
        return count

    def warmup(
        self,
        fetchers: Mapping[str, Callable[[], Any]],
        category: CategoryLike = CacheCategory.TEAMS,
    ) -> int:
        """
        Populate several keys concurrently.

        Failures are logged and skipped.

        Returns:
            Number of keys loaded
        """
        if not fetchers:
            return 0
        logger.info(f"Warming up cache ({len(fetchers)} keys)")
        loaded = 0
        with ThreadPoolExecutor(max_workers=min(8, len(fetchers))) as pool:
            futures = {
                pool.submit(self.get, key, fetch_fn, category): key
                for key, fetch_fn in fetchers.items()
            }
            for future in as_completed(futures):
                key = futures[future]
                try:
                    future.result()
                    loaded += 1
                except Exception as e:
                    logger.warning(f"Failed to warm up {key}: {e}")
        logger.info(f"Cache warmup complete ({loaded}/{len(fetchers)})")
        return loaded

    def stats(self) -> Dict[str, Any]:
        """Read-only snapshot of cache contents and counters."""
        now = self._clock()
        entries = self._store.entries()
        with self._stats_lock:
            counters = dict(self._stats)
        with self._revalidating_lock:
            revalidating = len(self._revalidating)

        total_hits = counters["hits_fresh"] + counters["hits_stale"]
        total_requests = total_hits + counters["misses"]
        hit_rate = (total_hits / total_requests * 100) if total_requests > 0 else 0

        return {
            "total_entries": len(entries),
            "pending_requests": self._coalescer.active_requests,
            "revalidating_count": revalidating,
            **counters,
            "hit_rate_percent": round(hit_rate, 1),
            "approx_size_bytes": _estimate_size(entries),
            "entries": [
                {
                    "key": entry.key,
                    "category": entry.category.value,
                    "age": round(entry.age(now), 3),
                    "ttl_remaining": round(entry.ttl_remaining(now), 3),
                    "expired": not entry.is_fresh(now),
                }
                for entry in entries
            ],
        }

    def _count(self, name: str) -> None:
        with self._stats_lock:
            self._stats[name] += 1

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting background refreshes and release the worker pool."""
        with self._revalidating_lock:
            self._closed = True
        self._revalidation_pool.shutdown(wait=wait)

    def __enter__(self) -> "CacheManager":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()

    def __len__(self) -> int:
        return len(self._store)


def _estimate_size(entries: List[CacheEntry]) -> int:
    """Rough payload size: serialized length, two bytes per character."""
    size = 0
    for entry in entries:
        try:
            text = json.dumps({"key": entry.key, "data": entry.data}, default=str)
        except (TypeError, ValueError):
            text = entry.key + repr(entry.data)
        size += len(text) * 2
    return size


# Global cache manager instance
_cache_manager: Optional[CacheManager] = None
_cache_manager_lock = threading.Lock()


def get_cache_manager() -> CacheManager:
    """Get or create the process-wide cache manager used by the web app."""
    global _cache_manager
    with _cache_manager_lock:
        if _cache_manager is None:
            from config.settings import settings

            _cache_manager = CacheManager(
                max_revalidation_workers=settings.cache_revalidation_workers,
                coalesce_timeout=settings.cache_coalesce_timeout,
            )
        return _cache_manager


def reset_cache_manager() -> None:
    """Dispose of the process-wide cache manager (e.g. on app shutdown)."""
    global _cache_manager
    with _cache_manager_lock:
        if _cache_manager is not None:
            _cache_manager.shutdown(wait=False)
            _cache_manager = None
