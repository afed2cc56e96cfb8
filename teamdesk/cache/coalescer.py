"""
Request coalescing to prevent duplicate round trips to the data store.

When multiple concurrent requests ask for the same key, only one
fetch is made and all requesters share the result.
"""
import threading
import time
import logging
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field

logger = logging.getLogger("cache.coalescer")


@dataclass
class InFlightRequest:
    """Tracks an in-progress fetch."""
    key: str
    event: threading.Event = field(default_factory=threading.Event)
    result: Optional[Any] = None
    error: Optional[BaseException] = None
    started_at: float = field(default_factory=time.time)
    waiter_count: int = 0


class RequestCoalescer:
    """
    Ensures concurrent requests for the same cache key share one fetch.

    Pattern:
    - First request for a key initiates the fetch
    - Subsequent requests for the same key wait on the Event
    - The request is deregistered as soon as the fetch settles, before
      waiters are released, so the next caller starts a fresh attempt
    - Failures are shared with every waiter and never remembered

    Usage:
        coalescer = RequestCoalescer()
        result = coalescer.coordinate(
            "teams:all",
            lambda: load_teams(),
        )
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Initialize the coalescer.

        Args:
            timeout: Max seconds a waiter blocks on someone else's fetch.
                None waits for as long as the fetch takes.
        """
        self._in_flight: Dict[str, InFlightRequest] = {}
        self._lock = threading.Lock()
        self._timeout = timeout

    def coordinate(self, cache_key: str, fetch_fn: Callable[[], Any]) -> Any:
        """
        Either join an existing in-flight request or initiate a new one.

        Args:
            cache_key: Unique key for this request
            fetch_fn: Function to call if we need to fetch

        Returns:
            The fetched data (shared among all concurrent callers)

        Raises:
            TimeoutError: If waiting for an in-flight request times out
            Exception: Any error from fetch_fn is propagated unchanged
        """
        with self._lock:
            in_flight = self._in_flight.get(cache_key)
            if in_flight is not None:
                in_flight.waiter_count += 1
                logger.debug(
                    f"Coalescing request for {cache_key} "
                    f"(waiters: {in_flight.waiter_count})"
                )
                is_initiator = False
            else:
                in_flight = InFlightRequest(key=cache_key)
                self._in_flight[cache_key] = in_flight
                is_initiator = True
                logger.debug(f"Initiating fetch for {cache_key}")

        if is_initiator:
            try:
                in_flight.result = fetch_fn()
            except BaseException as e:
                # Includes aborts such as KeyboardInterrupt
                in_flight.error = e
                logger.warning(f"Fetch failed for {cache_key}: {e!r}")
            finally:
                self._release(in_flight)

            if in_flight.error is not None:
                raise in_flight.error
            return in_flight.result

        completed = in_flight.event.wait(timeout=self._timeout)
        if not completed:
            logger.error(f"Timeout waiting for coalesced request: {cache_key}")
            raise TimeoutError(f"Request for {cache_key} timed out after {self._timeout}s")

        if in_flight.error is not None:
            raise in_flight.error
        return in_flight.result

    def _release(self, in_flight: InFlightRequest) -> None:
        with self._lock:
            # clear() may already have dropped it, and a newer request may own the key
            if self._in_flight.get(in_flight.key) is in_flight:
                del self._in_flight[in_flight.key]
        in_flight.event.set()

    def is_pending(self, cache_key: str) -> bool:
        with self._lock:
            return cache_key in self._in_flight

    def waiters(self, cache_key: str) -> int:
        """Number of callers attached to someone else's fetch for this key."""
        with self._lock:
            in_flight = self._in_flight.get(cache_key)
            return in_flight.waiter_count if in_flight else 0

    def pending_keys(self) -> List[str]:
        with self._lock:
            return list(self._in_flight)

    def clear(self) -> int:
        """
        Forget all in-flight bookkeeping.

        Fetches already running still finish and release their own waiters.
        """
        with self._lock:
            count = len(self._in_flight)
            self._in_flight.clear()
            return count

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight requests."""
        with self._lock:
            return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        """Get coalescer statistics."""
        with self._lock:
            return {
                "active_requests": len(self._in_flight),
                "active_keys": list(self._in_flight.keys()),
            }
