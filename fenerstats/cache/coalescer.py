"""
Request coalescing to prevent duplicate upstream API calls.

When multiple concurrent requests ask for the same data, only one
upstream call is made and all requesters share the result.
"""
import threading
import time
import logging
from typing import Dict, Optional, Callable, Any, Tuple
from dataclasses import dataclass, field

from .core import CacheSource

logger = logging.getLogger("cache.coalescer")

# Returned by a lookup to signal "not cached"
MISSING = object()


@dataclass
class InFlightRequest:
    """Tracks an in-progress upstream request."""
    event: threading.Event = field(default_factory=threading.Event)
    result: Optional[Any] = None
    error: Optional[BaseException] = None
    started_at: float = field(default_factory=time.time)
    waiter_count: int = 0


class RequestCoalescer:
    """
    Ensures concurrent requests for the same cache key share one upstream call.

    Pattern:
    - Under one lock: consult the cache, then the in-flight ledger, then register
    - First request for a key initiates the fetch
    - Subsequent requests for the same key wait on the Event
    - Publication of the outcome, the cache write and the ledger removal
      happen in one critical section, so a caller arriving right after
      settlement either sees the cached value or starts a fresh fetch

    Usage:
        coalescer = RequestCoalescer()
        result, source = coalescer.get_or_fetch(
            cache_key="standings:203:2025",
            fetch_fn=lambda: make_api_call(),
            lookup=lambda key: store.get(key, MISSING),
            publish=lambda key, value: store.set(key, value, 3600),
        )
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Initialize the coalescer.

        Args:
            timeout: Max seconds a waiter blocks on an in-flight request
                (None waits for the initiator's outcome, however long)
        """
        self._in_flight: Dict[str, InFlightRequest] = {}
        self._lock = threading.Lock()
        self._timeout = timeout

    def get_or_fetch(
        self,
        cache_key: str,
        fetch_fn: Callable[[], Any],
        lookup: Optional[Callable[[str], Any]] = None,
        publish: Optional[Callable[[str, Any], None]] = None,
    ) -> Tuple[Any, CacheSource]:
        """
        Return a cached value, join an in-flight request, or initiate a new one.

        Args:
            cache_key: Unique key for this request
            fetch_fn: Function to call if we need to fetch
            lookup: Cache read run inside the critical section; returns MISSING on miss
            publish: Cache write run inside the settlement critical section
                (only on success)

        Returns:
            (data, source) - data is shared among all concurrent callers

        Raises:
            TimeoutError: If waiting for an in-flight request times out
            Exception: Any error from fetch_fn is propagated to every caller
        """
        with self._lock:
            if lookup is not None:
                cached = lookup(cache_key)
                if cached is not MISSING:
                    return cached, CacheSource.HIT

            in_flight = self._in_flight.get(cache_key)
            if in_flight is not None:
                # Join existing request
                in_flight.waiter_count += 1
                logger.debug(
                    f"Coalescing request for {cache_key} "
                    f"(waiters: {in_flight.waiter_count})"
                )
                is_initiator = False
            else:
                # Start new request
                in_flight = InFlightRequest()
                self._in_flight[cache_key] = in_flight
                is_initiator = True
                logger.debug(f"Initiating fetch for {cache_key}")

        if is_initiator:
            return self._run_fetch(cache_key, in_flight, fetch_fn, publish), CacheSource.MISS

        # We're a waiter - wait for the initiator to complete
        completed = in_flight.event.wait(timeout=self._timeout)

        if not completed:
            logger.error(f"Timeout waiting for coalesced request: {cache_key}")
            raise TimeoutError(f"Request for {cache_key} timed out after {self._timeout}s")

        if in_flight.error is not None:
            raise in_flight.error

        return in_flight.result, CacheSource.WAIT

    def _run_fetch(
        self,
        cache_key: str,
        in_flight: InFlightRequest,
        fetch_fn: Callable[[], Any],
        publish: Optional[Callable[[str, Any], None]],
    ) -> Any:
        try:
            result = fetch_fn()
        except BaseException as e:
            with self._lock:
                in_flight.error = e
                self._in_flight.pop(cache_key, None)
                in_flight.event.set()
            logger.warning(f"Fetch failed for {cache_key}: {e}")
            raise

        with self._lock:
            if publish is not None:
                try:
                    publish(cache_key, result)
                except Exception as e:
                    # Every caller still gets the fetched value; only caching is skipped
                    logger.error(f"Failed to cache {cache_key}, serving uncached: {e}")
            in_flight.result = result
            self._in_flight.pop(cache_key, None)
            in_flight.event.set()
        return result

    def is_in_flight(self, cache_key: str) -> bool:
        with self._lock:
            return cache_key in self._in_flight

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
                "waiters": {k: r.waiter_count for k, r in self._in_flight.items()},
            }
