"""
Main cache orchestration: TTL store + request coalescing.
"""
import threading
import logging
from typing import Dict, Optional, Callable, Any, Tuple, Union

from .core import CacheSource, Clock
from .coalescer import MISSING, RequestCoalescer
from .store import CacheStore

logger = logging.getLogger("cache.manager")

# A TTL is either fixed, or derived from the value that was just fetched
TTL = Union[int, float, Callable[[Any], Union[int, float]]]

# Receives (event, cache_key); events: "hit", "miss", "wait", "error"
CacheEventListener = Callable[[str, str], None]


class CacheManager:
    """
    Main cache orchestration with:
    - Per-key TTL (fixed or derived from the fetched payload)
    - Request coalescing for concurrent duplicate requests
    - No caching of failed fetches
    - Hit/miss/wait statistics

    Instances are explicitly constructed and injected; tests build isolated
    managers over a store with a controllable clock.
    """

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        clock: Optional[Clock] = None,
        coalesce_timeout: Optional[float] = None,
        listeners: Optional[list] = None,
    ):
        """
        Initialize the cache manager.

        Args:
            store: Backing store (a new one is created if omitted)
            clock: Clock for a newly created store (ignored when store is given)
            coalesce_timeout: Timeout for waiting on coalesced requests
            listeners: Observability callbacks, invoked fire-and-forget
        """
        self._store = store or CacheStore(clock=clock)
        self._coalescer = RequestCoalescer(timeout=coalesce_timeout)
        self._listeners = list(listeners or [])

        self._stats_lock = threading.Lock()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "coalesced": 0,
            "errors": 0,
        }

    @property
    def store(self) -> CacheStore:
        return self._store

    def add_listener(self, listener: CacheEventListener) -> None:
        self._listeners.append(listener)

    def get_cached_data(
        self,
        cache_key: str,
        fetch_fn: Callable[[], Any],
        ttl_seconds: TTL,
    ) -> Any:
        """
        Return the cached value for cache_key, fetching it at most once.

        Args:
            cache_key: Unique cache key
            fetch_fn: Function to fetch data on a miss
            ttl_seconds: TTL for the fetched value, or a callable that
                derives it from the value (e.g. from a fixture's status)

        Returns:
            The cached or freshly fetched value (treat as read-only)
        """
        data, _ = self.get_cached_data_with_info(cache_key, fetch_fn, ttl_seconds)
        return data

    def get_cached_data_with_info(
        self,
        cache_key: str,
        fetch_fn: Callable[[], Any],
        ttl_seconds: TTL,
    ) -> Tuple[Any, CacheSource]:
        """
        Same as get_cached_data, also reporting how the value was obtained.

        Returns:
            (data, source) tuple; source is HIT, MISS or WAIT
        """

        def publish(key: str, value: Any) -> None:
            ttl = ttl_seconds(value) if callable(ttl_seconds) else ttl_seconds
            if self._store.set(key, value, ttl):
                logger.debug(f"CACHE SET: {key} [ttl={ttl}s]")

        try:
            data, source = self._coalescer.get_or_fetch(
                cache_key,
                fetch_fn,
                lookup=lambda key: self._store.get(key, MISSING),
                publish=publish,
            )
        except Exception as e:
            self._record("errors", "error", cache_key)
            logger.warning(f"CACHE FETCH FAILED: {cache_key} - {e}")
            raise

        if source is CacheSource.HIT:
            logger.debug(f"CACHE HIT: {cache_key}")
            self._record("hits", "hit", cache_key)
        elif source is CacheSource.WAIT:
            logger.info(f"COALESCED: {cache_key}")
            self._record("coalesced", "wait", cache_key)
        else:
            logger.info(f"CACHE MISS: {cache_key}")
            self._record("misses", "miss", cache_key)

        return data, source

    def peek(self, cache_key: str, default: Any = None) -> Any:
        """Read the store without fetching or counting."""
        return self._store.get(cache_key, default)

    def _record(self, counter: str, event: str, cache_key: str) -> None:
        with self._stats_lock:
            self._stats[counter] += 1
        for listener in self._listeners:
            try:
                listener(event, cache_key)
            except Exception as e:
                # Observability must never affect cache behavior
                logger.debug(f"Cache listener failed for {event} {cache_key}: {e}")

    def invalidate(self, cache_key: str) -> bool:
        """
        Invalidate a specific cache entry.

        Returns:
            True if entry was found and removed
        """
        removed = self._store.delete(cache_key)
        if removed:
            logger.info(f"Invalidated cache: {cache_key}")
        return removed

    def invalidate_prefix(self, prefix: str) -> int:
        """
        Invalidate all cache entries whose key starts with prefix.

        Returns:
            Number of entries invalidated
        """
        return self._store.delete_by_prefix(prefix)

    def clear(self) -> int:
        """
        Clear all cache entries.

        Returns:
            Number of entries cleared
        """
        return self._store.clear()

    def cleanup(self) -> int:
        """Purge expired entries."""
        return self._store.cleanup()

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._stats_lock:
            stats = dict(self._stats)
        total_requests = stats["hits"] + stats["misses"] + stats["coalesced"]
        hit_rate = (stats["hits"] / total_requests * 100) if total_requests > 0 else 0

        store_stats = self._store.get_stats()
        return {
            "entries": store_stats["cache_size"],
            "hits": stats["hits"],
            "misses": stats["misses"],
            "coalesced": stats["coalesced"],
            "errors": stats["errors"],
            "hit_rate_percent": round(hit_rate, 1),
            "coalescer": self._coalescer.get_stats(),
            "store": store_stats,
        }


class CacheCleanupScheduler:
    """
    Periodically purges expired entries on a daemon thread.

    Expired entries are already ignored on read; the sweep only bounds
    memory held by keys that are never read again.
    """

    def __init__(self, manager: CacheManager, interval_seconds: float = 300.0):
        self._manager = manager
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="cache-cleanup", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                cleaned = self._manager.cleanup()
                if cleaned:
                    logger.info(f"[Cache] Cleaned {cleaned} expired entries")
            except Exception as e:
                logger.warning(f"Cache cleanup failed: {e}")
