"""
In-memory TTL cache store.

Maps a string key to (value, expires_at). Expiry is the only removal
mechanism besides explicit invalidation; there is no size-based eviction.
"""
import logging
import threading
from typing import Any, Dict, Optional

from .core import CacheEntry, Clock, MonotonicClock

logger = logging.getLogger("cache.store")


class CacheStore:
    """
    Thread-safe keyed store with per-entry expiry.

    Usage:
        store = CacheStore()
        store.set("standings:203:2025", data, ttl_seconds=3600)
        data = store.get("standings:203:2025")
    """

    def __init__(self, clock: Optional[Clock] = None):
        """
        Initialize the store.

        Args:
            clock: Time source for expiry checks (defaults to a monotonic clock)
        """
        self._clock = clock or MonotonicClock()
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    @property
    def clock(self) -> Clock:
        return self._clock

    def get(self, key: str, default: Any = None) -> Any:
        """
        Return the cached value for key, or default on miss.

        An expired entry counts as a miss and is purged on the way out.
        """
        now = self._clock.now()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if not entry.is_fresh(now):
                del self._entries[key]
                return default
            return entry.value

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for key (with its expiry metadata), if any."""
        now = self._clock.now()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_fresh(now):
                return entry
            return None

    def set(self, key: str, value: Any, ttl_seconds: float) -> bool:
        """
        Store value under key for ttl_seconds.

        A TTL of zero or less means "do not cache": the store is left untouched.

        Returns:
            True if the value was stored
        """
        if ttl_seconds <= 0:
            logger.debug(f"Skipping store for {key} (ttl={ttl_seconds})")
            return False

        now = self._clock.now()
        entry = CacheEntry(
            key=key,
            value=value,
            expires_at=now + ttl_seconds,
            fetched_at=now,
            ttl_seconds=ttl_seconds,
        )
        with self._lock:
            self._entries[key] = entry
        return True

    def delete(self, key: str) -> bool:
        """Remove a single entry. Returns True if it existed."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_by_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with prefix."""
        with self._lock:
            to_delete = [k for k in self._entries if k.startswith(prefix)]
            for key in to_delete:
                del self._entries[key]
        if to_delete:
            logger.info(f"Deleted {len(to_delete)} entries with prefix '{prefix}'")
        return len(to_delete)

    def clear(self) -> int:
        """Remove all entries. Returns the number removed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"Cleared {count} cache entries")
        return count

    def cleanup(self) -> int:
        """Purge all expired entries. Returns the number purged."""
        now = self._clock.now()
        with self._lock:
            expired = [k for k, e in self._entries.items() if not e.is_fresh(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info(f"Cleaned {len(expired)} expired entries")
        return len(expired)

    def size(self) -> int:
        """Number of stored entries (expired ones not yet purged included)."""
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get_entry(key) is not None

    def get_stats(self) -> Dict[str, Any]:
        """Entry count and seconds until expiry for every key."""
        now = self._clock.now()
        with self._lock:
            entries = [
                {"key": key, "expires_in": round(entry.expires_in(now))}
                for key, entry in self._entries.items()
            ]
        return {
            "cache_size": len(entries),
            "entries": entries,
        }
