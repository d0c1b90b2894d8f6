"""
Caching module with per-category TTL and request coalescing.
"""
from .core import CacheEntry, CacheSource, Clock, DataCategory, MonotonicClock
from .store import CacheStore
from .ttl_policies import (
    TTL_CONFIG,
    LIVE_STATUSES,
    FINISHED_STATUSES,
    get_ttl_for_category,
    get_fixture_category,
    get_fixture_ttl,
    get_fixture_payload_ttl,
    is_live_status,
    is_finished_status,
)
from .coalescer import RequestCoalescer
from .manager import CacheManager, CacheCleanupScheduler
from . import keys

__all__ = [
    # Core types
    "CacheEntry",
    "CacheSource",
    "Clock",
    "DataCategory",
    "MonotonicClock",
    # Store
    "CacheStore",
    # TTL policies
    "TTL_CONFIG",
    "LIVE_STATUSES",
    "FINISHED_STATUSES",
    "get_ttl_for_category",
    "get_fixture_category",
    "get_fixture_ttl",
    "get_fixture_payload_ttl",
    "is_live_status",
    "is_finished_status",
    # Coalescing
    "RequestCoalescer",
    # Manager
    "CacheManager",
    "CacheCleanupScheduler",
    # Key helpers
    "keys",
]
