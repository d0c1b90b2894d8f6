"""
Core cache data structures.
"""
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol


class Clock(Protocol):
    """Time source used for expiry comparisons."""

    def now(self) -> float:
        """Current reading in seconds."""
        ...


class MonotonicClock:
    """Clock backed by time.monotonic (immune to wall-clock jumps)."""

    def now(self) -> float:
        return time.monotonic()


class DataCategory(Enum):
    """Categories of data with different freshness windows."""
    LIVESCORE = "livescore"                  # 15 seconds, score/clock change constantly
    TODAY_FIXTURES = "today_fixtures"        # 5 minutes
    STANDINGS = "standings"                  # 1 hour, updates after matches
    TOP_SCORERS = "top_scorers"              # 1 hour (scorers and assists)
    TEAM_STATISTICS = "team_statistics"      # 1 hour
    TEAM_INFO = "team_info"                  # 1 day
    PLAYER_INFO = "player_info"              # 1 day
    SQUAD = "squad"                          # 1 day
    SEASON_FIXTURES = "season_fixtures"      # 1 day
    COACH = "coach"                          # 1 day
    SEASONS = "seasons"                      # 1 day, near-static reference data
    COMPLETED_MATCH = "completed_match"      # 1 week, immutable once finished
    HISTORICAL_DATA = "historical_data"      # 30 days


class CacheSource(Enum):
    """How a value was obtained by the coalescing layer."""
    HIT = "hit"      # Served from the store
    MISS = "miss"    # This caller fetched it from upstream
    WAIT = "wait"    # Joined another caller's in-flight fetch


@dataclass(frozen=True)
class CacheEntry:
    """
    A stored value with its absolute expiry.

    The entry is valid while now < expires_at. fetched_at and ttl_seconds
    are kept for diagnostics only.
    """
    key: str
    value: Any
    expires_at: float
    fetched_at: float
    ttl_seconds: float

    def is_fresh(self, now: float) -> bool:
        """Check if the entry is still within its TTL."""
        return now < self.expires_at

    def expires_in(self, now: float) -> float:
        """Seconds until expiry (0 once expired)."""
        return max(0.0, self.expires_at - now)
