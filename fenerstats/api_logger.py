"""API call log for admin monitoring.

Keeps the most recent upstream calls in memory (newest first) together
with summary statistics. Recording is best-effort: it never raises into
the request path.
"""

import logging
import threading
import uuid
from collections import Counter, deque
from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger("api_logger")

MAX_LOG_ENTRIES = 200


@dataclass
class ApiLogEntry:
    """One upstream API call."""
    caller_page: str
    endpoint: str
    params: Dict[str, Any]
    status: int
    status_text: str
    response_time_ms: int
    error: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat() + "Z")

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


class ApiCallLogger:
    """Bounded, thread-safe ring buffer of upstream calls."""

    def __init__(self, max_entries: int = MAX_LOG_ENTRIES):
        self._entries: deque = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def log(
        self,
        caller_page: str,
        endpoint: str,
        params: Dict[str, Any],
        status: int,
        status_text: str,
        response_time_ms: int,
        error: Optional[str] = None,
    ) -> None:
        try:
            entry = ApiLogEntry(
                caller_page=caller_page,
                endpoint=endpoint,
                params=dict(params),
                status=status,
                status_text=status_text,
                response_time_ms=response_time_ms,
                error=error,
            )
            with self._lock:
                self._entries.appendleft(entry)
        except Exception as e:
            logger.debug(f"Failed to record API call to {endpoint}: {e}")

    def get_logs(self) -> List[Dict[str, Any]]:
        """All retained entries, newest first."""
        with self._lock:
            entries = list(self._entries)
        return [asdict(e) for e in entries]

    def get_count(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Success/error counts, mean latency and per-endpoint/caller counts."""
        with self._lock:
            entries = list(self._entries)

        success = sum(1 for e in entries if e.is_success)
        total_time = sum(e.response_time_ms for e in entries)
        return {
            "total": len(entries),
            "success": success,
            "errors": len(entries) - success,
            "avg_response_time_ms": (total_time / len(entries)) if entries else 0,
            "endpoint_counts": dict(Counter(e.endpoint for e in entries)),
            "caller_counts": dict(Counter(e.caller_page for e in entries)),
        }
