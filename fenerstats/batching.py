"""
Window-based batch execution for fan-out upstream requests.

Items are processed in fixed-size windows: every item of a window is
fetched concurrently, the whole window is awaited, then the orchestrator
pauses before starting the next one. This bounds concurrency at the window
size and paces requests for the provider's rate limiter.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, TypeVar

from fenerstats.cache.core import Clock, MonotonicClock
from fenerstats.errors import AggregationTimeoutError

logger = logging.getLogger("batching")

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_WINDOW_SIZE = 3
DEFAULT_DELAY_SECONDS = 0.2


def chunked(items: Sequence[T], size: int) -> List[Sequence[T]]:
    """Split items into consecutive windows of at most size elements."""
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchOrchestrator:
    """
    Runs a per-item fetch over many items with bounded concurrency.

    - At most window_size fetches are in flight at once
    - delay_seconds pause between windows (not after the last)
    - A failing item is logged and yields no result; the run continues
    - Output order follows input order, never completion order
    - Optional overall deadline, checked before each window starts

    Usage:
        orchestrator = BatchOrchestrator(window_size=3, delay_seconds=0.2)
        records = orchestrator.run(fixtures, fetch_record)
    """

    def __init__(
        self,
        window_size: int = DEFAULT_WINDOW_SIZE,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        timeout_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Optional[Clock] = None,
    ):
        if window_size < 1:
            raise ValueError(f"window_size must be at least 1, got {window_size}")
        self.window_size = window_size
        self.delay_seconds = delay_seconds
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep
        self._clock = clock or MonotonicClock()

    def run(
        self,
        items: Sequence[T],
        fetch_fn: Callable[[T], Optional[R]],
        label: str = "batch",
        describe: Callable[[T], str] = repr,
    ) -> List[R]:
        """
        Fetch every item and collect the non-None results in input order.

        Args:
            items: Ordered work items
            fetch_fn: Per-item fetch; may return None for "no record"
            label: Name used in log messages
            describe: Renders an item for log messages

        Raises:
            AggregationTimeoutError: The overall deadline passed before all
                windows were started (no partial result is returned)
        """
        if not items:
            return []

        windows = chunked(items, self.window_size)
        started = self._clock.now()
        results: List[R] = []
        failures = 0

        with ThreadPoolExecutor(
            max_workers=self.window_size,
            thread_name_prefix="batch-window",
        ) as executor:
            for index, window in enumerate(windows):
                self._check_deadline(started, label, index, len(windows))

                futures = [
                    executor.submit(self._fetch_one, fetch_fn, item, label, describe)
                    for item in window
                ]
                # Awaiting in submission order keeps input order
                for future in futures:
                    ok, result = future.result()
                    if not ok:
                        failures += 1
                    elif result is not None:
                        results.append(result)

                if index < len(windows) - 1 and self.delay_seconds > 0:
                    self._sleep(self.delay_seconds)

        logger.info(
            f"{label}: {len(items)} items in {len(windows)} windows -> "
            f"{len(results)} results, {failures} failures"
        )
        return results

    def _check_deadline(self, started: float, label: str, index: int, total: int) -> None:
        if self.timeout_seconds is None:
            return
        elapsed = self._clock.now() - started
        if elapsed > self.timeout_seconds:
            logger.error(
                f"{label}: aborted before window {index + 1}/{total} "
                f"after {elapsed:.1f}s (limit {self.timeout_seconds}s)"
            )
            raise AggregationTimeoutError(
                f"{label} exceeded {self.timeout_seconds}s after {index} of {total} windows"
            )

    @staticmethod
    def _fetch_one(
        fetch_fn: Callable[[T], Optional[R]],
        item: T,
        label: str,
        describe: Callable[[T], str],
    ):
        try:
            return True, fetch_fn(item)
        except Exception as e:
            logger.warning(f"{label}: skipping {describe(item)} - {e}")
            return False, None
