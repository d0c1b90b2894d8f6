"""
Tests for the window-based batch orchestrator.
"""
import math
import threading
import time

import pytest

from fenerstats.batching import BatchOrchestrator, chunked
from fenerstats.errors import AggregationTimeoutError

from conftest import ManualClock


class ConcurrencyTracker:
    """Records the peak number of simultaneous fetches."""

    def __init__(self, hold=0.02):
        self.hold = hold
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def __call__(self, item):
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        time.sleep(self.hold)
        with self._lock:
            self.active -= 1
        return item


class TestWindows:

    def test_chunked(self):
        assert chunked([1, 2, 3, 4, 5, 6, 7], 3) == [[1, 2, 3], [4, 5, 6], [7]]

    def test_invalid_window_size(self):
        with pytest.raises(ValueError):
            BatchOrchestrator(window_size=0)

    def test_concurrency_bounded_by_window(self):
        tracker = ConcurrencyTracker()
        orchestrator = BatchOrchestrator(window_size=3, delay_seconds=0)
        orchestrator.run(list(range(10)), tracker)
        assert 1 <= tracker.peak <= 3

    @pytest.mark.parametrize("count", [1, 3, 4, 10])
    def test_delay_between_windows_only(self, count):
        sleeps = []
        orchestrator = BatchOrchestrator(window_size=3, delay_seconds=0.2, sleep=sleeps.append)
        orchestrator.run(list(range(count)), lambda i: i)
        assert sleeps == [0.2] * (math.ceil(count / 3) - 1)

    def test_real_pacing_gap(self):
        """The next window starts no earlier than the delay after the last one settled."""
        finished = {}
        started = {}

        def fetch(i):
            started[i] = time.monotonic()
            finished[i] = time.monotonic()
            return i

        BatchOrchestrator(window_size=3, delay_seconds=0.05).run(list(range(6)), fetch)
        last_of_first = max(finished[i] for i in range(3))
        first_of_second = min(started[i] for i in range(3, 6))
        assert first_of_second - last_of_first >= 0.045

    def test_empty_input(self):
        sleeps = []
        assert BatchOrchestrator(sleep=sleeps.append).run([], lambda i: i) == []
        assert sleeps == []


class TestResults:

    def test_order_follows_input_not_completion(self):
        def fetch(i):
            # Earlier items in a window finish last
            time.sleep(0.01 * (3 - i % 3))
            return i

        result = BatchOrchestrator(window_size=3, delay_seconds=0).run(list(range(9)), fetch)
        assert result == list(range(9))

    def test_failed_items_are_omitted(self):
        def fetch(i):
            if i in (3, 7):
                raise RuntimeError(f"F{i} failed")
            return f"R{i}"

        result = BatchOrchestrator(window_size=3, delay_seconds=0).run(list(range(1, 11)), fetch)
        assert result == ["R1", "R2", "R4", "R5", "R6", "R8", "R9", "R10"]

    def test_none_results_are_dropped(self):
        result = BatchOrchestrator(delay_seconds=0).run(
            [1, 2, 3, 4], lambda i: i if i % 2 else None
        )
        assert result == [1, 3]

    def test_every_item_attempted_despite_failures(self):
        attempted = []
        lock = threading.Lock()

        def fetch(i):
            with lock:
                attempted.append(i)
            raise RuntimeError("down")

        assert BatchOrchestrator(delay_seconds=0).run(list(range(7)), fetch) == []
        assert sorted(attempted) == list(range(7))


class TestDeadline:

    def test_deadline_aborts_before_next_window(self):
        clock = ManualClock()
        calls = []

        def fetch(i):
            calls.append(i)
            clock.advance(5)
            return i

        orchestrator = BatchOrchestrator(
            window_size=1, delay_seconds=0, timeout_seconds=8, clock=clock
        )
        with pytest.raises(AggregationTimeoutError):
            orchestrator.run(list(range(5)), fetch)
        # Windows start at t=0 and t=5; at t=10 the deadline has passed
        assert calls == [0, 1]

    def test_no_deadline_by_default(self):
        clock = ManualClock()

        def fetch(i):
            clock.advance(1000)
            return i

        orchestrator = BatchOrchestrator(window_size=1, delay_seconds=0, clock=clock)
        assert orchestrator.run([1, 2, 3], fetch) == [1, 2, 3]
