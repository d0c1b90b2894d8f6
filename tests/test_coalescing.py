"""
Tests for the coalescing fetch layer (cache-stampede prevention).
"""
import threading
import time

import pytest

from fenerstats.cache import CacheManager, CacheSource
from fenerstats.errors import UpstreamError


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


def _run_concurrently(cache, key, fetch_fn, callers, ttl=60):
    """
    Start `callers` threads on the same key; the fetch blocks until every
    other caller has joined the in-flight request.
    """
    release = threading.Event()
    results = [None] * callers
    errors = [None] * callers

    def blocking_fetch():
        assert release.wait(5)
        return fetch_fn()

    def worker(index):
        try:
            results[index] = cache.get_cached_data(key, blocking_fetch, ttl)
        except Exception as e:
            errors[index] = e

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(callers)]
    for t in threads:
        t.start()

    joined = _wait_for(
        lambda: cache.get_stats()["coalescer"]["waiters"].get(key) == callers - 1
    )
    release.set()
    for t in threads:
        t.join(5)
    assert joined, "callers never converged on one in-flight request"
    return results, errors


class TestCoalescing:
    """Concurrent callers for one uncached key share one upstream call."""

    @pytest.mark.parametrize("callers", [2, 8])
    def test_single_upstream_call(self, cache, callers):
        calls = []

        def fetch():
            calls.append(1)
            return {"standings": [1, 2, 3]}

        results, errors = _run_concurrently(cache, "standings:203:2025", fetch, callers)

        assert len(calls) == 1
        assert errors == [None] * callers
        assert all(r is results[0] for r in results)
        assert results[0] == {"standings": [1, 2, 3]}

    def test_waiters_share_the_same_error(self, cache):
        calls = []
        failure = UpstreamError("API request failed: 503", status_code=503)

        def fetch():
            calls.append(1)
            raise failure

        results, errors = _run_concurrently(cache, "fixtures:live", fetch, 5)

        assert len(calls) == 1
        assert results == [None] * 5
        assert all(e is failure for e in errors)

    def test_cache_write_failure_gives_every_caller_the_value(self, cache):
        """A TTL that cannot be computed skips caching but not the result."""
        calls = []

        def fetch():
            calls.append(1)
            return {"x": 1}

        def bad_ttl(value):
            return value["missing"]

        results, errors = _run_concurrently(cache, "k", fetch, 3, ttl=bad_ttl)

        assert errors == [None] * 3
        assert results == [{"x": 1}] * 3
        assert cache.peek("k") is None
        assert cache.get_stats()["coalescer"]["active_requests"] == 0

        cache.get_cached_data("k", fetch, 60)
        assert len(calls) == 2

    def test_ledger_is_empty_after_settlement(self, cache):
        _run_concurrently(cache, "k", lambda: 1, 3)
        assert cache.get_stats()["coalescer"]["active_requests"] == 0

    def test_different_keys_do_not_coalesce(self, cache):
        calls = []
        cache.get_cached_data("a", lambda: calls.append("a") or 1, 60)
        cache.get_cached_data("b", lambda: calls.append("b") or 2, 60)
        assert calls == ["a", "b"]


class TestCacheInteraction:
    """Hits, misses and failure handling."""

    def test_second_call_is_served_from_cache(self, cache):
        calls = []
        fetch = lambda: calls.append(1) or "value"

        assert cache.get_cached_data("k", fetch, 60) == "value"
        assert cache.get_cached_data("k", fetch, 60) == "value"
        assert len(calls) == 1

    def test_expired_value_is_refetched(self, cache, clock):
        calls = []
        fetch = lambda: calls.append(1) or len(calls)

        assert cache.get_cached_data("k", fetch, 15) == 1
        clock.advance(16)
        assert cache.get_cached_data("k", fetch, 15) == 2

    def test_failure_does_not_poison_cache(self, cache):
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise UpstreamError("timeout")
            return "recovered"

        with pytest.raises(UpstreamError):
            cache.get_cached_data("k", flaky, 60)
        assert cache.peek("k") is None

        assert cache.get_cached_data("k", flaky, 60) == "recovered"
        assert len(attempts) == 2

    def test_zero_ttl_result_is_returned_but_not_cached(self, cache):
        calls = []
        fetch = lambda: calls.append(1) or "v"

        assert cache.get_cached_data("k", fetch, 0) == "v"
        assert cache.get_cached_data("k", fetch, 0) == "v"
        assert len(calls) == 2

    def test_callable_ttl_receives_fetched_value(self, cache, store):
        seen = []

        def ttl_for(value):
            seen.append(value)
            return 15 if value["live"] else 604800

        cache.get_cached_data("fixture:1", lambda: {"live": True}, ttl_for)
        assert seen == [{"live": True}]
        assert store.get_entry("fixture:1").ttl_seconds == 15

    def test_with_info_reports_source(self, cache):
        _, source = cache.get_cached_data_with_info("k", lambda: 1, 60)
        assert source is CacheSource.MISS
        _, source = cache.get_cached_data_with_info("k", lambda: 1, 60)
        assert source is CacheSource.HIT


class TestObservability:
    """Stats and listeners."""

    def test_stats_count_hits_misses_and_errors(self, cache):
        def boom():
            raise RuntimeError("boom")

        cache.get_cached_data("k", lambda: 1, 60)
        cache.get_cached_data("k", lambda: 1, 60)
        with pytest.raises(RuntimeError):
            cache.get_cached_data("bad", boom, 60)

        stats = cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["errors"] == 1
        assert stats["entries"] == 1
        assert stats["hit_rate_percent"] == 50.0

    def test_listener_receives_events(self, cache):
        events = []
        cache.add_listener(lambda event, key: events.append((event, key)))
        cache.get_cached_data("k", lambda: 1, 60)
        cache.get_cached_data("k", lambda: 1, 60)
        assert events == [("miss", "k"), ("hit", "k")]

    def test_failing_listener_does_not_affect_result(self, store):
        def broken(event, key):
            raise RuntimeError("metrics sink down")

        cache = CacheManager(store=store, listeners=[broken])
        assert cache.get_cached_data("k", lambda: "v", 60) == "v"
        assert cache.get_cached_data("k", lambda: "other", 60) == "v"


class TestInvalidation:

    def test_invalidate_forces_refetch(self, cache):
        calls = []
        fetch = lambda: calls.append(1) or len(calls)
        cache.get_cached_data("k", fetch, 60)
        assert cache.invalidate("k") is True
        assert cache.get_cached_data("k", fetch, 60) == 2

    def test_invalidate_prefix_and_clear(self, cache):
        cache.get_cached_data("player:1:matches:2025", lambda: (), 60)
        cache.get_cached_data("player:1:stats:2025", lambda: [], 60)
        cache.get_cached_data("standings:203:2025", lambda: {}, 60)
        assert cache.invalidate_prefix("player:1:") == 2
        assert cache.clear() == 1
