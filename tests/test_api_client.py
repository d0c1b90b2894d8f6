"""
Tests for the upstream client: retries, error mapping, budget and call log.
"""
from datetime import date

import pytest
import requests

from fenerstats.api_client import DailyRequestCounter, UpstreamClient
from fenerstats.api_logger import ApiCallLogger
from fenerstats.errors import ApiRateLimitError, UpstreamError


class FakeResponse:
    def __init__(self, status_code=200, payload=None, reason="OK"):
        self.status_code = status_code
        self.reason = reason
        self._payload = payload

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    """Replays queued responses (or raises queued exceptions) in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def get(self, url, headers=None, params=None, timeout=None):
        self.requests.append({"url": url, "headers": headers, "params": params, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def envelope(response, errors=None):
    return {"get": "fixtures", "errors": errors or [], "results": len(response), "response": response}


def make_client(session, **kwargs):
    kwargs.setdefault("api_key", "test-key")
    kwargs.setdefault("base_url", "https://api.example.test/")
    kwargs.setdefault("max_attempts", 3)
    kwargs.setdefault("backoff_seconds", 0)
    kwargs.setdefault("daily_limit", 100)
    return UpstreamClient(session=session, **kwargs)


class TestRequests:

    def test_returns_response_member(self):
        session = FakeSession(FakeResponse(payload=envelope([{"fixture": {"id": 1}}])))
        client = make_client(session)

        assert client.get_team_fixtures(611, 2025) == [{"fixture": {"id": 1}}]
        sent = session.requests[0]
        assert sent["url"] == "https://api.example.test/fixtures"
        assert sent["params"] == {"team": 611, "season": 2025}
        assert sent["headers"]["x-apisports-key"] == "test-key"

    def test_single_object_endpoints(self):
        session = FakeSession(
            FakeResponse(payload=envelope([{"fixture": {"id": 9}}])),
            FakeResponse(payload=envelope([])),
        )
        client = make_client(session)
        assert client.get_fixture_by_id(9) == {"fixture": {"id": 9}}
        assert client.get_fixture_by_id(10) is None


class TestRetries:

    def test_server_error_is_retried(self):
        session = FakeSession(
            FakeResponse(500, reason="Internal Server Error"),
            FakeResponse(502, reason="Bad Gateway"),
            FakeResponse(payload=envelope([1])),
        )
        client = make_client(session)
        assert client.get_live_fixtures() == [1]
        assert len(session.requests) == 3

    def test_transport_error_is_retried(self):
        session = FakeSession(
            requests.ConnectionError("reset"),
            FakeResponse(payload=envelope([1])),
        )
        assert make_client(session).get_live_fixtures() == [1]

    def test_gives_up_after_max_attempts(self):
        session = FakeSession(*[FakeResponse(503, reason="Unavailable") for _ in range(3)])
        with pytest.raises(UpstreamError) as exc_info:
            make_client(session).get_live_fixtures()
        assert exc_info.value.status_code == 503
        assert len(session.requests) == 3

    @pytest.mark.parametrize("status", [401, 403, 429])
    def test_auth_and_throttle_errors_not_retried(self, status):
        session = FakeSession(FakeResponse(status, reason="Denied"), FakeResponse(payload=envelope([1])))
        with pytest.raises(UpstreamError) as exc_info:
            make_client(session).get_live_fixtures()
        assert exc_info.value.status_code == status
        assert len(session.requests) == 1

    def test_http_429_maps_to_rate_limit_error(self):
        session = FakeSession(FakeResponse(429, reason="Too Many Requests"))
        with pytest.raises(ApiRateLimitError):
            make_client(session).get_live_fixtures()

    def test_provider_error_payload_not_retried(self):
        session = FakeSession(FakeResponse(payload=envelope([], errors={"token": "Invalid key"})))
        with pytest.raises(UpstreamError, match="Invalid key"):
            make_client(session).get_live_fixtures()
        assert len(session.requests) == 1

    def test_invalid_json(self):
        session = FakeSession(FakeResponse(payload=ValueError("no json")))
        with pytest.raises(UpstreamError, match="Invalid JSON"):
            make_client(session, max_attempts=1).get_live_fixtures()


class TestBudget:

    def test_daily_limit_blocks_requests(self):
        session = FakeSession(*[FakeResponse(payload=envelope([])) for _ in range(3)])
        client = make_client(session, daily_limit=2)
        client.get_live_fixtures()
        client.get_live_fixtures()
        with pytest.raises(ApiRateLimitError):
            client.get_live_fixtures()
        assert len(session.requests) == 2

    def test_counter_counts_every_attempt(self):
        session = FakeSession(FakeResponse(500), FakeResponse(payload=envelope([])))
        client = make_client(session)
        client.get_standings(203, 2025)
        assert client.get_usage()["by_endpoint"] == {"standings": 2}

    def test_counter_resets_on_new_day(self):
        days = [date(2025, 9, 1)]
        counter = DailyRequestCounter(limit=1, today_fn=lambda: days[0])
        counter.increment("fixtures")
        with pytest.raises(ApiRateLimitError):
            counter.check()
        days[0] = date(2025, 9, 2)
        counter.check()
        assert counter.total() == 0


class TestCallLog:

    def test_success_and_failure_are_logged_with_caller(self):
        session = FakeSession(
            FakeResponse(payload=envelope([])),
            FakeResponse(404, reason="Not Found"),
        )
        client = make_client(session, max_attempts=1)
        client.get_standings(203, 2025, caller="/standings")
        with pytest.raises(UpstreamError):
            client.get_team(611, caller="/team")

        logs = client.call_logger.get_logs()
        assert [log["endpoint"] for log in logs] == ["teams", "standings"]
        assert logs[0]["caller_page"] == "/team"
        assert logs[0]["status"] == 404
        assert logs[0]["error"]

        stats = client.call_logger.get_stats()
        assert stats["total"] == 2
        assert stats["success"] == 1
        assert stats["errors"] == 1
        assert stats["caller_counts"] == {"/standings": 1, "/team": 1}

    def test_log_is_bounded(self):
        session = FakeSession(*[FakeResponse(payload=envelope([])) for _ in range(5)])
        client = make_client(session, call_logger=ApiCallLogger(max_entries=3))
        for _ in range(5):
            client.get_live_fixtures()
        assert client.call_logger.get_count() == 3
