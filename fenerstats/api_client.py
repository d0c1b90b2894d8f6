"""
Upstream client for API-Football v3.

Performs the actual HTTP calls. Every method returns the `response` member
of the provider envelope, or raises UpstreamError. Retry with exponential
backoff lives here; the cache layer never retries on the client's behalf.
"""
import os
import logging
import threading
import time
from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Optional, List, Dict, Any, Callable

import requests
from dotenv import load_dotenv
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from config.settings import settings
from fenerstats.api_logger import ApiCallLogger
from fenerstats.errors import ApiRateLimitError, UpstreamError

load_dotenv()

logger = logging.getLogger("api_client")

API_HOST = "v3.football.api-sports.io"
DEFAULT_CALLER = "unknown"

# Auth and throttling failures are not transient
NON_RETRYABLE_STATUSES = frozenset({401, 403, 429})


def _is_retryable(error: BaseException) -> bool:
    """Retry transport failures and 5xx-style HTTP errors only."""
    if isinstance(error, ApiRateLimitError):
        return False
    if not isinstance(error, UpstreamError):
        return False
    if error.status_code is None:
        # Transport failure
        return True
    if error.status_code in NON_RETRYABLE_STATUSES:
        return False
    # Provider-reported payload errors arrive with a 2xx status
    return error.status_code >= 500 or error.status_code == 408


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class DailyRequestCounter:
    """
    Per-endpoint upstream request counts, reset when the UTC day changes.
    """

    def __init__(self, limit: int, today_fn: Callable[[], date] = _utc_today):
        self.limit = limit
        self._today_fn = today_fn
        self._day = today_fn()
        self._counts: Dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    def _roll_over(self) -> None:
        today = self._today_fn()
        if today != self._day:
            self._counts.clear()
            self._day = today

    def increment(self, endpoint: str) -> int:
        with self._lock:
            self._roll_over()
            self._counts[endpoint] += 1
            return self._counts[endpoint]

    def total(self) -> int:
        with self._lock:
            self._roll_over()
            return sum(self._counts.values())

    def check(self) -> None:
        """Raise ApiRateLimitError once the daily budget is spent."""
        used = self.total()
        if used >= self.limit:
            raise ApiRateLimitError(f"Daily API limit reached: {used}/{self.limit}")

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            self._roll_over()
            return {
                "day": self._day.isoformat(),
                "total": sum(self._counts.values()),
                "limit": self.limit,
                "by_endpoint": dict(self._counts),
            }


class UpstreamClient:
    """
    Thin synchronous wrapper around the API-Football REST API.

    Usage:
        client = UpstreamClient()
        fixtures = client.get_team_fixtures(611, 2025)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: float = 1.0,
        daily_limit: Optional[int] = None,
        session: Optional[requests.Session] = None,
        call_logger: Optional[ApiCallLogger] = None,
    ):
        """
        Args:
            api_key: Provider key (defaults to settings / API_FOOTBALL_KEY)
            base_url: Provider base URL
            timeout: Per-request timeout in seconds
            max_attempts: Attempts per request, including the first
            backoff_seconds: First retry delay; doubles per attempt (1s, 2s, 4s)
            daily_limit: Request budget per UTC day
            session: requests.Session to use (one is created if omitted)
            call_logger: Sink for per-call records
        """
        self.api_key = api_key or settings.api_football_key or os.getenv("API_FOOTBALL_KEY", "")
        self.base_url = (base_url or settings.api_football_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self.max_attempts = max_attempts or settings.upstream_max_attempts
        self.backoff_seconds = backoff_seconds
        self.session = session or requests.Session()
        self.call_logger = call_logger or ApiCallLogger(settings.api_log_max_entries)
        self.request_counter = DailyRequestCounter(
            daily_limit if daily_limit is not None else settings.daily_request_limit
        )

        if not self.api_key:
            logger.warning("API_FOOTBALL_KEY is not set; upstream calls will be rejected")

    def _get_headers(self) -> dict:
        return {
            "x-apisports-key": self.api_key,
            "x-rapidapi-host": API_HOST,
        }

    def _request(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        caller: str = DEFAULT_CALLER,
    ) -> Any:
        """
        GET an endpoint with retries and return the envelope's `response`.

        Raises:
            ApiRateLimitError: Daily budget exhausted (not retried)
            UpstreamError: Transport, HTTP or provider-reported failure
        """
        params = {k: v for k, v in (params or {}).items() if v is not None}
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.backoff_seconds,
                min=self.backoff_seconds,
                max=self.backoff_seconds * 4,
            ),
            retry=retry_if_exception(_is_retryable),
            before_sleep=lambda state: logger.info(
                f"[API] Retry {state.attempt_number}/{self.max_attempts} for {endpoint} "
                f"- Error: {state.outcome.exception()}"
            ),
            reraise=True,
        )
        try:
            data = retrying(self._attempt, endpoint, params, caller)
        except UpstreamError as e:
            logger.error(f"[API] {endpoint} failed: {e}")
            raise
        return data.get("response", [])

    def _attempt(self, endpoint: str, params: Dict[str, Any], caller: str) -> dict:
        self.request_counter.check()

        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        logger.debug(f"[API] Request: {endpoint} {params}")
        started = time.monotonic()
        try:
            response = self.session.get(
                url,
                headers=self._get_headers(),
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            self._log_call(caller, endpoint, params, 0, "Error", started, str(e))
            raise UpstreamError(f"Request to {endpoint} failed: {e}", endpoint=endpoint) from e
        finally:
            self.request_counter.increment(endpoint)

        if not response.ok:
            message = f"API request failed: {response.status_code} {response.reason}"
            self._log_call(caller, endpoint, params, response.status_code, response.reason, started, message)
            if response.status_code == 429:
                raise ApiRateLimitError(message, status_code=429, endpoint=endpoint)
            raise UpstreamError(message, status_code=response.status_code, endpoint=endpoint)

        try:
            data = response.json()
        except ValueError as e:
            self._log_call(caller, endpoint, params, response.status_code, "Invalid JSON", started, str(e))
            raise UpstreamError(
                f"Invalid JSON from {endpoint}", status_code=response.status_code, endpoint=endpoint
            ) from e

        errors = data.get("errors")
        if errors:
            detail = ", ".join(str(v) for v in errors.values()) if isinstance(errors, dict) else str(errors)
            self._log_call(caller, endpoint, params, response.status_code, "Provider error", started, detail)
            raise UpstreamError(f"API error: {detail}", status_code=response.status_code, endpoint=endpoint)

        self._log_call(caller, endpoint, params, response.status_code, response.reason or "OK", started)
        return data

    def _log_call(
        self,
        caller: str,
        endpoint: str,
        params: Dict[str, Any],
        status: int,
        status_text: str,
        started: float,
        error: Optional[str] = None,
    ) -> None:
        self.call_logger.log(
            caller_page=caller,
            endpoint=endpoint,
            params=params,
            status=status,
            status_text=status_text,
            response_time_ms=int((time.monotonic() - started) * 1000),
            error=error,
        )

    @staticmethod
    def _first(response: Any) -> Optional[Dict[str, Any]]:
        if isinstance(response, list):
            return response[0] if response else None
        return response or None

    # ===== FIXTURES =====

    def get_fixtures(self, league_id: int, season: int, caller: str = DEFAULT_CALLER) -> List[Dict[str, Any]]:
        """All fixtures of a league season."""
        return self._request("fixtures", {"league": league_id, "season": season}, caller)

    def get_team_fixtures(self, team_id: int, season: int, caller: str = DEFAULT_CALLER) -> List[Dict[str, Any]]:
        """All fixtures of a team in a season, across competitions."""
        return self._request("fixtures", {"team": team_id, "season": season}, caller)

    def get_fixture_by_id(self, fixture_id: int, caller: str = DEFAULT_CALLER) -> Optional[Dict[str, Any]]:
        return self._first(self._request("fixtures", {"id": fixture_id}, caller))

    def get_fixture_events(self, fixture_id: int, caller: str = DEFAULT_CALLER) -> List[Dict[str, Any]]:
        return self._request("fixtures/events", {"fixture": fixture_id}, caller)

    def get_fixture_lineups(self, fixture_id: int, caller: str = DEFAULT_CALLER) -> List[Dict[str, Any]]:
        return self._request("fixtures/lineups", {"fixture": fixture_id}, caller)

    def get_fixture_statistics(self, fixture_id: int, caller: str = DEFAULT_CALLER) -> List[Dict[str, Any]]:
        return self._request("fixtures/statistics", {"fixture": fixture_id}, caller)

    def get_fixture_players(self, fixture_id: int, caller: str = DEFAULT_CALLER) -> List[Dict[str, Any]]:
        """Per-team player statistics for one fixture."""
        return self._request("fixtures/players", {"fixture": fixture_id}, caller)

    def get_live_fixtures(self, caller: str = DEFAULT_CALLER) -> List[Dict[str, Any]]:
        return self._request("fixtures", {"live": "all"}, caller)

    def get_today_fixtures(self, today: Optional[date] = None, caller: str = DEFAULT_CALLER) -> List[Dict[str, Any]]:
        today = today or date.today()
        return self._request("fixtures", {"date": today.isoformat()}, caller)

    def get_next_fixtures(self, team_id: int, count: int = 5, caller: str = DEFAULT_CALLER) -> List[Dict[str, Any]]:
        return self._request("fixtures", {"team": team_id, "next": count}, caller)

    def get_last_fixtures(self, team_id: int, count: int = 5, caller: str = DEFAULT_CALLER) -> List[Dict[str, Any]]:
        return self._request("fixtures", {"team": team_id, "last": count}, caller)

    def get_head_to_head(
        self, team1: int, team2: int, last: int = 10, caller: str = DEFAULT_CALLER
    ) -> List[Dict[str, Any]]:
        return self._request("fixtures/headtohead", {"h2h": f"{team1}-{team2}", "last": last}, caller)

    # ===== STANDINGS =====

    def get_standings(self, league_id: int, season: int, caller: str = DEFAULT_CALLER) -> Optional[Dict[str, Any]]:
        return self._first(self._request("standings", {"league": league_id, "season": season}, caller))

    # ===== TEAMS =====

    def get_team(self, team_id: int, caller: str = DEFAULT_CALLER) -> Optional[Dict[str, Any]]:
        return self._first(self._request("teams", {"id": team_id}, caller))

    def get_squad(self, team_id: int, caller: str = DEFAULT_CALLER) -> Optional[Dict[str, Any]]:
        return self._first(self._request("players/squads", {"team": team_id}, caller))

    def get_team_statistics(
        self, team_id: int, league_id: int, season: int, caller: str = DEFAULT_CALLER
    ) -> Optional[Dict[str, Any]]:
        return self._first(self._request(
            "teams/statistics", {"team": team_id, "league": league_id, "season": season}, caller
        ))

    def get_coach(self, team_id: int, caller: str = DEFAULT_CALLER) -> Optional[Dict[str, Any]]:
        return self._first(self._request("coachs", {"team": team_id}, caller))

    def get_team_seasons(self, team_id: int, caller: str = DEFAULT_CALLER) -> List[int]:
        """Season years the team has data for."""
        return self._request("teams/seasons", {"team": team_id}, caller)

    # ===== PLAYERS =====

    def get_player_statistics(
        self, player_id: int, season: int, caller: str = DEFAULT_CALLER
    ) -> List[Dict[str, Any]]:
        """Player profile plus one statistics block per competition."""
        return self._request("players", {"id": player_id, "season": season}, caller)

    def get_player_seasons(self, player_id: int, caller: str = DEFAULT_CALLER) -> List[int]:
        return self._request("players/seasons", {"player": player_id}, caller)

    def get_top_scorers(self, league_id: int, season: int, caller: str = DEFAULT_CALLER) -> List[Dict[str, Any]]:
        return self._request("players/topscorers", {"league": league_id, "season": season}, caller)

    def get_top_assists(self, league_id: int, season: int, caller: str = DEFAULT_CALLER) -> List[Dict[str, Any]]:
        return self._request("players/topassists", {"league": league_id, "season": season}, caller)

    # ===== ACCOUNT =====

    def get_status(self, caller: str = DEFAULT_CALLER) -> Dict[str, Any]:
        """Provider account status (plan, quota usage)."""
        return self._request("status", {}, caller) or {}

    def get_usage(self) -> Dict[str, Any]:
        """Local view of today's request usage."""
        return self.request_counter.get_stats()
