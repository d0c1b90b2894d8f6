"""
Fener Stats - FastAPI application

Thin HTTP surface over the cached data services. Route handlers validate
identifiers, call the services and shape the JSON; all upstream traffic
goes through the coalescing cache.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from config.settings import settings
from fenerstats.api_client import UpstreamClient
from fenerstats.cache import CacheCleanupScheduler, CacheManager
from fenerstats.errors import (
    AggregationTimeoutError,
    ApiRateLimitError,
    InvalidInputError,
    UpstreamError,
)
from fenerstats.player_matches import CALLER_PAGE as PLAYER_MATCHES_CALLER, PlayerMatchAggregator
from fenerstats.schemas import ApiLogsResponse, CacheClearResponse, PlayerMatchesResponse
from fenerstats.services import FootballDataService

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("main")

# Version tracking
APP_VERSION = "v0.1.0"
APP_NAME = "Fener Stats"


def parse_id(raw: str, name: str = "id") -> int:
    """Parse a positive numeric identifier from a path or query string."""
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise InvalidInputError(f"Invalid {name}: {raw!r}")
    if value <= 0:
        raise InvalidInputError(f"Invalid {name}: {raw!r}")
    return value


def parse_int(raw: str, name: str) -> int:
    """Parse an integer query argument; range checks are left to the caller."""
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InvalidInputError(f"Invalid {name}: {raw!r}")


def parse_season(season_str: Optional[str]) -> Optional[int]:
    """Convert '2024-25' or '2024' to season year (2024). None means current."""
    if not season_str:
        return None
    head = season_str.split("-")[0] if "-" in season_str else season_str
    return parse_id(head, "season")


def build_service() -> FootballDataService:
    """Wire the default client and cache from settings."""
    cache = CacheManager(coalesce_timeout=settings.coalesce_timeout_seconds)
    return FootballDataService(UpstreamClient(), cache)


def create_app(
    service: Optional[FootballDataService] = None,
    aggregator: Optional[PlayerMatchAggregator] = None,
) -> FastAPI:
    """
    Build the application around explicitly constructed collaborators.

    Args:
        service: Cached data service (built from settings if omitted)
        aggregator: Player match aggregator (built over service if omitted)
    """
    service = service or build_service()
    aggregator = aggregator or PlayerMatchAggregator(service)
    cleanup = CacheCleanupScheduler(service.cache, settings.cache_cleanup_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cleanup.start()
        yield
        cleanup.stop()

    app = FastAPI(
        title=APP_NAME,
        description="Cached football statistics from API-Football",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.aggregator = aggregator

    @app.exception_handler(InvalidInputError)
    async def invalid_input_handler(request: Request, exc: InvalidInputError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(UpstreamError)
    async def upstream_error_handler(request: Request, exc: UpstreamError):
        logger.error(f"{request.url.path} upstream failure: {exc}")
        status = 429 if isinstance(exc, ApiRateLimitError) else 502
        return JSONResponse(status_code=status, content={"error": "Upstream data provider unavailable"})

    @app.exception_handler(AggregationTimeoutError)
    async def aggregation_timeout_handler(request: Request, exc: AggregationTimeoutError):
        logger.error(f"{request.url.path} aggregation timed out: {exc}")
        return JSONResponse(status_code=504, content={"error": "Aggregation timed out, retry later"})

    def _found(result, what: str):
        if not result:
            raise HTTPException(status_code=404, detail=f"{what} not found")
        return result

    def _require_fixture(raw_id: str, caller: str):
        return _found(service.get_fixture(parse_id(raw_id, "fixture id"), caller=caller), "Fixture")

    def _fixture_status(fixture) -> Optional[str]:
        return ((fixture.get("fixture") or {}).get("status") or {}).get("short")

    def _league_or_default(raw: Optional[str]) -> int:
        return parse_id(raw, "league id") if raw else service.tracked_league_ids[0]

    def _team_or_default(raw: Optional[str]) -> int:
        return parse_id(raw, "team id") if raw else service.team_id

    # ===== HEALTH / ADMIN =====

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok", "source": "api-football"}

    @app.get("/version")
    def version_info():
        return {"name": APP_NAME, "version": APP_VERSION}

    @app.get("/cache/stats")
    def cache_stats():
        """Cache statistics plus today's upstream usage."""
        stats = service.cache.get_stats()
        stats["upstream_usage"] = service.client.get_usage()
        return stats

    @app.delete("/cache", response_model=CacheClearResponse)
    def clear_cache(prefix: Optional[str] = Query(None, description="Only clear keys with this prefix")):
        """Administrative reset of cached data."""
        if prefix:
            cleared = service.cache.invalidate_prefix(prefix)
        else:
            cleared = service.cache.clear()
        return {"cleared": cleared, "prefix": prefix}

    @app.get("/api/admin/logs", response_model=ApiLogsResponse)
    def get_api_logs():
        """Recent upstream API calls."""
        call_logger = service.client.call_logger
        logs = call_logger.get_logs()
        return {"logs": logs, "stats": call_logger.get_stats(), "count": len(logs)}

    @app.delete("/api/admin/logs")
    def clear_api_logs():
        service.client.call_logger.clear()
        return {"success": True}

    # ===== FIXTURES =====

    @app.get("/api/live")
    def live_matches():
        """The tracked team's live match and other live matches in tracked competitions."""
        return service.check_live_match(caller="/api/live")

    @app.get("/api/fixtures")
    def team_fixtures(season: Optional[str] = Query(None, description="Season year (e.g. '2025' or '2025-26')")):
        season_year = parse_season(season) or service.current_season
        fixtures = service.get_team_fixtures(season_year, caller="/api/fixtures")
        return {"season": season_year, "count": len(fixtures), "fixtures": fixtures}

    @app.get("/api/fixtures/seasons")
    def fixture_seasons():
        """Seasons with fixture data for the tracked team, newest first."""
        seasons = service.get_team_seasons(caller="/api/fixtures/seasons")
        return {"seasons": seasons, "current_season": service.current_season}

    @app.get("/api/fixtures/today")
    def today_fixtures():
        fixtures = service.get_today_fixtures(caller="/api/fixtures/today")
        return {"count": len(fixtures), "fixtures": fixtures}

    @app.get("/api/fixtures/next")
    def next_fixtures(count: str = Query("5", description="Number of upcoming matches")):
        fixtures = service.get_next_fixtures(count=parse_id(count, "count"), caller="/api/fixtures/next")
        return {"count": len(fixtures), "fixtures": fixtures}

    @app.get("/api/fixtures/last")
    def last_fixtures(count: str = Query("5", description="Number of recent matches")):
        fixtures = service.get_last_fixtures(count=parse_id(count, "count"), caller="/api/fixtures/last")
        return {"count": len(fixtures), "fixtures": fixtures}

    @app.get("/api/fixtures/{fixture_id}")
    def fixture_detail(fixture_id: str):
        return _require_fixture(fixture_id, "/api/fixtures/[id]")

    @app.get("/api/fixtures/{fixture_id}/events")
    def fixture_events(fixture_id: str):
        fixture = _require_fixture(fixture_id, "/api/fixtures/[id]/events")
        return service.get_fixture_events(
            fixture["fixture"]["id"], _fixture_status(fixture), caller="/api/fixtures/[id]/events"
        )

    @app.get("/api/fixtures/{fixture_id}/lineups")
    def fixture_lineups(fixture_id: str):
        fixture = _require_fixture(fixture_id, "/api/fixtures/[id]/lineups")
        return service.get_fixture_lineups(
            fixture["fixture"]["id"], _fixture_status(fixture), caller="/api/fixtures/[id]/lineups"
        )

    @app.get("/api/fixtures/{fixture_id}/statistics")
    def fixture_statistics(fixture_id: str):
        fixture = _require_fixture(fixture_id, "/api/fixtures/[id]/statistics")
        return service.get_fixture_statistics(
            fixture["fixture"]["id"], _fixture_status(fixture), caller="/api/fixtures/[id]/statistics"
        )

    @app.get("/api/head-to-head")
    def head_to_head(opponent: Optional[str] = Query(None, description="Opponent team ID")):
        fixtures = service.get_head_to_head(
            service.team_id, parse_id(opponent, "opponent id"), caller="/api/head-to-head"
        )
        return {"count": len(fixtures), "fixtures": fixtures}

    # ===== LEAGUES =====

    @app.get("/api/standings")
    def standings(
        league: Optional[str] = Query(None, description="League ID (defaults to the first tracked league)"),
        season: Optional[str] = Query(None, description="Season year"),
    ):
        league_id = _league_or_default(league)
        season_year = parse_season(season) or service.current_season
        result = service.get_standings(league_id, season_year, caller="/api/standings")
        if not result:
            raise HTTPException(
                status_code=404,
                detail=f"No standings found for season {season_year}, league {league_id}",
            )
        return result

    @app.get("/api/top-scorers")
    def top_scorers(league: Optional[str] = Query(None), season: Optional[str] = Query(None)):
        return service.get_top_scorers(
            _league_or_default(league), parse_season(season), caller="/api/top-scorers"
        )

    @app.get("/api/top-assists")
    def top_assists(league: Optional[str] = Query(None), season: Optional[str] = Query(None)):
        return service.get_top_assists(
            _league_or_default(league), parse_season(season), caller="/api/top-assists"
        )

    # ===== TEAM =====

    @app.get("/api/team")
    def team_info(team: Optional[str] = Query(None, description="Team ID (defaults to the tracked team)")):
        return _found(service.get_team(_team_or_default(team), caller="/api/team"), "Team")

    @app.get("/api/squad")
    def squad(team: Optional[str] = Query(None, description="Team ID (defaults to the tracked team)")):
        return _found(service.get_squad(_team_or_default(team), caller="/api/squad"), "Squad")

    @app.get("/api/coach")
    def coach(team: Optional[str] = Query(None, description="Team ID (defaults to the tracked team)")):
        return _found(service.get_coach(_team_or_default(team), caller="/api/coach"), "Coach")

    @app.get("/api/team-stats")
    def team_stats(season: Optional[str] = Query(None, description="Season year")):
        """Matches, goals and minutes summed over the tracked competitions."""
        return service.get_team_season_totals(parse_season(season), caller="/api/team-stats")

    @app.get("/api/status")
    def api_status():
        """Provider account status (plan and quota), uncached."""
        return service.client.get_status(caller="/api/status")

    # ===== PLAYERS =====

    @app.get("/api/players/{player_id}")
    def player(player_id: str, season: Optional[str] = Query(None, description="Season year")):
        result = service.get_player(
            parse_id(player_id, "player ID"), parse_season(season), caller="/api/players/[id]"
        )
        return _found(result, "Player")

    @app.get("/api/players/{player_id}/statistics")
    def player_statistics(player_id: str, season: Optional[str] = Query(None, description="Season year")):
        return service.get_player_statistics(
            parse_id(player_id, "player ID"), parse_season(season), caller="/api/players/[id]/statistics"
        )

    @app.get("/api/players/{player_id}/seasons")
    def player_seasons(player_id: str):
        return service.get_player_seasons(parse_id(player_id, "player ID"), caller="/api/players/[id]/seasons")

    @app.get("/api/players/{player_id}/matches", response_model=PlayerMatchesResponse)
    def player_matches(
        player_id: str,
        season: Optional[str] = Query(None, description="Season year"),
        offset: str = Query("0", description="Index of the first match to return"),
        limit: str = Query("5", description="Number of matches to return"),
    ):
        """
        Paginated per-match statistics for a player's season.

        The first request for a (player, season) aggregates every finished
        match in tracked competitions; later pages come from the cached list.
        """
        page = aggregator.get_player_matches(
            player_id=parse_id(player_id, "player ID"),
            season=parse_season(season),
            offset=parse_int(offset, "offset"),
            limit=parse_int(limit, "limit"),
        )
        logger.debug(f"{PLAYER_MATCHES_CALLER}: player {player_id} -> {len(page.matches)}/{page.total}")
        return page.to_dict()

    return app


app = create_app()
