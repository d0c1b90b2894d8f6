"""
Cached data services.

Every resource is read through the coalescing cache layer with the TTL of
its category, so repeated and concurrent page renders cost at most one
upstream call per resource and freshness window.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from config.settings import settings
from fenerstats.api_client import DEFAULT_CALLER, UpstreamClient
from fenerstats.errors import UpstreamError
from fenerstats.cache import (
    CacheManager,
    DataCategory,
    get_fixture_payload_ttl,
    get_fixture_ttl,
    get_ttl_for_category,
    keys,
)

logger = logging.getLogger("services")


class FootballDataService:
    """
    Read-through cache over the upstream client.

    Usage:
        service = FootballDataService(UpstreamClient(), CacheManager())
        standings = service.get_standings(203, 2025)
    """

    def __init__(
        self,
        client: UpstreamClient,
        cache: CacheManager,
        team_id: Optional[int] = None,
        tracked_league_ids: Optional[Sequence[int]] = None,
        current_season: Optional[int] = None,
    ):
        self.client = client
        self.cache = cache
        self.team_id = team_id or settings.team_id
        self.tracked_league_ids = list(tracked_league_ids or settings.tracked_league_ids)
        self.current_season = current_season or settings.current_season

    def _cached(self, key: str, fetch_fn, category: DataCategory) -> Any:
        return self.cache.get_cached_data(key, fetch_fn, get_ttl_for_category(category))

    # ===== FIXTURES =====

    def get_fixtures(
        self, league_id: int, season: Optional[int] = None, caller: str = DEFAULT_CALLER
    ) -> List[Dict[str, Any]]:
        """All fixtures of a league season."""
        season = season or self.current_season
        return self._cached(
            keys.fixtures(league_id, season),
            lambda: self.client.get_fixtures(league_id, season, caller=caller),
            DataCategory.SEASON_FIXTURES,
        )

    def get_team_fixtures(
        self,
        season: Optional[int] = None,
        team_id: Optional[int] = None,
        caller: str = DEFAULT_CALLER,
    ) -> List[Dict[str, Any]]:
        """
        A team's fixtures for a season, across all competitions.

        Kept on the short window because match statuses in this list move
        from scheduled to live to finished during a matchday.
        """
        season = season or self.current_season
        team_id = team_id or self.team_id
        return self._cached(
            keys.team_fixtures(team_id, season),
            lambda: self.client.get_team_fixtures(team_id, season, caller=caller),
            DataCategory.TODAY_FIXTURES,
        )

    def get_fixture(self, fixture_id: int, caller: str = DEFAULT_CALLER) -> Optional[Dict[str, Any]]:
        """
        One fixture's detail.

        TTL comes from the status of the payload just fetched: a finished
        match is kept for a week, a live one for seconds.
        """
        return self.cache.get_cached_data(
            keys.fixture_detail(fixture_id),
            lambda: self.client.get_fixture_by_id(fixture_id, caller=caller),
            get_fixture_payload_ttl,
        )

    def get_fixture_events(
        self, fixture_id: int, fixture_status: Optional[str] = None, caller: str = DEFAULT_CALLER
    ) -> List[Dict[str, Any]]:
        return self.cache.get_cached_data(
            keys.fixture_events(fixture_id),
            lambda: self.client.get_fixture_events(fixture_id, caller=caller),
            get_fixture_ttl(fixture_status),
        )

    def get_fixture_lineups(
        self, fixture_id: int, fixture_status: Optional[str] = None, caller: str = DEFAULT_CALLER
    ) -> List[Dict[str, Any]]:
        return self.cache.get_cached_data(
            keys.fixture_lineups(fixture_id),
            lambda: self.client.get_fixture_lineups(fixture_id, caller=caller),
            get_fixture_ttl(fixture_status),
        )

    def get_fixture_statistics(
        self, fixture_id: int, fixture_status: Optional[str] = None, caller: str = DEFAULT_CALLER
    ) -> List[Dict[str, Any]]:
        return self.cache.get_cached_data(
            keys.fixture_statistics(fixture_id),
            lambda: self.client.get_fixture_statistics(fixture_id, caller=caller),
            get_fixture_ttl(fixture_status),
        )

    def get_fixture_player_stats(
        self, fixture_id: int, fixture_status: Optional[str] = None, caller: str = DEFAULT_CALLER
    ) -> List[Dict[str, Any]]:
        """Per-team player statistics for a fixture."""
        return self.cache.get_cached_data(
            keys.fixture_players(fixture_id),
            lambda: self.client.get_fixture_players(fixture_id, caller=caller),
            get_fixture_ttl(fixture_status),
        )

    def get_live_fixtures(self, caller: str = DEFAULT_CALLER) -> List[Dict[str, Any]]:
        return self._cached(
            keys.live_fixtures(),
            lambda: self.client.get_live_fixtures(caller=caller),
            DataCategory.LIVESCORE,
        )

    def get_today_fixtures(self, today: Optional[date] = None, caller: str = DEFAULT_CALLER) -> List[Dict[str, Any]]:
        today = today or date.today()
        return self._cached(
            keys.today_fixtures(today),
            lambda: self.client.get_today_fixtures(today, caller=caller),
            DataCategory.TODAY_FIXTURES,
        )

    def get_next_fixtures(
        self, team_id: Optional[int] = None, count: int = 5, caller: str = DEFAULT_CALLER
    ) -> List[Dict[str, Any]]:
        team_id = team_id or self.team_id
        return self._cached(
            keys.next_fixtures(team_id, count),
            lambda: self.client.get_next_fixtures(team_id, count, caller=caller),
            DataCategory.TODAY_FIXTURES,
        )

    def get_last_fixtures(
        self, team_id: Optional[int] = None, count: int = 5, caller: str = DEFAULT_CALLER
    ) -> List[Dict[str, Any]]:
        team_id = team_id or self.team_id
        return self._cached(
            keys.last_fixtures(team_id, count),
            lambda: self.client.get_last_fixtures(team_id, count, caller=caller),
            DataCategory.COMPLETED_MATCH,
        )

    def get_head_to_head(
        self, team1: int, team2: int, last: int = 10, caller: str = DEFAULT_CALLER
    ) -> List[Dict[str, Any]]:
        return self._cached(
            keys.head_to_head(team1, team2),
            lambda: self.client.get_head_to_head(team1, team2, last, caller=caller),
            DataCategory.HISTORICAL_DATA,
        )

    # ===== STANDINGS / LEADERBOARDS =====

    def get_standings(
        self, league_id: int, season: Optional[int] = None, caller: str = DEFAULT_CALLER
    ) -> Optional[Dict[str, Any]]:
        season = season or self.current_season
        return self._cached(
            keys.standings(league_id, season),
            lambda: self.client.get_standings(league_id, season, caller=caller),
            DataCategory.STANDINGS,
        )

    def get_top_scorers(
        self, league_id: int, season: Optional[int] = None, caller: str = DEFAULT_CALLER
    ) -> List[Dict[str, Any]]:
        season = season or self.current_season
        return self._cached(
            keys.top_scorers(league_id, season),
            lambda: self.client.get_top_scorers(league_id, season, caller=caller),
            DataCategory.TOP_SCORERS,
        )

    def get_top_assists(
        self, league_id: int, season: Optional[int] = None, caller: str = DEFAULT_CALLER
    ) -> List[Dict[str, Any]]:
        season = season or self.current_season
        return self._cached(
            keys.top_assists(league_id, season),
            lambda: self.client.get_top_assists(league_id, season, caller=caller),
            DataCategory.TOP_SCORERS,
        )

    # ===== TEAMS =====

    def get_team(self, team_id: Optional[int] = None, caller: str = DEFAULT_CALLER) -> Optional[Dict[str, Any]]:
        team_id = team_id or self.team_id
        return self._cached(
            keys.team(team_id),
            lambda: self.client.get_team(team_id, caller=caller),
            DataCategory.TEAM_INFO,
        )

    def get_squad(
        self, team_id: Optional[int] = None, season: Optional[int] = None, caller: str = DEFAULT_CALLER
    ) -> Optional[Dict[str, Any]]:
        team_id = team_id or self.team_id
        season = season or self.current_season
        return self._cached(
            keys.team_squad(team_id, season),
            lambda: self.client.get_squad(team_id, caller=caller),
            DataCategory.SQUAD,
        )

    def get_team_statistics(
        self,
        league_id: int,
        team_id: Optional[int] = None,
        season: Optional[int] = None,
        caller: str = DEFAULT_CALLER,
    ) -> Optional[Dict[str, Any]]:
        team_id = team_id or self.team_id
        season = season or self.current_season
        return self._cached(
            keys.team_statistics(team_id, league_id, season),
            lambda: self.client.get_team_statistics(team_id, league_id, season, caller=caller),
            DataCategory.TEAM_STATISTICS,
        )

    def get_coach(self, team_id: Optional[int] = None, caller: str = DEFAULT_CALLER) -> Optional[Dict[str, Any]]:
        team_id = team_id or self.team_id
        return self._cached(
            keys.coach(team_id),
            lambda: self.client.get_coach(team_id, caller=caller),
            DataCategory.COACH,
        )

    def get_team_seasons(self, team_id: Optional[int] = None, caller: str = DEFAULT_CALLER) -> List[int]:
        """Season years with data for the team, newest first."""
        team_id = team_id or self.team_id
        seasons = self._cached(
            keys.team_seasons(team_id),
            lambda: self.client.get_team_seasons(team_id, caller=caller),
            DataCategory.SEASONS,
        )
        return sorted(seasons or [], reverse=True)

    # ===== PLAYERS =====

    def get_player_statistics(
        self, player_id: int, season: Optional[int] = None, caller: str = DEFAULT_CALLER
    ) -> List[Dict[str, Any]]:
        season = season or self.current_season
        return self._cached(
            keys.player_statistics(player_id, season),
            lambda: self.client.get_player_statistics(player_id, season, caller=caller),
            DataCategory.PLAYER_INFO,
        )

    def get_player_seasons(self, player_id: int, caller: str = DEFAULT_CALLER) -> List[int]:
        return self._cached(
            keys.player_seasons(player_id),
            lambda: self.client.get_player_seasons(player_id, caller=caller),
            DataCategory.SEASONS,
        )

    def get_player(
        self, player_id: int, season: Optional[int] = None, caller: str = DEFAULT_CALLER
    ) -> Optional[Dict[str, Any]]:
        """Player profile with per-competition statistics (shares the statistics entry)."""
        statistics = self.get_player_statistics(player_id, season, caller=caller)
        return statistics[0] if statistics else None

    # ===== COMPOSITES =====

    def _involves_team(self, fixture: Dict[str, Any]) -> bool:
        teams = fixture.get("teams") or {}
        return self.team_id in (
            (teams.get("home") or {}).get("id"),
            (teams.get("away") or {}).get("id"),
        )

    def check_live_match(self, caller: str = DEFAULT_CALLER) -> Dict[str, Any]:
        """
        The tracked team's live match (if any) and other live matches in
        tracked competitions.
        """
        live = self.get_live_fixtures(caller=caller)
        team_match = next((f for f in live if self._involves_team(f)), None)
        others = [
            f for f in live
            if (f.get("league") or {}).get("id") in self.tracked_league_ids
            and not self._involves_team(f)
        ]
        logger.debug(
            f"Live check: {len(live)} live fixtures, team playing: {team_match is not None}, "
            f"{len(others)} in tracked leagues"
        )
        return {
            "has_live_match": team_match is not None,
            "team_match": team_match,
            "other_tracked_matches": others,
        }

    def get_team_season_totals(self, season: Optional[int] = None, caller: str = DEFAULT_CALLER) -> Dict[str, Any]:
        """
        Matches played and goals scored by the tracked team, summed over
        every tracked competition.

        A competition whose statistics cannot be loaded is left out of the
        totals and not listed in `leagues`.
        """
        season = season or self.current_season
        matches = 0
        goals = 0
        leagues = []
        for league_id in self.tracked_league_ids:
            try:
                stats = self.get_team_statistics(league_id, season=season, caller=caller)
            except UpstreamError as e:
                logger.warning(f"Team statistics unavailable for league {league_id} season {season}: {e}")
                continue
            if not stats:
                continue
            played = ((stats.get("fixtures") or {}).get("played") or {}).get("total") or 0
            scored = (((stats.get("goals") or {}).get("for") or {}).get("total") or {}).get("total") or 0
            matches += played
            goals += scored
            leagues.append(league_id)

        return {
            "season": season,
            "total_matches": matches,
            "total_goals": goals,
            "total_minutes": matches * 90,
            "leagues": leagues,
        }
