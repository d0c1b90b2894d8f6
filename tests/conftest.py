"""
Shared test fixtures: manual clock, in-memory upstream fake and provider-shaped payloads.
"""
import threading
from collections import defaultdict

import pytest

from fenerstats.api_logger import ApiCallLogger
from fenerstats.batching import BatchOrchestrator
from fenerstats.cache import CacheManager, CacheStore
from fenerstats.player_matches import PlayerMatchAggregator
from fenerstats.services import FootballDataService

TEAM_ID = 611
SUPER_LIG = 203
UNTRACKED_LEAGUE = 999


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self._now += seconds


class FakeUpstreamClient:
    """
    Stand-in for UpstreamClient serving canned provider payloads.

    Values in `fixture_players` / `fixtures_by_id` / `payloads` may be
    exceptions, which are raised instead of returned.
    """

    def __init__(self):
        self.team_fixtures = []
        self.team_fixtures_error = None
        self.fixture_players = {}
        self.fixtures_by_id = {}
        self.standings = {}
        self.live = []
        self.payloads = {}
        self.calls = defaultdict(int)
        self.call_logger = ApiCallLogger()
        self._lock = threading.Lock()

    def _count(self, name: str) -> None:
        with self._lock:
            self.calls[name] += 1

    def get_team_fixtures(self, team_id, season, caller="unknown"):
        self._count("team_fixtures")
        self.call_logger.log(caller, "fixtures", {"team": team_id, "season": season}, 200, "OK", 1)
        if self.team_fixtures_error is not None:
            raise self.team_fixtures_error
        return list(self.team_fixtures)

    def get_fixture_players(self, fixture_id, caller="unknown"):
        self._count("fixture_players")
        value = self.fixture_players.get(fixture_id, [])
        if isinstance(value, Exception):
            raise value
        return value

    def get_fixture_by_id(self, fixture_id, caller="unknown"):
        self._count("fixture_by_id")
        value = self.fixtures_by_id.get(fixture_id)
        if isinstance(value, Exception):
            raise value
        return value

    def get_standings(self, league_id, season, caller="unknown"):
        self._count("standings")
        return self.standings.get((league_id, season))

    def get_live_fixtures(self, caller="unknown"):
        self._count("live")
        return list(self.live)

    def _serve(self, name, *key, default=None):
        """Canned payload registered under payloads[(name, *key)]."""
        self._count(name)
        value = self.payloads.get((name,) + key, default)
        if isinstance(value, Exception):
            raise value
        return value

    def get_fixture_events(self, fixture_id, caller="unknown"):
        return self._serve("events", fixture_id, default=[])

    def get_fixture_lineups(self, fixture_id, caller="unknown"):
        return self._serve("lineups", fixture_id, default=[])

    def get_fixture_statistics(self, fixture_id, caller="unknown"):
        return self._serve("fixture_statistics", fixture_id, default=[])

    def get_today_fixtures(self, today=None, caller="unknown"):
        return self._serve("today", default=[])

    def get_next_fixtures(self, team_id, count=5, caller="unknown"):
        return self._serve("next", team_id, count, default=[])

    def get_last_fixtures(self, team_id, count=5, caller="unknown"):
        return self._serve("last", team_id, count, default=[])

    def get_head_to_head(self, team1, team2, last=10, caller="unknown"):
        return self._serve("h2h", team1, team2, default=[])

    def get_top_scorers(self, league_id, season, caller="unknown"):
        return self._serve("top_scorers", league_id, season, default=[])

    def get_top_assists(self, league_id, season, caller="unknown"):
        return self._serve("top_assists", league_id, season, default=[])

    def get_team(self, team_id, caller="unknown"):
        return self._serve("team", team_id)

    def get_squad(self, team_id, caller="unknown"):
        return self._serve("squad", team_id)

    def get_coach(self, team_id, caller="unknown"):
        return self._serve("coach", team_id)

    def get_team_statistics(self, team_id, league_id, season, caller="unknown"):
        return self._serve("team_statistics", team_id, league_id, season)

    def get_team_seasons(self, team_id, caller="unknown"):
        return self._serve("team_seasons", team_id, default=[])

    def get_player_statistics(self, player_id, season, caller="unknown"):
        return self._serve("player_statistics", player_id, season, default=[])

    def get_player_seasons(self, player_id, caller="unknown"):
        return self._serve("player_seasons", player_id, default=[])

    def get_status(self, caller="unknown"):
        return self._serve("status", default={})

    def get_usage(self):
        return {"total": sum(self.calls.values()), "limit": 75000}


def make_fixture(fixture_id, timestamp, status="FT", league_id=SUPER_LIG, home_id=TEAM_ID, away_id=600):
    """Provider-shaped fixture document."""
    return {
        "fixture": {
            "id": fixture_id,
            "date": None,
            "timestamp": timestamp,
            "status": {"short": status, "long": status, "elapsed": 90},
        },
        "league": {"id": league_id, "name": f"League {league_id}"},
        "teams": {
            "home": {"id": home_id, "name": f"Team {home_id}"},
            "away": {"id": away_id, "name": f"Team {away_id}"},
        },
        "goals": {"home": 2, "away": 1},
    }


def make_player_stats(player_id, minutes=90, goals=0, assists=0, rating="7.1", passes_total=40, passes_accurate=30):
    """Provider-shaped fixtures/players response containing one player."""
    return [
        {
            "team": {"id": TEAM_ID, "name": f"Team {TEAM_ID}"},
            "players": [
                {"player": {"id": 1}, "statistics": [{"games": {"minutes": 90}}]},
                {
                    "player": {"id": player_id, "name": "Test Player"},
                    "statistics": [
                        {
                            "games": {"minutes": minutes, "rating": rating},
                            "goals": {"total": goals, "assists": assists, "saves": None, "conceded": 0},
                            "cards": {"yellow": 1, "red": 0},
                            "shots": {"total": 3, "on": 2},
                            "passes": {"total": passes_total, "key": 2, "accuracy": str(passes_accurate)},
                            "duels": {"total": 10, "won": 6},
                            "tackles": {"total": 2, "blocks": None, "interceptions": 1},
                            "dribbles": {"attempts": 4, "success": 3, "past": None},
                            "fouls": {"drawn": 2, "committed": 1},
                            "penalty": {"won": None, "commited": None, "scored": 0, "missed": 0, "saved": None},
                        }
                    ],
                },
            ],
        }
    ]


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def store(clock):
    return CacheStore(clock=clock)


@pytest.fixture
def cache(store):
    return CacheManager(store=store)


@pytest.fixture
def fake_client():
    return FakeUpstreamClient()


@pytest.fixture
def service(fake_client, cache):
    return FootballDataService(
        fake_client,
        cache,
        team_id=TEAM_ID,
        tracked_league_ids=[SUPER_LIG, 206, 2, 3, 848],
        current_season=2025,
    )


@pytest.fixture
def aggregator(service):
    return PlayerMatchAggregator(
        service,
        orchestrator=BatchOrchestrator(window_size=3, delay_seconds=0),
    )
