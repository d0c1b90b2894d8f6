"""
Cache key derivation.

Keys are composed deterministically from the resource type and its
identifying parameters, so the same logical resource always maps to the
same key (and therefore to the same coalescing slot).
"""
from datetime import date
from typing import Optional


def fixtures(league_id: int, season: int) -> str:
    return f"fixtures:{league_id}:{season}"


def fixture_detail(fixture_id: int) -> str:
    return f"fixture:{fixture_id}"


def fixture_events(fixture_id: int) -> str:
    return f"fixture:{fixture_id}:events"


def fixture_lineups(fixture_id: int) -> str:
    return f"fixture:{fixture_id}:lineups"


def fixture_statistics(fixture_id: int) -> str:
    return f"fixture:{fixture_id}:stats"


def fixture_players(fixture_id: int) -> str:
    return f"fixture:{fixture_id}:players"


def live_fixtures() -> str:
    return "fixtures:live"


def today_fixtures(today: Optional[date] = None) -> str:
    """Today's fixture list; the date is part of the key so it rolls over at midnight."""
    today = today or date.today()
    return f"fixtures:today:{today.isoformat()}"


def next_fixtures(team_id: int, count: int) -> str:
    return f"next:{team_id}:{count}"


def last_fixtures(team_id: int, count: int) -> str:
    return f"last:{team_id}:{count}"


def team(team_id: int) -> str:
    return f"team:{team_id}"


def team_statistics(team_id: int, league_id: int, season: int) -> str:
    return f"team:{team_id}:stats:{league_id}:{season}"


def team_squad(team_id: int, season: int) -> str:
    return f"team:{team_id}:squad:{season}"


def team_fixtures(team_id: int, season: int) -> str:
    return f"team:{team_id}:fixtures:{season}"


def team_seasons(team_id: int) -> str:
    return f"team:{team_id}:seasons"


def player_statistics(player_id: int, season: int) -> str:
    return f"player:{player_id}:stats:{season}"


def player_seasons(player_id: int) -> str:
    return f"player:{player_id}:seasons"


def player_matches(player_id: int, season: int) -> str:
    """Aggregated per-match history for one player and season."""
    return f"player:{player_id}:matches:{season}"


def standings(league_id: int, season: int) -> str:
    return f"standings:{league_id}:{season}"


def top_scorers(league_id: int, season: int) -> str:
    return f"topscorers:{league_id}:{season}"


def top_assists(league_id: int, season: int) -> str:
    return f"topassists:{league_id}:{season}"


def coach(team_id: int) -> str:
    return f"coach:{team_id}"


def head_to_head(team1: int, team2: int) -> str:
    """Order-independent: h2h(a, b) == h2h(b, a)."""
    low, high = sorted((team1, team2))
    return f"h2h:{low}:{high}"

