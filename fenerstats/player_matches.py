"""
Per-match history of a player across a season.

Pulls the tracked team's finished fixtures, fetches player statistics for
each fixture through the batch orchestrator (bounded concurrency, paced
windows), and caches the whole ordered list once under a season-scoped
key. Pagination is then served from that cached aggregate only.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config.settings import settings
from fenerstats.batching import BatchOrchestrator
from fenerstats.cache import DataCategory, get_ttl_for_category, is_finished_status, keys
from fenerstats.errors import InvalidInputError
from fenerstats.services import FootballDataService
from fenerstats.utils.helpers import safe_float, safe_int

logger = logging.getLogger("player_matches")

CALLER_PAGE = "/api/players/[id]/matches"


@dataclass(frozen=True)
class FixtureRef:
    """The match a record belongs to."""
    fixture_id: int
    date: Optional[str]
    status: Optional[str]
    league_id: Optional[int]
    league_name: Optional[str]
    home_team: Optional[str]
    away_team: Optional[str]
    home_goals: Optional[int]
    away_goals: Optional[int]


@dataclass(frozen=True)
class MatchStats:
    """A player's numbers for one match."""
    minutes: int
    goals: int = 0
    assists: int = 0
    saves: int = 0
    goals_conceded: int = 0
    yellow_cards: int = 0
    red_cards: int = 0
    yellow_red_cards: int = 0
    shots_total: int = 0
    shots_on: int = 0
    passes_total: int = 0
    passes_key: int = 0
    pass_accuracy: int = 0
    duels_total: int = 0
    duels_won: int = 0
    tackles_total: int = 0
    tackles_blocks: int = 0
    tackles_interceptions: int = 0
    dribbles_attempts: int = 0
    dribbles_success: int = 0
    dribbles_past: int = 0
    fouls_committed: int = 0
    fouls_drawn: int = 0
    penalty_won: int = 0
    penalty_committed: int = 0
    penalty_scored: int = 0
    penalty_missed: int = 0
    penalty_saved: int = 0
    rating: float = 0.0


@dataclass(frozen=True)
class MatchRecord:
    """Immutable aggregation unit: a fixture plus the player's stats in it."""
    fixture: FixtureRef
    stats: MatchStats

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PlayerMatchesPage:
    """One page over a player's cached season history."""
    matches: Tuple[MatchRecord, ...]
    has_more: bool
    total: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matches": [m.to_dict() for m in self.matches],
            "has_more": self.has_more,
            "total": self.total,
        }


def fixture_ref(fixture: Dict[str, Any]) -> FixtureRef:
    """Reduce a provider fixture document to the fields a record keeps."""
    info = fixture.get("fixture") or {}
    league = fixture.get("league") or {}
    teams = fixture.get("teams") or {}
    goals = fixture.get("goals") or {}
    return FixtureRef(
        fixture_id=info.get("id"),
        date=info.get("date"),
        status=(info.get("status") or {}).get("short"),
        league_id=league.get("id"),
        league_name=league.get("name"),
        home_team=(teams.get("home") or {}).get("name"),
        away_team=(teams.get("away") or {}).get("name"),
        home_goals=goals.get("home"),
        away_goals=goals.get("away"),
    )


def _pass_accuracy(passes: Dict[str, Any]) -> int:
    """
    Accurate passes as a percentage of total passes.

    The provider reports `accuracy` as the count of accurate passes.
    Halves round up (1 of 8 -> 13).
    """
    total = safe_int(passes.get("total"))
    accurate = safe_int(passes.get("accuracy"))
    if not total or not accurate:
        return 0
    return int(accurate * 100 / total + 0.5)


def extract_match_stats(stats: Dict[str, Any]) -> MatchStats:
    """Build MatchStats from one provider `statistics` block."""
    games = stats.get("games") or {}
    goals = stats.get("goals") or {}
    cards = stats.get("cards") or {}
    shots = stats.get("shots") or {}
    passes = stats.get("passes") or {}
    duels = stats.get("duels") or {}
    tackles = stats.get("tackles") or {}
    dribbles = stats.get("dribbles") or {}
    fouls = stats.get("fouls") or {}
    penalty = stats.get("penalty") or {}

    return MatchStats(
        minutes=safe_int(games.get("minutes")),
        goals=safe_int(goals.get("total")),
        assists=safe_int(goals.get("assists")),
        saves=safe_int(goals.get("saves")),
        goals_conceded=safe_int(goals.get("conceded")),
        yellow_cards=safe_int(cards.get("yellow")),
        red_cards=safe_int(cards.get("red")),
        yellow_red_cards=safe_int(cards.get("yellowred")),
        shots_total=safe_int(shots.get("total")),
        shots_on=safe_int(shots.get("on")),
        passes_total=safe_int(passes.get("total")),
        passes_key=safe_int(passes.get("key")),
        pass_accuracy=_pass_accuracy(passes),
        duels_total=safe_int(duels.get("total")),
        duels_won=safe_int(duels.get("won")),
        tackles_total=safe_int(tackles.get("total")),
        tackles_blocks=safe_int(tackles.get("blocks")),
        tackles_interceptions=safe_int(tackles.get("interceptions")),
        dribbles_attempts=safe_int(dribbles.get("attempts")),
        dribbles_success=safe_int(dribbles.get("success")),
        dribbles_past=safe_int(dribbles.get("past")),
        fouls_committed=safe_int(fouls.get("committed")),
        fouls_drawn=safe_int(fouls.get("drawn")),
        penalty_won=safe_int(penalty.get("won")),
        penalty_committed=safe_int(penalty.get("commited", penalty.get("committed"))),
        penalty_scored=safe_int(penalty.get("scored")),
        penalty_missed=safe_int(penalty.get("missed")),
        penalty_saved=safe_int(penalty.get("saved")),
        rating=safe_float(games.get("rating")),
    )


def extract_match_record(
    fixture: Dict[str, Any],
    team_player_stats: Sequence[Dict[str, Any]],
    player_id: int,
) -> Optional[MatchRecord]:
    """
    Find the player in a fixture's per-team player statistics.

    Returns:
        MatchRecord if the player appeared (minutes > 0), else None
    """
    for team_stats in team_player_stats or []:
        for entry in team_stats.get("players") or []:
            if (entry.get("player") or {}).get("id") != player_id:
                continue
            blocks = entry.get("statistics") or []
            if not blocks:
                return None
            stats = extract_match_stats(blocks[0])
            if stats.minutes <= 0:
                return None
            return MatchRecord(fixture=fixture_ref(fixture), stats=stats)
    return None


def _kickoff(fixture: Dict[str, Any]) -> float:
    """Kickoff as a unix timestamp, for ordering."""
    info = fixture.get("fixture") or {}
    timestamp = info.get("timestamp")
    if timestamp is not None:
        return safe_float(timestamp)
    raw = info.get("date")
    if not raw:
        return 0.0
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


def select_finished_fixtures(
    fixtures: Sequence[Dict[str, Any]],
    tracked_league_ids: Sequence[int],
) -> List[Dict[str, Any]]:
    """
    Finished fixtures in tracked competitions, most recent first.

    Ties on kickoff are broken by fixture id (descending) so the order is
    deterministic.
    """
    tracked = set(tracked_league_ids)
    finished = [
        f for f in fixtures or []
        if is_finished_status(((f.get("fixture") or {}).get("status") or {}).get("short"))
        and (f.get("league") or {}).get("id") in tracked
    ]
    finished.sort(
        key=lambda f: (_kickoff(f), safe_int((f.get("fixture") or {}).get("id"))),
        reverse=True,
    )
    return finished


def validate_page(offset: int, limit: int) -> None:
    if offset < 0:
        raise InvalidInputError(f"offset must be >= 0, got {offset}")
    if limit < 1:
        raise InvalidInputError(f"limit must be >= 1, got {limit}")


def paginate(records: Sequence[MatchRecord], offset: int, limit: int) -> PlayerMatchesPage:
    """Slice a cached aggregate: records[offset:offset+limit]."""
    validate_page(offset, limit)
    return PlayerMatchesPage(
        matches=tuple(records[offset:offset + limit]),
        has_more=offset + limit < len(records),
        total=len(records),
    )


class PlayerMatchAggregator:
    """
    Builds and serves a player's per-match season history.

    Usage:
        aggregator = PlayerMatchAggregator(service)
        page = aggregator.get_player_matches(player_id=1234, season=2025, offset=0, limit=5)
    """

    def __init__(
        self,
        service: FootballDataService,
        orchestrator: Optional[BatchOrchestrator] = None,
        tracked_league_ids: Optional[Sequence[int]] = None,
    ):
        self.service = service
        self.orchestrator = orchestrator or BatchOrchestrator(
            window_size=settings.batch_window_size,
            delay_seconds=settings.batch_delay_ms / 1000,
            timeout_seconds=settings.aggregation_timeout_seconds,
        )
        self.tracked_league_ids = list(tracked_league_ids or service.tracked_league_ids)

    def fetch_record(self, fixture: Dict[str, Any], player_id: int) -> Optional[MatchRecord]:
        """Player statistics for one fixture (cache-coalesced)."""
        info = fixture.get("fixture") or {}
        fixture_id = info.get("id")
        if not fixture_id:
            return None
        team_stats = self.service.get_fixture_player_stats(
            fixture_id,
            fixture_status=(info.get("status") or {}).get("short"),
            caller=CALLER_PAGE,
        )
        return extract_match_record(fixture, team_stats, player_id)

    def fetch_all_player_matches(self, player_id: int, season: int) -> Tuple[MatchRecord, ...]:
        """
        Aggregate every finished, tracked-competition match the player appeared in.

        A failure to load the season fixture list propagates (nothing is
        cached); per-fixture failures only shrink the result.
        """
        fixtures = self.service.get_team_fixtures(season, caller=CALLER_PAGE)
        finished = select_finished_fixtures(fixtures, self.tracked_league_ids)
        logger.info(
            f"Aggregating player {player_id} season {season}: "
            f"{len(finished)} finished fixtures"
        )
        records = self.orchestrator.run(
            finished,
            lambda fixture: self.fetch_record(fixture, player_id),
            label=f"player {player_id} matches {season}",
            describe=lambda fixture: f"fixture {(fixture.get('fixture') or {}).get('id')}",
        )
        return tuple(records)

    def get_all_player_matches(self, player_id: int, season: int) -> Tuple[MatchRecord, ...]:
        """The full cached aggregate, built on first request."""
        return self.service.cache.get_cached_data(
            keys.player_matches(player_id, season),
            lambda: self.fetch_all_player_matches(player_id, season),
            get_ttl_for_category(DataCategory.COMPLETED_MATCH),
        )

    def get_player_matches(
        self,
        player_id: int,
        season: Optional[int] = None,
        offset: int = 0,
        limit: int = 5,
    ) -> PlayerMatchesPage:
        """
        One page of the player's season history.

        Returns:
            PlayerMatchesPage with has_more = offset + limit < total
        """
        validate_page(offset, limit)
        season = season or self.service.current_season
        records = self.get_all_player_matches(player_id, season)
        return paginate(records, offset, limit)
