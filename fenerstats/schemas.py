"""
Pydantic schemas for API responses
"""
from pydantic import BaseModel
from typing import Any, Dict, List, Optional


# ===== PLAYER MATCH SCHEMAS =====

class FixtureRef(BaseModel):
    """Match a player record belongs to"""
    fixture_id: int
    date: Optional[str] = None
    status: Optional[str] = None
    league_id: Optional[int] = None
    league_name: Optional[str] = None
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    home_goals: Optional[int] = None
    away_goals: Optional[int] = None

    class Config:
        from_attributes = True


class MatchStats(BaseModel):
    """Player numbers for one match"""
    minutes: int
    goals: int
    assists: int
    saves: int
    goals_conceded: int
    yellow_cards: int
    red_cards: int
    yellow_red_cards: int
    shots_total: int
    shots_on: int
    passes_total: int
    passes_key: int
    pass_accuracy: int
    duels_total: int
    duels_won: int
    tackles_total: int
    tackles_blocks: int
    tackles_interceptions: int
    dribbles_attempts: int
    dribbles_success: int
    dribbles_past: int
    fouls_committed: int
    fouls_drawn: int
    penalty_won: int
    penalty_committed: int
    penalty_scored: int
    penalty_missed: int
    penalty_saved: int
    rating: float

    class Config:
        from_attributes = True


class MatchRecord(BaseModel):
    """Fixture plus the player's stats in it"""
    fixture: FixtureRef
    stats: MatchStats

    class Config:
        from_attributes = True


class PlayerMatchesResponse(BaseModel):
    """One page of a player's season history"""
    matches: List[MatchRecord]
    has_more: bool
    total: int

    class Config:
        from_attributes = True


# ===== ADMIN SCHEMAS =====

class CacheClearResponse(BaseModel):
    """Result of an administrative cache reset"""
    cleared: int
    prefix: Optional[str] = None


class ApiLogsResponse(BaseModel):
    """Recent upstream calls with summary statistics"""
    logs: List[Dict[str, Any]]
    stats: Dict[str, Any]
    count: int
