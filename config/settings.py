"""Configuration management using pydantic-settings."""
from datetime import datetime
from typing import List, Optional

from pydantic_settings import BaseSettings


def _compute_current_season() -> int:
    """
    Compute the current football season year.

    API-Football uses the starting year of the season (2025 for 2025-26).
    A new season starts in August, so Jan-Jul uses the previous year's code.
    """
    now = datetime.now()
    if now.month >= 8:
        return now.year
    return now.year - 1


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API-Football configuration
    api_football_key: Optional[str] = None
    api_football_base_url: str = "https://v3.football.api-sports.io"
    request_timeout_seconds: float = 30.0
    upstream_max_attempts: int = 3

    # Provider quota (requests per UTC day)
    daily_request_limit: int = 75000

    # Tracked team (Fenerbahce) and competitions:
    # Super Lig, Turkish Cup, Champions League, Europa League, Conference League
    team_id: int = 611
    tracked_league_ids: List[int] = [203, 206, 2, 3, 848]

    # Current season (single source of truth)
    current_season: int = _compute_current_season()

    # Player match aggregation
    batch_window_size: int = 3
    batch_delay_ms: int = 200
    aggregation_timeout_seconds: Optional[float] = 120.0

    # Cache settings
    coalesce_timeout_seconds: Optional[float] = None
    cache_cleanup_interval_seconds: float = 300.0

    # Observability
    api_log_max_entries: int = 200
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
