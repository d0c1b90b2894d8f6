"""
TTL configuration and fixture-status to TTL mapping.
"""
from typing import Any, Dict, Optional

from .core import DataCategory


# TTL by category (in seconds)
TTL_CONFIG: Dict[DataCategory, int] = {
    DataCategory.LIVESCORE: 15,                # 15 seconds
    DataCategory.TODAY_FIXTURES: 300,          # 5 minutes
    DataCategory.STANDINGS: 3600,              # 1 hour
    DataCategory.TOP_SCORERS: 3600,            # 1 hour
    DataCategory.TEAM_STATISTICS: 3600,        # 1 hour
    DataCategory.TEAM_INFO: 86400,             # 1 day
    DataCategory.PLAYER_INFO: 86400,           # 1 day
    DataCategory.SQUAD: 86400,                 # 1 day
    DataCategory.SEASON_FIXTURES: 86400,       # 1 day
    DataCategory.COACH: 86400,                 # 1 day
    DataCategory.SEASONS: 86400,               # 1 day
    DataCategory.COMPLETED_MATCH: 604800,      # 1 week
    DataCategory.HISTORICAL_DATA: 2592000,     # 30 days
}

# API-Football fixture status codes
LIVE_STATUSES = frozenset({"LIVE", "1H", "HT", "2H", "ET", "BT", "P"})
FINISHED_STATUSES = frozenset({"FT", "AET", "PEN"})
SCHEDULED_STATUSES = frozenset({"TBD", "NS"})


def get_ttl_for_category(category: DataCategory) -> int:
    """
    Get the TTL for a data category.

    Unknown categories fall back to the today-fixtures window.
    """
    return TTL_CONFIG.get(category, TTL_CONFIG[DataCategory.TODAY_FIXTURES])


def is_live_status(status: Optional[str]) -> bool:
    return (status or "").upper() in LIVE_STATUSES


def is_finished_status(status: Optional[str]) -> bool:
    return (status or "").upper() in FINISHED_STATUSES


def get_fixture_category(status: Optional[str]) -> DataCategory:
    """
    Determine the category of single-fixture data from its status.

    Live -> LIVESCORE, finished -> COMPLETED_MATCH, anything else
    (scheduled, postponed, suspended, unknown) -> TODAY_FIXTURES.
    """
    if is_live_status(status):
        return DataCategory.LIVESCORE
    if is_finished_status(status):
        return DataCategory.COMPLETED_MATCH
    return DataCategory.TODAY_FIXTURES


def get_fixture_ttl(status: Optional[str]) -> int:
    """TTL for a fixture's detail given its short status code."""
    return get_ttl_for_category(get_fixture_category(status))


def get_fixture_payload_ttl(fixture: Optional[Dict[str, Any]]) -> int:
    """
    TTL for a fixture payload, read from the status it was fetched with.

    Args:
        fixture: Provider fixture document ({"fixture": {"status": {"short": ...}}, ...})
    """
    if not fixture:
        return get_ttl_for_category(DataCategory.TODAY_FIXTURES)
    status = (fixture.get("fixture") or {}).get("status") or {}
    return get_fixture_ttl(status.get("short"))
