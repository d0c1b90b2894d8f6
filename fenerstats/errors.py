"""
Exception types raised by the data-access layer.
"""
from typing import Optional


class FenerStatsError(Exception):
    """Base class for all application errors."""


class UpstreamError(FenerStatsError):
    """
    The sports-data provider could not deliver a response.

    Covers transport failures, non-2xx statuses and error payloads reported
    by the provider itself.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class ApiRateLimitError(UpstreamError):
    """The daily request budget is exhausted. Never retried."""


class InvalidInputError(FenerStatsError, ValueError):
    """Malformed identifier or pagination argument."""


class AggregationTimeoutError(FenerStatsError):
    """A batch aggregation ran past its overall deadline."""
