"""
Error taxonomy for the activity aggregation engine.

Only fetch failures are fatal. Recoverable conditions (hierarchy misses,
unroutable events, history shortfalls, projection misses) are counted and
logged by the components that meet them and never raised.
"""

from typing import Optional


class ActivityTreeError(Exception):
    """Base class for all engine errors."""


class ConfigError(ActivityTreeError):
    """Configuration is missing or malformed."""


class ActivityFetchError(ActivityTreeError):
    """
    Non-success response from the remote read API.

    Parameters
    ----------
    status : Optional[int]
        HTTP status code, or None when the request never got a response
    reason : str
        Reason phrase or transport error description
    url : Optional[str]
        Endpoint that failed
    """

    def __init__(self, status: Optional[int], reason: str, url: Optional[str] = None):
        self.status = status
        self.reason = reason
        self.url = url
        where = f" from {url}" if url else ""
        code = status if status is not None else "no response"
        super().__init__(f"Activity fetch failed ({code}): {reason}{where}")


class FetchTimeoutError(ActivityFetchError):
    """The caller's time budget ran out between two page fetches."""

    def __init__(self, elapsed_seconds: float, pages_fetched: int):
        self.elapsed_seconds = elapsed_seconds
        self.pages_fetched = pages_fetched
        super().__init__(
            None,
            f"timed out after {elapsed_seconds:.1f}s and {pages_fetched} pages",
        )


class EventParseError(ActivityTreeError):
    """An activity record could not be validated at ingestion."""
