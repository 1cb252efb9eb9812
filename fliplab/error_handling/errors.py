"""
Error taxonomy for FlipLab search.

Every error raised by the client or the service derives from SearchError so
callers can catch the whole family with one clause.
"""

from typing import Any, Optional


class SearchError(Exception):
    """Base class for all search errors."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SearchError):
    """
    Caller input problem. Never retried.

    Attributes:
        field: Name of the offending field (wire name, e.g. ``priceMin``)
        reason: Human-readable explanation
    """

    kind = "validation"

    def __init__(self, field: str, reason: str):
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


class TransportError(SearchError):
    """
    Network, timeout or server-side failure.

    Attributes:
        status: HTTP status code when the failure was an HTTP response
        attempts: Number of attempts consumed so far
        retryable: Whether another attempt may succeed
        exhausted: True once the retry budget has been spent
    """

    kind = "transport"

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        attempts: int = 0,
        retryable: bool = True,
        exhausted: bool = False,
    ):
        super().__init__(message)
        self.status = status
        self.attempts = attempts
        self.retryable = retryable
        self.exhausted = exhausted


class NotFoundError(SearchError):
    """Valid request, but the source has no matching entity."""

    kind = "not_found"


class TotalFailureError(SearchError):
    """
    Every requested source failed.

    Attributes:
        result: The AggregatedResult, so callers can still inspect per-source errors
    """

    kind = "total_failure"

    def __init__(self, message: str, result: Any = None):
        super().__init__(message)
        self.result = result
