"""
FlipLab marketplace search.

Typed client for searching Facebook Marketplace and Poshmark through the
FlipLab search service, plus a reference implementation of that service.
"""

from fliplab.aggregator import ResponseAggregator
from fliplab.error_handling import (
    NotFoundError,
    SearchError,
    TotalFailureError,
    TransportError,
    ValidationError,
)
from fliplab.models import (
    AggregatedResult,
    HealthReport,
    HealthStatus,
    MarketplaceItem,
    Platform,
    SearchRequest,
    SortBy,
    SourceResult,
)
from fliplab.search_client import SearchClient
from fliplab.transport import RetryingTransport
from fliplab.validation import RequestValidator

__version__ = "1.0.0"

__all__ = [
    'AggregatedResult',
    'HealthReport',
    'HealthStatus',
    'MarketplaceItem',
    'NotFoundError',
    'Platform',
    'RequestValidator',
    'ResponseAggregator',
    'RetryingTransport',
    'SearchClient',
    'SearchError',
    'SearchRequest',
    'SortBy',
    'SourceResult',
    'TotalFailureError',
    'TransportError',
    'ValidationError',
]
