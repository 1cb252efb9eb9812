"""
Error handling module for FlipLab search.

Provides the error taxonomy and the retry logic shared by the transport.
"""

from .errors import (
    SearchError,
    ValidationError,
    TransportError,
    NotFoundError,
    TotalFailureError,
)
from .error_handler import ErrorHandler, RetryConfig, is_retryable

__all__ = [
    'SearchError',
    'ValidationError',
    'TransportError',
    'NotFoundError',
    'TotalFailureError',
    'ErrorHandler',
    'RetryConfig',
    'is_retryable',
]
