"""
Rate limiting module for the FlipLab search service.

Provides a per-client fixed-window request limiter.
"""

from .rate_limiter import RateLimiter

__all__ = ['RateLimiter']
