"""
Filtering module for FlipLab search results.

Provides price, platform and category views over marketplace items.
"""

from .listing_filter import ListingFilter

__all__ = ['ListingFilter']
