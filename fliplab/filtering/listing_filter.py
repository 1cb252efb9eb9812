"""
Listing views over marketplace search results.

Every method is a pure function of its input: lists are copied, never
modified in place.
"""

from statistics import mean
from typing import Iterable, List, Optional, Union

from fliplab.models import MarketplaceItem, Platform, PriceStats


class ListingFilter:
    """Filters, sorts and summarizes marketplace items."""

    def filter_by_platform(
        self,
        items: Iterable[MarketplaceItem],
        platform: Union[Platform, str],
    ) -> List[MarketplaceItem]:
        """Items whose platform tag matches ``platform``."""
        platform = Platform(platform)
        return [item for item in items if item.platform == platform]

    def filter_by_price(
        self,
        items: Iterable[MarketplaceItem],
        min_price: Optional[float] = None,
        max_price: Optional[float] = None
    ) -> List[MarketplaceItem]:
        """Filter items by price range.

        Args:
            items: Items to filter
            min_price: Minimum price (inclusive), None for no minimum
            max_price: Maximum price (inclusive), None for no maximum

        Returns:
            Items within the range, in their original order
        """
        filtered = []

        for item in items:
            if min_price is not None and item.price < min_price:
                continue

            if max_price is not None and item.price > max_price:
                continue

            filtered.append(item)

        return filtered

    def sort_by_price(
        self,
        items: Iterable[MarketplaceItem],
        descending: bool = False,
    ) -> List[MarketplaceItem]:
        """Sort by price. Ties keep their original relative order."""
        # reverse=True keeps ties in original order
        return sorted(items, key=lambda item: item.price, reverse=descending)

    def unique_categories(self, items: Iterable[MarketplaceItem]) -> List[str]:
        """Distinct non-empty categories, in first-seen order."""
        seen = []
        for item in items:
            if item.category and item.category not in seen:
                seen.append(item.category)
        return seen

    def price_stats(self, items: Iterable[MarketplaceItem]) -> PriceStats:
        """Min, max, mean and median price.

        The median of an even-sized sample is the mean of the two middle
        values. An empty input yields all zeros.
        """
        prices = sorted(item.price for item in items)
        if not prices:
            return PriceStats()

        mid = len(prices) // 2
        if len(prices) % 2 == 0:
            median = (prices[mid - 1] + prices[mid]) / 2
        else:
            median = prices[mid]

        return PriceStats(
            min=prices[0],
            max=prices[-1],
            mean=mean(prices),
            median=median,
            count=len(prices),
        )
