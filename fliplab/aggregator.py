"""
Response aggregation for multi-source searches.

Merges per-source outcomes into one AggregatedResult without hiding which
sources failed.
"""

from typing import Iterable, List, Optional, Sequence, Union

from fliplab.filtering import ListingFilter
from fliplab.models import (
    AggregatedResult,
    MarketplaceItem,
    Platform,
    PriceStats,
    SourceResult,
)

ItemsOrResult = Union[AggregatedResult, Iterable[MarketplaceItem]]


def _items(source: ItemsOrResult) -> List[MarketplaceItem]:
    if isinstance(source, AggregatedResult):
        return list(source.combined_items)
    return list(source)


class ResponseAggregator:
    """Combines SourceResults and exposes derived views.

    The views accept either an AggregatedResult (its combined items are used)
    or any iterable of items.
    """

    def __init__(self, listing_filter: Optional[ListingFilter] = None):
        self.listing_filter = listing_filter or ListingFilter()

    def aggregate(self, source_results: Sequence[SourceResult]) -> AggregatedResult:
        """Merge source results in dispatch order.

        Args:
            source_results: One result per source, in dispatch order

        Returns:
            AggregatedResult whose combined items are the ok sources' items,
            concatenated in dispatch order

        Raises:
            ValueError: If two results share a source id
        """
        results = {}
        combined = []
        for result in source_results:
            if result.source_id in results:
                raise ValueError(f"Duplicate result for source '{result.source_id}'")
            results[result.source_id] = result
            if result.is_ok:
                combined.extend(result.items)

        any_ok = any(result.is_ok for result in results.values())
        any_failed = any(not result.is_ok for result in results.values())

        return AggregatedResult(
            results=results,
            combined_items=tuple(combined),
            total_count=len(combined),
            partial_failure=any_ok and any_failed,
        )

    def get_items_by_platform(self, source: ItemsOrResult, platform: Union[Platform, str]) -> List[MarketplaceItem]:
        return self.listing_filter.filter_by_platform(_items(source), platform)

    def get_items_by_price_range(
        self,
        source: ItemsOrResult,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
    ) -> List[MarketplaceItem]:
        return self.listing_filter.filter_by_price(_items(source), min_price, max_price)

    def sort_items_by_price(self, source: ItemsOrResult, descending: bool = False) -> List[MarketplaceItem]:
        return self.listing_filter.sort_by_price(_items(source), descending=descending)

    def get_unique_categories(self, source: ItemsOrResult) -> List[str]:
        return self.listing_filter.unique_categories(_items(source))

    def get_price_stats(self, source: ItemsOrResult) -> PriceStats:
        return self.listing_filter.price_stats(_items(source))
