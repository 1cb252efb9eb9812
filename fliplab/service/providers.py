"""
Listing providers for the search service.

A provider answers searches and item lookups for one marketplace source. The
service only depends on the ListingProvider protocol, so a live scraper can
replace the in-memory catalog without touching the routes.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from fliplab.extraction_engine import ListingExtractor
from fliplab.filtering import ListingFilter
from fliplab.models import MarketplaceItem, SearchRequest, SortBy
from fliplab.sources import FACEBOOK_MARKETPLACE, POSHMARK, MarketplaceSource

logger = logging.getLogger(__name__)


class ListingProvider(Protocol):
    source: MarketplaceSource

    async def initialize(self) -> None:
        ...

    async def cleanup(self) -> None:
        ...

    async def search_items(self, request: SearchRequest) -> List[MarketplaceItem]:
        ...

    async def get_item_details(self, url: str) -> Optional[MarketplaceItem]:
        ...


def _matches_terms(item: MarketplaceItem, terms: Sequence[str]) -> bool:
    haystack = " ".join(
        part for part in (item.title, item.description, item.brand, item.category) if part
    ).lower()
    return all(term in haystack for term in terms)


def _sort_items(items: List[MarketplaceItem], sort_by: SortBy, listing_filter: ListingFilter) -> List[MarketplaceItem]:
    if sort_by == SortBy.PRICE_LOW:
        return listing_filter.sort_by_price(items)
    if sort_by == SortBy.PRICE_HIGH:
        return listing_filter.sort_by_price(items, descending=True)
    if sort_by == SortBy.DATE:
        return sorted(items, key=lambda item: item.scraped_at, reverse=True)
    # relevance and distance keep catalog order
    return list(items)


class CatalogListingProvider:
    """
    Serves listings from an in-memory list of raw records.

    Records go through the same extraction rules as live results, so string
    prices, relative links and missing ids are normalized and malformed
    records are dropped.

    Attributes:
        source: Marketplace the records belong to
        records: Raw listing records
    """

    def __init__(
        self,
        source: MarketplaceSource,
        records: Iterable[Mapping[str, Any]] = (),
        extractor: Optional[ListingExtractor] = None,
        listing_filter: Optional[ListingFilter] = None,
    ):
        self.source = source
        self.records = list(records)
        self.extractor = extractor or ListingExtractor()
        self.listing_filter = listing_filter or ListingFilter()
        self._items: List[MarketplaceItem] = []

    async def initialize(self) -> None:
        self._items = self.extractor.extract_items(self.records, self.source)
        logger.info(f"{self.source.name} catalog loaded with {len(self._items)} listings")

    async def cleanup(self) -> None:
        self._items = []

    async def search_items(self, request: SearchRequest) -> List[MarketplaceItem]:
        """
        Search the catalog.

        Every whitespace-separated query term must appear in the title,
        description, brand or category. Price bounds are inclusive and the
        condition match ignores case.
        """
        terms = request.query.lower().split()
        items = [item for item in self._items if _matches_terms(item, terms)]

        if request.category:
            category = request.category.lower()
            items = [item for item in items if (item.category or "").lower() == category]

        items = self.listing_filter.filter_by_price(items, request.price_min, request.price_max)

        if request.condition:
            condition = request.condition.lower()
            items = [item for item in items if (item.condition or "").lower() == condition]

        items = _sort_items(items, request.sort_by, self.listing_filter)
        return items[:request.limit]

    async def get_item_details(self, url: str) -> Optional[MarketplaceItem]:
        url = url.rstrip("/")
        for item in self._items:
            if item.url.rstrip("/") == url:
                return item
        return None


_CATALOG_DATE = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

FACEBOOK_SAMPLE_LISTINGS: List[Dict[str, Any]] = [
    {
        "title": "Nike Air Max 90 Sneakers",
        "price": "$85",
        "description": "Worn twice, size 10, original box included",
        "images": ["/images/airmax90.jpg"],
        "location": "Brooklyn, NY",
        "seller": "Jordan K.",
        "condition": "Like New",
        "category": "Shoes",
        "brand": "Nike",
        "url": "/marketplace/item/100000000000001",
        "scrapedAt": _CATALOG_DATE,
    },
    {
        "title": "Vintage Levi's 501 Jeans",
        "price": "$40",
        "description": "Classic straight fit, 32x32",
        "location": "Austin, TX",
        "condition": "Used",
        "category": "Clothing",
        "brand": "Levi's",
        "url": "/marketplace/item/100000000000002",
        "scrapedAt": _CATALOG_DATE,
    },
    {
        "title": "Herman Miller Aeron Chair",
        "price": "$1,234.56",
        "description": "Size B, fully loaded, minor wear on armrests",
        "location": "Seattle, WA",
        "condition": "Good",
        "category": "Furniture",
        "brand": "Herman Miller",
        "url": "/marketplace/item/100000000000003",
        "scrapedAt": _CATALOG_DATE,
    },
    {
        "title": "Free moving boxes",
        "price": "Free",
        "location": "Portland, OR",
        "category": "Household",
        "url": "/marketplace/item/100000000000004",
        "scrapedAt": _CATALOG_DATE,
    },
]

POSHMARK_SAMPLE_LISTINGS: List[Dict[str, Any]] = [
    {
        "title": "Nike Dunk Low Panda",
        "price": "$120",
        "originalPrice": "$110",
        "description": "Size 9, deadstock",
        "images": ["https://di2ponv0v5otw.cloudfront.net/posts/dunk.jpg"],
        "seller": "sneakerhead22",
        "condition": "New With Tags",
        "category": "Shoes",
        "brand": "Nike",
        "url": "/listing/Nike-Dunk-Low-Panda-200000000000001",
        "scrapedAt": _CATALOG_DATE,
    },
    {
        "title": "Lululemon Align Leggings",
        "price": "$58",
        "originalPrice": "$98",
        "description": "Size 6, black",
        "seller": "closet_cleanout",
        "condition": "Good",
        "category": "Women",
        "brand": "Lululemon",
        "url": "/listing/Lululemon-Align-Leggings-200000000000002",
        "scrapedAt": _CATALOG_DATE,
    },
    {
        "title": "Patagonia Better Sweater Fleece",
        "price": "$65",
        "description": "Men's medium, grey",
        "seller": "outdoorfinds",
        "condition": "Used",
        "category": "Men",
        "brand": "Patagonia",
        "url": "/listing/Patagonia-Better-Sweater-200000000000003",
        "scrapedAt": _CATALOG_DATE,
    },
]


def default_providers() -> Dict[str, CatalogListingProvider]:
    """One sample-catalog provider per known source, keyed by source id."""
    return {
        FACEBOOK_MARKETPLACE.source_id: CatalogListingProvider(FACEBOOK_MARKETPLACE, FACEBOOK_SAMPLE_LISTINGS),
        POSHMARK.source_id: CatalogListingProvider(POSHMARK, POSHMARK_SAMPLE_LISTINGS),
    }
