"""
Marketplace source variants.

Each supported marketplace is one frozen dataclass exposing the same small
capability surface: identifiers, the service route, its native search query
encoding, and a URL ownership test. There is no shared base class; the
MarketplaceSource protocol describes what callers rely on.
"""

from dataclasses import dataclass
from typing import ClassVar, Dict, Iterable, Mapping, Optional, Protocol
from urllib.parse import urlparse

from fliplab.models import Platform, SearchRequest


def format_number(value: float) -> str:
    """Render a number without a trailing ``.0`` for whole values."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return str(value)


class MarketplaceSource(Protocol):
    source_id: str
    route: str
    name: str
    platform: Platform
    origin: str
    search_base_url: str
    id_discriminator: str

    def encode_query(self, request: SearchRequest) -> Dict[str, str]:
        ...

    def owns_url(self, url: str) -> bool:
        ...


def _host(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


def _host_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


@dataclass(frozen=True)
class FacebookMarketplaceSource:
    """Facebook Marketplace: camelCase query params, ids keyed on location."""
    source_id: str = Platform.FACEBOOK_MARKETPLACE.value
    route: str = "facebook"
    name: str = "Facebook Marketplace"
    platform: Platform = Platform.FACEBOOK_MARKETPLACE
    origin: str = "https://www.facebook.com"
    search_base_url: str = "https://www.facebook.com/marketplace/search"
    id_discriminator: str = "location"

    SORT_MAP: ClassVar[Dict[str, str]] = {
        "relevance": "relevance",
        "price-low": "price_asc",
        "price-high": "price_desc",
        "date": "date_desc",
        "distance": "distance",
    }

    def encode_query(self, request: SearchRequest) -> Dict[str, str]:
        params = {'query': request.query}

        if request.category:
            params['category'] = request.category

        if request.location:
            params['location'] = request.location

        if request.price_min is not None:
            params['minPrice'] = format_number(request.price_min)

        if request.price_max is not None:
            params['maxPrice'] = format_number(request.price_max)

        params['sortBy'] = self.SORT_MAP[request.sort_by.value]
        return params

    def owns_url(self, url: str) -> bool:
        host = _host(url)
        return _host_matches(host, "facebook.com") and urlparse(url).path.startswith("/marketplace")


@dataclass(frozen=True)
class PoshmarkSource:
    """Poshmark: snake_case query params, categories are departments, ids keyed on brand."""
    source_id: str = Platform.POSHMARK.value
    route: str = "poshmark"
    name: str = "Poshmark"
    platform: Platform = Platform.POSHMARK
    origin: str = "https://poshmark.com"
    search_base_url: str = "https://poshmark.com/search"
    id_discriminator: str = "brand"

    SORT_MAP: ClassVar[Dict[str, str]] = {
        "relevance": "relevance",
        "price-low": "price_asc",
        "price-high": "price_desc",
        "date": "just_in",
        "distance": "distance",
    }

    def encode_query(self, request: SearchRequest) -> Dict[str, str]:
        # Poshmark search has no location filter
        params = {'query': request.query}

        if request.category:
            params['department'] = request.category

        if request.price_min is not None:
            params['min_price'] = format_number(request.price_min)

        if request.price_max is not None:
            params['max_price'] = format_number(request.price_max)

        params['sort_by'] = self.SORT_MAP[request.sort_by.value]
        return params

    def owns_url(self, url: str) -> bool:
        return _host_matches(_host(url), "poshmark.com")


FACEBOOK_MARKETPLACE = FacebookMarketplaceSource()
POSHMARK = PoshmarkSource()

# Registry order is the default dispatch order
SOURCES: Dict[str, MarketplaceSource] = {
    FACEBOOK_MARKETPLACE.source_id: FACEBOOK_MARKETPLACE,
    POSHMARK.source_id: POSHMARK,
}


def get_source(
    key: str,
    sources: Optional[Mapping[str, MarketplaceSource]] = None,
) -> Optional[MarketplaceSource]:
    """Look up a source by id (``facebook-marketplace``) or route alias (``facebook``)."""
    registry = SOURCES if sources is None else sources
    if key in registry:
        return registry[key]
    for source in registry.values():
        if source.route == key:
            return source
    return None


def source_for_url(
    url: str,
    sources: Optional[Mapping[str, MarketplaceSource]] = None,
) -> Optional[MarketplaceSource]:
    """Find the source whose host/path pattern matches ``url``."""
    registry = SOURCES if sources is None else sources
    for source in registry.values():
        if source.owns_url(url):
            return source
    return None


def order_source_ids(
    source_ids: Iterable[str],
    sources: Optional[Mapping[str, MarketplaceSource]] = None,
) -> list:
    """Resolve and de-duplicate source ids, keeping the caller's order.

    Unordered collections (sets) are put in registry order so dispatch order
    is deterministic.
    """
    registry = SOURCES if sources is None else sources
    if isinstance(source_ids, (set, frozenset)):
        position = {sid: index for index, sid in enumerate(registry)}
        source_ids = sorted(
            source_ids,
            key=lambda key: position.get(getattr(get_source(key, registry), "source_id", key), len(position)),
        )
    ordered = []
    for key in source_ids:
        if key not in ordered:
            ordered.append(key)
    return ordered
