"""
URL construction module for marketplace searches.

Builds the marketplace-native search URL for a validated request, using the
source's own query parameter names.
"""

from urllib.parse import urlencode, quote_plus

from fliplab.models import SearchRequest
from fliplab.sources import MarketplaceSource


class MarketplaceURLBuilder:
    """Constructs marketplace search URLs with encoded parameters."""

    def build_search_url(self, source: MarketplaceSource, request: SearchRequest) -> str:
        """Construct the search URL for ``request`` on ``source``.

        Args:
            source: Marketplace the URL targets
            request: Validated search request

        Returns:
            Complete search URL with encoded parameters

        Examples:
            >>> builder = MarketplaceURLBuilder()
            >>> builder.build_search_url(POSHMARK, SearchRequest(query="nike sneakers", priceMax=100))
            'https://poshmark.com/search?query=nike+sneakers&max_price=100&sort_by=relevance'
        """
        params = source.encode_query(request)

        # quote_via=quote_plus converts spaces to + instead of %20
        encoded_params = urlencode(params, quote_via=quote_plus)

        return f"{source.search_base_url}?{encoded_params}"
