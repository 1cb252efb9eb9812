"""
Extraction engine for normalizing raw listing records into MarketplaceItems.

Raw records come either from a listing provider (loosely shaped dicts with
price strings and relative links) or from the search service (already
normalized payloads). Both go through the same rules: prices are parsed,
missing ids are derived, links are made absolute, and records that still
cannot form a valid item are skipped.
"""

import base64
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional
from urllib.parse import urljoin

from pydantic import ValidationError as PydanticValidationError

from fliplab.models import MarketplaceItem
from fliplab.sources import MarketplaceSource, format_number

logger = logging.getLogger(__name__)

_NON_PRICE_CHARS = re.compile(r'[^\d.,]')
_LEADING_NUMBER = re.compile(r'\d+(?:\.\d+)?|\.\d+')
_NON_ALNUM = re.compile(r'[^a-zA-Z0-9]')


def parse_price(price_text: Any) -> float:
    """Parse a price string to a non-negative float.

    Handles formats like "$1,234.56", "$85" and "1234". Anything that does
    not contain a number parses to 0; callers must read 0 as "unparsed".

    Args:
        price_text: Raw price text or an already numeric price

    Returns:
        Parsed price, never negative
    """
    if price_text is None or isinstance(price_text, bool):
        return 0.0

    if isinstance(price_text, (int, float)):
        value = float(price_text)
        return value if math.isfinite(value) and value >= 0 else 0.0

    clean_price = _NON_PRICE_CHARS.sub('', str(price_text)).replace(',', '')
    match = _LEADING_NUMBER.match(clean_price)
    if not match:
        logger.debug(f"Failed to parse price from text: {price_text!r}")
        return 0.0
    return float(match.group(0))


def generate_item_id(title: str, price: float, discriminator: Optional[str]) -> str:
    """Derive a listing id from title, price and a per-source discriminator.

    Deterministic but not collision-free: two listings with the same title,
    price and discriminator share an id.
    """
    base = f"{title}-{format_number(price)}-{discriminator or ''}"
    encoded = base64.b64encode(base.encode('utf-8')).decode('ascii')
    return _NON_ALNUM.sub('', encoded)[:16]


def canonicalize_url(href: Optional[str], origin: str) -> str:
    """Make a listing link absolute against the source origin."""
    href = (href or '').strip()
    if href.startswith(('http://', 'https://')):
        return href
    return urljoin(origin.rstrip('/') + '/', href)


class ListingExtractor:
    """Turns raw listing records into MarketplaceItems for one source."""

    def extract_items(
        self,
        records: Iterable[Any],
        source: MarketplaceSource,
    ) -> List[MarketplaceItem]:
        """Normalize a batch of records, skipping the ones that fail.

        Args:
            records: Raw listing records
            source: Source the records belong to

        Returns:
            Items in input order, minus records that could not be parsed
        """
        items = []
        skipped = 0
        for record in records:
            item = self.extract_item(record, source)
            if item is None:
                skipped += 1
                continue
            items.append(item)

        if skipped:
            logger.debug(f"Skipped {skipped} unparseable {source.name} listings")
        return items

    def extract_item(
        self,
        record: Any,
        source: MarketplaceSource,
    ) -> Optional[MarketplaceItem]:
        """Normalize one record, or return None if it cannot form an item."""
        if not isinstance(record, Mapping):
            return None

        title = record.get('title')
        if not isinstance(title, str) or not title.strip():
            return None
        title = title.strip()

        price_text = record.get('price')
        price = parse_price(price_text)

        original_price = record.get('originalPrice', record.get('original_price'))
        if original_price is not None:
            original_price = parse_price(original_price) or None

        raw_images = record.get('images') or []
        raw_metadata = record.get('metadata') or {}
        if not isinstance(raw_images, (list, tuple)) or not isinstance(raw_metadata, Mapping):
            logger.debug(f"Skipping {source.name} listing {title!r}: malformed images or metadata")
            return None

        images = [
            canonicalize_url(image, source.origin)
            for image in raw_images
            if isinstance(image, str) and image.strip()
        ]

        item_id = record.get('id') or generate_item_id(
            title, price, record.get(source.id_discriminator)
        )

        metadata = dict(raw_metadata)
        if isinstance(price_text, str):
            metadata.setdefault('priceText', price_text)

        data = {
            'id': str(item_id),
            'title': title,
            'price': price,
            'originalPrice': original_price,
            'currency': record.get('currency') or 'USD',
            'description': record.get('description'),
            'images': images,
            'location': record.get('location'),
            'seller': record.get('seller'),
            'condition': record.get('condition'),
            'category': record.get('category'),
            'brand': record.get('brand'),
            'tags': record.get('tags'),
            'url': canonicalize_url(record.get('url'), source.origin),
            'platform': source.platform,
            'scrapedAt': record.get('scrapedAt') or record.get('scraped_at') or datetime.now(timezone.utc),
            'metadata': metadata or None,
        }

        try:
            return MarketplaceItem.model_validate(data)
        except PydanticValidationError as e:
            logger.debug(f"Failed to extract {source.name} listing {title!r}: {e.error_count()} errors")
            return None
