"""
Property-based tests for extraction engine.

These tests verify price parsing, id derivation, URL canonicalization and
the normalization of raw listing records.
"""

import pytest
from hypothesis import given, settings, strategies as st
import re

from fliplab.extraction_engine import (
    ListingExtractor,
    canonicalize_url,
    generate_item_id,
    parse_price,
)
from fliplab.models import Platform
from fliplab.sources import FACEBOOK_MARKETPLACE, POSHMARK


# Strategy for formatted dollar prices with cents
dollar_amounts = st.integers(min_value=0, max_value=1_000_000)
cents = st.integers(min_value=0, max_value=99)


@pytest.mark.parametrize("text,expected", [
    ("$1,234.56", 1234.56),
    ("$85", 85.0),
    ("Free!", 0.0),
    ("1234", 1234.0),
    ("USD 40.00", 40.0),
    ("$.99", 0.99),
    ("", 0.0),
    (None, 0.0),
    (12.5, 12.5),
    (-5, 0.0),
    (float("nan"), 0.0),
])
def test_parse_price_examples(text, expected):
    assert parse_price(text) == pytest.approx(expected)


@given(dollars=dollar_amounts, cent=cents)
@settings(max_examples=100)
def test_parse_formatted_price(dollars, cent):
    """
    **Feature: fliplab-search, Property 4: Price parsing**

    For any "$d,ddd.cc" string, the parsed price equals the amount it shows.
    """
    text = f"${dollars:,}.{cent:02d}"

    assert parse_price(text) == pytest.approx(dollars + cent / 100)


@given(text=st.text(max_size=50))
@settings(max_examples=100)
def test_parse_price_never_negative(text):
    """For any text, the parsed price is a non-negative number."""
    price = parse_price(text)

    assert isinstance(price, float)
    assert price >= 0


@given(
    title=st.text(min_size=1, max_size=40),
    price=st.floats(min_value=0, max_value=100000, allow_nan=False),
    discriminator=st.one_of(st.none(), st.text(max_size=20)),
)
@settings(max_examples=100)
def test_generated_ids_are_short_alphanumeric_and_deterministic(title, price, discriminator):
    item_id = generate_item_id(title, price, discriminator)

    assert len(item_id) <= 16
    assert re.fullmatch(r"[a-zA-Z0-9]*", item_id)
    assert generate_item_id(title, price, discriminator) == item_id


def test_generated_id_depends_on_discriminator():
    assert generate_item_id("Lamp", 10, "Austin") != generate_item_id("Lamp", 10, "Dallas")


def test_whole_prices_render_without_decimal_in_id():
    assert generate_item_id("Lamp", 10.0, "A") == generate_item_id("Lamp", 10, "A")


@pytest.mark.parametrize("href,expected", [
    ("/marketplace/item/1", "https://www.facebook.com/marketplace/item/1"),
    ("marketplace/item/1", "https://www.facebook.com/marketplace/item/1"),
    ("https://cdn.example.com/a.jpg", "https://cdn.example.com/a.jpg"),
    ("", "https://www.facebook.com/"),
])
def test_canonicalize_url(href, expected):
    assert canonicalize_url(href, "https://www.facebook.com") == expected


def test_extract_item_normalizes_raw_record():
    record = {
        "title": "  Vintage Levi's 501  ",
        "price": "$1,234.56",
        "images": ["/img/1.jpg", "", None],
        "location": "Austin, TX",
        "url": "/marketplace/item/42",
    }

    item = ListingExtractor().extract_item(record, FACEBOOK_MARKETPLACE)

    assert item is not None
    assert item.title == "Vintage Levi's 501"
    assert item.price == pytest.approx(1234.56)
    assert item.url == "https://www.facebook.com/marketplace/item/42"
    assert item.images == ["https://www.facebook.com/img/1.jpg"]
    assert item.platform == Platform.FACEBOOK_MARKETPLACE
    assert item.metadata == {"priceText": "$1,234.56"}
    assert item.id == generate_item_id("Vintage Levi's 501", 1234.56, "Austin, TX")


def test_extract_item_uses_brand_for_poshmark_ids():
    record = {"title": "Align Leggings", "price": "$58", "brand": "Lululemon", "url": "/listing/x"}

    item = ListingExtractor().extract_item(record, POSHMARK)

    assert item.id == generate_item_id("Align Leggings", 58, "Lululemon")
    assert item.platform == Platform.POSHMARK
    assert item.url == "https://poshmark.com/listing/x"


def test_extract_item_keeps_existing_id_and_unparseable_price_is_zero():
    record = {"id": "abc123", "title": "Moving boxes", "price": "Free", "url": "/marketplace/item/9"}

    item = ListingExtractor().extract_item(record, FACEBOOK_MARKETPLACE)

    assert item.id == "abc123"
    assert item.price == 0


@pytest.mark.parametrize("record", [
    None,
    "not a record",
    {},
    {"title": "   ", "price": 5, "url": "/x"},
    {"title": "Bad date", "price": 5, "url": "https://poshmark.com/x", "scrapedAt": "not a date"},
    {"title": "Bad images", "price": 5, "url": "/listing/x", "images": 5},
    {"title": "Bad metadata", "price": 5, "url": "/listing/x", "metadata": "x"},
    {"title": "Bad metadata list", "price": 5, "url": "/listing/x", "metadata": [["a", "b"]]},
])
def test_unparseable_records_are_skipped(record):
    assert ListingExtractor().extract_item(record, POSHMARK) is None


def test_extract_items_skips_bad_records_and_keeps_order():
    records = [
        {"title": "First", "price": 1, "url": "/listing/1"},
        {"price": 2},
        {"title": "Third", "price": "$3", "url": "/listing/3"},
    ]

    items = ListingExtractor().extract_items(records, POSHMARK)

    assert [item.title for item in items] == ["First", "Third"]
