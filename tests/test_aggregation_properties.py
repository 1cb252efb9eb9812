"""
Property-based tests for response aggregation.

These tests verify that merging per-source results keeps every source's
status, isolates failures, and preserves dispatch order.
"""

import pytest
from hypothesis import given, settings, strategies as st

from fliplab.aggregator import ResponseAggregator
from fliplab.models import ErrorInfo, MarketplaceItem, Platform, SourceResult, SourceStatus


def _item(source_id: str, index: int, price: float = 10.0, category=None) -> MarketplaceItem:
    platform = Platform.POSHMARK if source_id == "poshmark" else Platform.FACEBOOK_MARKETPLACE
    return MarketplaceItem(
        id=f"{source_id}-{index}",
        title=f"{source_id} listing {index}",
        price=price,
        category=category,
        url=f"https://poshmark.com/listing/{source_id}-{index}",
        platform=platform,
    )


@st.composite
def source_outcomes(draw):
    """A list of (source_id, ok, item_count) with unique source ids."""
    source_ids = draw(st.lists(
        st.sampled_from(["facebook-marketplace", "poshmark", "mercari", "ebay", "depop"]),
        min_size=1, max_size=5, unique=True,
    ))
    return [(sid, draw(st.booleans()), draw(st.integers(min_value=0, max_value=5))) for sid in source_ids]


def _results(outcomes):
    results = []
    for source_id, ok, count in outcomes:
        if ok:
            results.append(SourceResult.ok(source_id, [_item(source_id, i) for i in range(count)]))
        else:
            results.append(SourceResult.failed(source_id, ErrorInfo(kind="transport", message="down", attempts=3)))
    return results


@given(outcomes=source_outcomes())
@settings(max_examples=100)
def test_aggregation_isolation(outcomes):
    """
    **Feature: fliplab-search, Property 6: Aggregation isolation**

    Every source keeps its own status, failed sources contribute no items,
    and partial_failure is set exactly when some but not all sources failed.
    """
    source_results = _results(outcomes)

    result = ResponseAggregator().aggregate(source_results)

    assert list(result.results) == [sid for sid, _, _ in outcomes]
    for source_id, ok, count in outcomes:
        source_result = result.results[source_id]
        assert source_result.is_ok is ok
        if not ok:
            assert source_result.error is not None
            assert source_result.items == ()

    expected_items = [item for r in source_results if r.is_ok for item in r.items]
    assert list(result.combined_items) == expected_items
    assert result.total_count == len(expected_items)

    any_ok = any(ok for _, ok, _ in outcomes)
    any_failed = any(not ok for _, ok, _ in outcomes)
    assert result.partial_failure is (any_ok and any_failed)


def test_partial_failure_keeps_error_details():
    results = [
        SourceResult.ok("facebook-marketplace", [_item("facebook-marketplace", 1), _item("facebook-marketplace", 2)]),
        SourceResult.failed("poshmark", ErrorInfo(kind="transport", message="HTTP 503", status=503, attempts=3)),
    ]

    result = ResponseAggregator().aggregate(results)

    assert result.partial_failure
    assert result.total_count == 2
    assert result.failed_sources == ["poshmark"]
    assert result.succeeded_sources == ["facebook-marketplace"]
    assert result.results["poshmark"].status == SourceStatus.FAILED
    assert result.results["poshmark"].error.attempts == 3


def test_to_dict_uses_wire_names():
    results = [
        SourceResult.ok("poshmark", [_item("poshmark", 1)], search_url="https://poshmark.com/search?query=x"),
        SourceResult.failed("facebook-marketplace", ErrorInfo(kind="not_found", message="gone", status=404)),
    ]

    data = ResponseAggregator().aggregate(results).to_dict()

    assert data["totalCount"] == 1
    assert data["partialFailure"] is True
    assert data["results"]["poshmark"]["searchUrl"] == "https://poshmark.com/search?query=x"
    assert data["results"]["facebook-marketplace"]["error"] == {
        "kind": "not_found", "message": "gone", "attempts": 0, "status": 404,
    }
    assert data["combinedItems"][0]["platform"] == "poshmark"


def test_views_accept_aggregated_result_or_items():
    aggregator = ResponseAggregator()
    items = [
        _item("facebook-marketplace", 1, price=30, category="Shoes"),
        _item("poshmark", 2, price=10, category="Women"),
        _item("poshmark", 3, price=20, category="Shoes"),
    ]
    result = aggregator.aggregate([
        SourceResult.ok("facebook-marketplace", items[:1]),
        SourceResult.ok("poshmark", items[1:]),
    ])

    assert [i.id for i in aggregator.sort_items_by_price(result)] == ["poshmark-2", "poshmark-3", "facebook-marketplace-1"]
    assert [i.id for i in aggregator.sort_items_by_price(items, descending=True)] == [
        "facebook-marketplace-1", "poshmark-3", "poshmark-2",
    ]
    assert len(aggregator.get_items_by_platform(result, Platform.POSHMARK)) == 2
    assert [i.price for i in aggregator.get_items_by_price_range(result, 10, 20)] == [10, 20]
    assert aggregator.get_unique_categories(result) == ["Shoes", "Women"]
    assert aggregator.get_price_stats(result).median == 20
    assert list(result.combined_items) == items, "Views must not reorder the result"


def test_duplicate_source_results_are_rejected():
    item = _item("poshmark", 1)

    with pytest.raises(ValueError):
        ResponseAggregator().aggregate([
            SourceResult.ok("poshmark", [item]),
            SourceResult.ok("poshmark", [item, item]),
        ])
