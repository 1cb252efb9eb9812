"""
Tests for the SearchClient.

The client talks to a FakeSender, so every test controls exactly what the
search service answers on each attempt.
"""

import asyncio
import pytest
from unittest.mock import patch

from fliplab.error_handling import TotalFailureError, ValidationError
from fliplab.models import HealthStatus, Platform, ScraperState, SourceStatus
from fliplab.transport import HttpResponse

from conftest import FakeSender, envelope, failure, item_payload


@pytest.mark.asyncio
async def test_search_source_decodes_items(make_client):
    sender = FakeSender([envelope([
        item_payload("Nike Air Max 90", 85),
        item_payload("Nike Dunk", "$1,234.56"),
    ])])
    client = make_client(sender)

    result = await client.search_source("facebook", {"query": "  nike ", "priceMax": 100})

    assert result.status == SourceStatus.OK
    assert result.source_id == "facebook-marketplace"
    assert [item.price for item in result.items] == [85, 1234.56]
    assert all(item.platform == Platform.FACEBOOK_MARKETPLACE for item in result.items)
    assert result.search_url == (
        "https://www.facebook.com/marketplace/search?query=nike&maxPrice=100&sortBy=relevance"
    )

    call = sender.calls[0]
    assert call.method == "POST"
    assert call.url == "http://scraper.test/api/search/facebook"
    assert call.payload == {"query": "nike", "priceMax": 100.0, "sortBy": "relevance", "limit": 20}
    assert call.headers["User-Agent"] == "FlipLab-Scraper-Client/1.0.0"
    assert call.headers["X-Request-ID"] == result.request_id


@pytest.mark.asyncio
async def test_search_source_skips_malformed_items(make_client):
    sender = FakeSender([envelope([
        item_payload("Good listing", 10, platform="poshmark"),
        {"price": 5},
        "garbage",
        item_payload("Bad images", 10, platform="poshmark", images=5),
        item_payload("Bad metadata", 10, platform="poshmark", metadata="x"),
    ])])
    client = make_client(sender)

    result = await client.search_source("poshmark", {"query": "lamp"})

    assert result.is_ok
    assert [item.title for item in result.items] == ["Good listing"]


@pytest.mark.asyncio
async def test_malformed_listing_does_not_fail_its_source(make_client):
    def handler(method, url, payload):
        platform = "poshmark" if url.endswith("/poshmark") else "facebook-marketplace"
        return envelope([
            item_payload("Lamp", 10, platform=platform),
            item_payload("Broken lamp", 10, platform=platform, images=5, metadata="x"),
        ])

    client = make_client(FakeSender(handler=handler))

    result = await client.search_sources(["facebook", "poshmark"], {"query": "lamp"})

    assert not result.partial_failure
    assert result.total_count == 2
    assert [item.title for item in result.combined_items] == ["Lamp", "Lamp"]


@pytest.mark.asyncio
async def test_invalid_request_never_reaches_transport(make_client):
    sender = FakeSender([envelope([])])
    client = make_client(sender)

    with pytest.raises(ValidationError) as exc_info:
        await client.search_source("poshmark", {"query": "lamp", "limit": 500})

    assert exc_info.value.field == "limit"
    assert sender.calls == []


@pytest.mark.asyncio
async def test_unknown_source_is_a_validation_error(make_client):
    client = make_client(FakeSender([envelope([])]))

    with pytest.raises(ValidationError) as exc_info:
        await client.search_source("craigslist", {"query": "lamp"})

    assert exc_info.value.field == "sourceId"


@pytest.mark.asyncio
async def test_exhausted_transport_becomes_failed_result(make_client):
    sender = FakeSender([failure(503, message="busy")])
    client = make_client(sender)

    with patch('asyncio.sleep', return_value=None):
        result = await client.search_source("poshmark", {"query": "lamp"})

    assert result.status == SourceStatus.FAILED
    assert result.items == ()
    assert result.error.kind == "transport"
    assert result.error.status == 503
    assert result.error.attempts == 3
    assert len(sender.calls) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("status,kind", [(400, "validation"), (404, "not_found"), (401, "transport")])
async def test_terminal_status_fails_after_one_attempt(make_client, status, kind):
    sender = FakeSender([failure(status, error="Validation error", message="\"query\" is required")])
    client = make_client(sender)

    result = await client.search_source("poshmark", {"query": "lamp"})

    assert not result.is_ok
    assert result.error.kind == kind
    assert result.error.status == status
    assert "query" in result.error.message
    assert len(sender.calls) == 1


@pytest.mark.asyncio
async def test_success_false_envelope_is_a_failure(make_client):
    client = make_client(FakeSender([envelope(None, success=False, error="Search failed")]))

    result = await client.search_source("facebook", {"query": "lamp"})

    assert not result.is_ok
    assert result.error.message == "Search failed"


@pytest.mark.asyncio
async def test_search_sources_partial_failure(make_client):
    """One source exhausting its retries does not cancel or hide the other."""

    def handler(method, url, payload):
        if url.endswith("/poshmark"):
            return failure(500)
        return envelope([item_payload("Lamp", 10), item_payload("Desk", 20)])

    sender = FakeSender(handler=handler)
    client = make_client(sender)

    with patch('asyncio.sleep', return_value=None):
        result = await client.search_sources(None, {"query": "lamp"})

    assert list(result.results) == ["facebook-marketplace", "poshmark"]
    assert result.partial_failure
    assert result.total_count == 2
    assert result.results["facebook-marketplace"].is_ok
    assert result.results["poshmark"].error.kind == "transport"
    assert len(sender.calls_to("/api/search/poshmark")) == 3
    assert len(sender.calls_to("/api/search/facebook")) == 1


@pytest.mark.asyncio
async def test_search_sources_runs_concurrently(make_client):
    started = []
    release = asyncio.Event()

    async def sender(method, url, *, payload=None, headers=None):
        started.append(url)
        if len(started) == 2:
            release.set()
        await asyncio.wait_for(release.wait(), timeout=1)
        return envelope([])

    client = make_client(sender)

    result = await client.search_sources(["poshmark", "facebook"], {"query": "lamp"})

    assert len(started) == 2
    assert list(result.results) == ["poshmark", "facebook-marketplace"]


@pytest.mark.asyncio
async def test_search_sources_total_failure_raises_with_result(make_client):
    client = make_client(FakeSender([failure(500)]))

    with patch('asyncio.sleep', return_value=None):
        with pytest.raises(TotalFailureError) as exc_info:
            await client.search_sources(None, {"query": "lamp"})

    result = exc_info.value.result
    assert result.failed_sources == ["facebook-marketplace", "poshmark"]
    assert not result.partial_failure
    assert result.total_count == 0


@pytest.mark.asyncio
async def test_search_sources_requires_a_source(make_client):
    with pytest.raises(ValidationError) as exc_info:
        await make_client(FakeSender([envelope([])])).search_sources([], {"query": "lamp"})

    assert exc_info.value.field == "sourceIds"


@pytest.mark.asyncio
async def test_search_sources_dedupes_aliases(make_client):
    sender = FakeSender([envelope([])])
    client = make_client(sender)

    result = await client.search_sources(["facebook", "facebook-marketplace"], {"query": "lamp"})

    assert list(result.results) == ["facebook-marketplace"]
    assert len(sender.calls) == 1


@pytest.mark.asyncio
async def test_get_item_detail(make_client):
    sender = FakeSender([envelope(item_payload("Dunk Low", "$120", platform="poshmark"))])
    client = make_client(sender)

    item = await client.get_item_detail("https://poshmark.com/listing/1")

    assert item.title == "Dunk Low"
    assert item.price == 120
    assert sender.calls[0].url == "http://scraper.test/api/item/details"
    assert sender.calls[0].payload == {"url": "https://poshmark.com/listing/1"}


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    failure(404, error="Item not found"),
    envelope(None),
])
async def test_get_item_detail_not_found(make_client, response):
    sender = FakeSender([response])

    item = await make_client(sender).get_item_detail("https://www.facebook.com/marketplace/item/9")

    assert item is None
    assert len(sender.calls) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("url", ["https://www.ebay.com/itm/1", "not a url"])
async def test_get_item_detail_rejects_unknown_urls(make_client, url):
    sender = FakeSender([envelope(None)])

    with pytest.raises(ValidationError) as exc_info:
        await make_client(sender).get_item_detail(url)

    assert exc_info.value.field == "url"
    assert sender.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("scrapers,expected", [
    ({"facebook-marketplace": "active", "poshmark": "active"}, HealthStatus.HEALTHY),
    ({"facebook-marketplace": "active", "poshmark": "inactive"}, HealthStatus.DEGRADED),
    ({"facebook-marketplace": "error", "poshmark": "inactive"}, HealthStatus.UNHEALTHY),
])
async def test_check_health_derives_status(make_client, scrapers, expected):
    data = {
        "status": "healthy",
        "timestamp": "2024-01-15T12:00:00Z",
        "uptime": 1200,
        "memory": {"used": 50, "total": 100, "percentage": 50},
        "scrapers": scrapers,
    }
    client = make_client(FakeSender([envelope(data)]))

    report = await client.check_health()

    assert report.status == expected
    assert report.uptime == 1200
    assert report.memory.percentage == 50
    assert report.timestamp.year == 2024


@pytest.mark.asyncio
async def test_check_health_unreachable_service(make_client):
    client = make_client(FakeSender([ConnectionRefusedError("refused")]))

    with patch('asyncio.sleep', return_value=None):
        report = await client.check_health()

    assert report.status == HealthStatus.UNHEALTHY
    assert report.scrapers == {
        "facebook-marketplace": ScraperState.ERROR,
        "poshmark": ScraperState.ERROR,
    }


@pytest.mark.asyncio
async def test_get_platform_status(make_client):
    data = {"poshmark": {"name": "Poshmark", "status": "active", "lastCheck": "2024-01-15T12:00:00Z"}}
    client = make_client(FakeSender([envelope(data)]))

    assert await client.get_platform_status() == data


def test_get_config_returns_copy(make_client, fast_settings):
    client = make_client(FakeSender([HttpResponse(status=200)]))

    config = client.get_config()

    assert config == fast_settings
    assert config is not client.settings
