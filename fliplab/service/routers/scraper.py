"""
Search, item detail, health and platform routes.
"""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request

from fliplab.aggregator import ResponseAggregator
from fliplab.error_handling import ValidationError
from fliplab.models import ErrorInfo, SearchRequest, SourceResult
from fliplab.service.envelope import error_response, success_body
from fliplab.service.registry import SourceRegistry
from fliplab.sources import MarketplaceSource, source_for_url
from fliplab.validation import RequestValidator

logger = logging.getLogger(__name__)

router = APIRouter()

validator = RequestValidator()
aggregator = ResponseAggregator()


def get_registry(request: Request) -> SourceRegistry:
    return request.app.state.registry


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as e:
        raise ValidationError("body", "Request body must be valid JSON") from e


async def _search(registry: SourceRegistry, source: MarketplaceSource, search_request: SearchRequest) -> SourceResult:
    """Run one provider search, turning any failure into a failed SourceResult."""
    if not registry.is_active(source.source_id):
        error = ErrorInfo(kind="transport", message=f"{source.name} scraper is not active")
        return SourceResult.failed(source.source_id, error)

    try:
        items = await registry.provider_for(source).search_items(search_request)
    except Exception as e:
        logger.error(f"{source.name} search failed: {e}", exc_info=True)
        return SourceResult.failed(source.source_id, ErrorInfo.from_exception(e))

    logger.info(f"{source.name} search completed. Found {len(items)} items.")
    return SourceResult.ok(source.source_id, items)


@router.get("/health")
async def health(registry: SourceRegistry = Depends(get_registry)):
    """Service health derived from the per-source states."""
    return success_body(registry.health().to_dict())


@router.post("/search/all")
async def search_all(request: Request, registry: SourceRegistry = Depends(get_registry)):
    """
    Search every source concurrently.

    A failing source contributes an empty list; the call only fails when
    every source fails.
    """
    search_request = validator.validate(await _read_json(request)).raise_for_error()
    sources = list(registry.sources.values())

    source_results = await asyncio.gather(*(_search(registry, s, search_request) for s in sources))
    result = aggregator.aggregate(source_results)

    if not result.succeeded_sources:
        messages = "; ".join(r.error.message for r in result.results.values() if r.error)
        return error_response(500, "Search failed", messages or "All sources failed")

    data = {
        source_id: [item.to_payload() for item in source_result.items]
        for source_id, source_result in result.results.items()
    }
    data["total"] = result.total_count

    counts = ", ".join(
        f"{len(result.results[s.source_id].items)} items on {s.name}" for s in sources
    )
    body = success_body(data, message=f"Found {counts}")
    body["partialFailure"] = result.partial_failure
    if result.partial_failure:
        body["failedSources"] = result.failed_sources
    return body


@router.post("/search/{source_key}")
async def search_source(source_key: str, request: Request, registry: SourceRegistry = Depends(get_registry)):
    """Search one source, addressed by source id or route alias."""
    source = registry.resolve(source_key)
    if source is None:
        return error_response(404, "Unknown source", f"No marketplace source named '{source_key}'")

    search_request = validator.validate(await _read_json(request)).raise_for_error()
    result = await _search(registry, source, search_request)

    if not result.is_ok:
        return error_response(500, "Search failed", result.error.message)

    return success_body(
        [item.to_payload() for item in result.items],
        message=f"Found {len(result.items)} items on {source.name}",
    )


@router.post("/item/details")
async def item_details(request: Request, registry: SourceRegistry = Depends(get_registry)):
    """Look up one listing, routed to its source by URL."""
    body = await _read_json(request)
    raw_url = body.get("url") if isinstance(body, dict) else None
    url = validator.validate_item_url(raw_url).raise_for_error()

    source = source_for_url(url, registry.sources)
    if source is None:
        return error_response(400, "Unsupported platform", "URL must be from Facebook Marketplace or Poshmark")

    if not registry.is_active(source.source_id):
        return error_response(500, "Failed to get item details", f"{source.name} scraper is not active")

    item = await registry.provider_for(source).get_item_details(url)
    if item is None:
        logger.warning(f"No item found for {source.name} URL: {url}")
        return error_response(404, "Item not found", "Could not retrieve item details")

    return success_body(item.to_payload(), message="Item details retrieved successfully")


@router.get("/platforms")
async def platforms(registry: SourceRegistry = Depends(get_registry)):
    """Name, status and last state change for every source."""
    return success_body(registry.platform_status(), message="Platform status retrieved successfully")
