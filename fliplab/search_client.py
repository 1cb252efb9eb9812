"""
Client for the FlipLab marketplace search service.

Composes request validation, the retrying transport and response
aggregation into typed operations. A client is constructed explicitly by
its owner; there is no shared module-level instance.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional

from fliplab.aggregator import ResponseAggregator
from fliplab.config import ClientSettings, get_client_settings
from fliplab.error_handling import (
    NotFoundError,
    TotalFailureError,
    TransportError,
    ValidationError,
)
from fliplab.extraction_engine import ListingExtractor
from fliplab.logging_setup import current_or_new_request_id
from fliplab.models import (
    AggregatedResult,
    ErrorInfo,
    HealthReport,
    HealthStatus,
    MarketplaceItem,
    MemoryUsage,
    ScraperState,
    SearchRequest,
    SourceResult,
    derive_health_status,
)
from fliplab.sources import SOURCES, MarketplaceSource, get_source, order_source_ids, source_for_url
from fliplab.transport import AiohttpSender, HttpRequest, HttpResponse, HttpSender, RetryingTransport
from fliplab.url_builder import MarketplaceURLBuilder
from fliplab.validation import RequestValidator

logger = logging.getLogger(__name__)


def _envelope(response: HttpResponse) -> Dict[str, Any]:
    """Return the response body as an envelope dict (empty if malformed)."""
    return response.body if isinstance(response.body, dict) else {}


def _envelope_error(response: HttpResponse) -> str:
    body = _envelope(response)
    parts = [part for part in (body.get("error"), body.get("message")) if part]
    if parts:
        return ": ".join(str(part) for part in parts)
    return f"HTTP {response.status}"


def _error_kind(status: int) -> str:
    if status == 400:
        return ValidationError.kind
    if status == 404:
        return NotFoundError.kind
    return TransportError.kind


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_state(value: Any) -> ScraperState:
    try:
        return ScraperState(value)
    except ValueError:
        return ScraperState.ERROR


class SearchClient:
    """
    Typed client for the marketplace search service.

    Usage::

        async with SearchClient(settings) as client:
            result = await client.search_sources(None, {"query": "nike sneakers"})

    Attributes:
        settings: Client configuration
        transport: Retrying transport used for every call
        sources: Known marketplace sources keyed by source id
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        sender: Optional[HttpSender] = None,
        sources: Optional[Mapping[str, MarketplaceSource]] = None,
    ):
        self.settings = settings or get_client_settings()
        self._owned_sender = AiohttpSender() if sender is None else None
        self.transport = RetryingTransport(
            sender if sender is not None else self._owned_sender,
            config=self.settings.retry,
            base_url=self.settings.base_url,
            default_headers={"User-Agent": self.settings.user_agent},
        )
        self.sources: Dict[str, MarketplaceSource] = dict(sources or SOURCES)
        self.validator = RequestValidator()
        self.extractor = ListingExtractor()
        self.url_builder = MarketplaceURLBuilder()
        self.aggregator = ResponseAggregator()

    async def __aenter__(self) -> 'SearchClient':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Release the HTTP session, if the client created one."""
        if self._owned_sender is not None:
            await self._owned_sender.close()

    def get_config(self) -> ClientSettings:
        """Copy of the client configuration."""
        return replace(self.settings)

    def resolve_source(self, source_id: str) -> MarketplaceSource:
        source = get_source(source_id, self.sources)
        if source is None:
            raise ValidationError("sourceId", f"Unknown source '{source_id}'")
        return source

    def validate(self, request: Any) -> SearchRequest:
        """Validate a request, raising ValidationError before any dispatch."""
        result = self.validator.validate(request)
        if not result.ok:
            logger.warning(f"Rejected search request: {result.error}")
        return result.raise_for_error()

    async def search_source(
        self,
        source_id: str,
        request: Any,
        deadline: Optional[float] = None,
        request_id: Optional[str] = None,
    ) -> SourceResult:
        """
        Search one source.

        Args:
            source_id: Source id or route alias
            request: Raw request mapping or SearchRequest
            deadline: Optional overall budget in seconds for this source
            request_id: Correlation id; generated when absent

        Returns:
            SourceResult. Transport and service failures come back as a
            ``failed`` result rather than an exception.

        Raises:
            ValidationError: If the request or source id is invalid
        """
        search_request = self.validate(request)
        source = self.resolve_source(source_id)
        return await self._search_source(source, search_request, deadline, request_id)

    async def _search_source(
        self,
        source: MarketplaceSource,
        request: SearchRequest,
        deadline: Optional[float],
        request_id: Optional[str],
    ) -> SourceResult:
        request_id = current_or_new_request_id(request_id)
        search_url = self.url_builder.build_search_url(source, request)
        context = {"search_url": search_url, "request_id": request_id}

        logger.info(f"Searching {source.name}: {request.query!r}")
        try:
            response = await self.transport.execute(
                HttpRequest(
                    method="POST",
                    path=f"/api/search/{source.route}",
                    payload=request.to_payload(),
                    request_id=request_id,
                ),
                deadline=deadline,
            )
        except TransportError as e:
            logger.error(f"{source.name} search failed: {e}")
            return SourceResult.failed(source.source_id, ErrorInfo.from_exception(e), **context)

        body = _envelope(response)
        if not response.ok or not body.get("success"):
            message = _envelope_error(response)
            logger.error(f"{source.name} search rejected: {message}")
            error = ErrorInfo(kind=_error_kind(response.status), message=message, status=response.status, attempts=1)
            return SourceResult.failed(source.source_id, error, **context)

        data = body.get("data")
        if not isinstance(data, list):
            error = ErrorInfo(kind=TransportError.kind, message="Malformed search response", status=response.status)
            return SourceResult.failed(source.source_id, error, **context)

        items = self.extractor.extract_items(data, source)
        logger.info(f"Found {len(items)} items on {source.name}")
        return SourceResult.ok(source.source_id, items, **context)

    async def search_sources(
        self,
        source_ids: Optional[Iterable[str]],
        request: Any,
        deadline: Optional[float] = None,
    ) -> AggregatedResult:
        """
        Search several sources concurrently and aggregate the outcomes.

        Every source runs to completion; one source failing or exhausting its
        retries does not cancel the others.

        Args:
            source_ids: Sources to query, or None for every known source
            request: Raw request mapping or SearchRequest
            deadline: Optional per-source budget in seconds

        Returns:
            AggregatedResult, possibly with ``partial_failure=True``

        Raises:
            ValidationError: If the request or any source id is invalid
            TotalFailureError: If every requested source failed
        """
        search_request = self.validate(request)

        keys = list(self.sources) if source_ids is None else order_source_ids(source_ids, self.sources)
        selected = []
        for key in keys:
            source = self.resolve_source(key)
            if source not in selected:
                selected.append(source)
        if not selected:
            raise ValidationError("sourceIds", "At least one source is required")

        logger.info(f"Searching {len(selected)} sources: {[s.source_id for s in selected]}")
        outcomes = await asyncio.gather(
            *(self._search_source(source, search_request, deadline, None) for source in selected),
            return_exceptions=True,
        )

        source_results = []
        for source, outcome in zip(selected, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error(f"Unexpected error searching {source.name}: {outcome!r}")
                outcome = SourceResult.failed(source.source_id, ErrorInfo.from_exception(outcome))
            source_results.append(outcome)

        result = self.aggregator.aggregate(source_results)
        if not result.succeeded_sources:
            raise TotalFailureError(
                f"All {len(selected)} sources failed: {', '.join(result.failed_sources)}",
                result=result,
            )
        if result.partial_failure:
            logger.warning(f"Partial failure; failed sources: {result.failed_sources}")
        return result

    async def get_item_detail(self, url: str, deadline: Optional[float] = None) -> Optional[MarketplaceItem]:
        """
        Fetch one listing by URL.

        Args:
            url: Absolute listing URL on a known marketplace
            deadline: Optional overall budget in seconds

        Returns:
            The item, or None when the source has no record of it

        Raises:
            ValidationError: If the URL is invalid or belongs to no known source
            TransportError: If the service could not be reached
        """
        url = self.validator.validate_item_url(url).raise_for_error()
        source = source_for_url(url, self.sources)
        if source is None:
            raise ValidationError("url", "URL must be from Facebook Marketplace or Poshmark")

        try:
            data = await self._fetch_item_data(url, deadline)
        except NotFoundError as e:
            logger.info(str(e))
            return None

        item = self.extractor.extract_item(data, source)
        if item is None:
            logger.warning(f"Could not parse item details for {url}")
        return item

    async def _fetch_item_data(self, url: str, deadline: Optional[float]) -> Any:
        """Raw item record for ``url``; raises NotFoundError on 404 or ``data: null``."""
        response = await self.transport.execute(
            HttpRequest(method="POST", path="/api/item/details", payload={"url": url}),
            deadline=deadline,
        )
        body = _envelope(response)

        if response.status == 404:
            raise NotFoundError(f"Item not found: {url}")
        if response.status == 400:
            raise ValidationError("url", _envelope_error(response))
        if not response.ok or not body.get("success"):
            raise TransportError(_envelope_error(response), status=response.status, attempts=1, retryable=False)

        data = body.get("data")
        if data is None:
            raise NotFoundError(f"Item not found: {url}")
        return data

    async def check_health(self) -> HealthReport:
        """
        Probe service health.

        The overall status is derived from the per-source states: any
        ``error`` is unhealthy, any ``inactive`` is degraded. An unreachable
        service is reported as unhealthy rather than raised.
        """
        try:
            response = await self.transport.execute(HttpRequest(method="GET", path="/api/health"))
        except TransportError as e:
            logger.error(f"Failed to check scraper service health: {e}")
            return self._unreachable_health()

        data = _envelope(response).get("data")
        if not response.ok or not isinstance(data, dict):
            logger.warning(f"Scraper service health check returned {response.status}")
            return self._unreachable_health()

        scrapers = {
            str(name): _parse_state(state)
            for name, state in (data.get("scrapers") or {}).items()
        }
        memory = data.get("memory") or {}
        report = HealthReport(
            status=derive_health_status(scrapers),
            scrapers=scrapers,
            timestamp=_parse_timestamp(data.get("timestamp")),
            uptime=int(data.get("uptime") or 0),
            memory=MemoryUsage(
                used=int(memory.get("used") or 0),
                total=int(memory.get("total") or 0),
                percentage=int(memory.get("percentage") or 0),
            ),
        )
        if report.status != HealthStatus.HEALTHY:
            logger.warning(f"Scraper service is {report.status.value}: {data.get('scrapers')}")
        return report

    def _unreachable_health(self) -> HealthReport:
        scrapers = {source_id: ScraperState.ERROR for source_id in self.sources}
        return HealthReport(status=HealthStatus.UNHEALTHY, scrapers=scrapers)

    async def get_platform_status(self) -> Dict[str, Any]:
        """
        Per-source name, status and last check time.

        Raises:
            TransportError: If the service could not be reached or refused
        """
        response = await self.transport.execute(HttpRequest(method="GET", path="/api/platforms"))
        body = _envelope(response)
        if not response.ok or not body.get("success") or not isinstance(body.get("data"), dict):
            raise TransportError(_envelope_error(response), status=response.status, attempts=1, retryable=False)
        return body["data"]
