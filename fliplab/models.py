"""
Data models for FlipLab search.

Wire models (what crosses the HTTP boundary) are pydantic models with
camelCase aliases. Results produced inside the client are plain dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class SortBy(str, Enum):
    """Sort orders understood by the search service."""
    RELEVANCE = "relevance"
    PRICE_LOW = "price-low"
    PRICE_HIGH = "price-high"
    DATE = "date"
    DISTANCE = "distance"


class Platform(str, Enum):
    """Marketplace a listing came from."""
    FACEBOOK_MARKETPLACE = "facebook-marketplace"
    POSHMARK = "poshmark"


class SourceStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"


class ScraperState(str, Enum):
    """State a source reports in the service health check."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class SearchRequest(BaseModel):
    """Caller-supplied search intent.

    Accepts either the camelCase wire names (``priceMin``) or the Python
    attribute names (``price_min``).
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    query: str = Field(min_length=1, max_length=200)
    category: Optional[str] = Field(default=None, max_length=100)
    location: Optional[str] = Field(default=None, max_length=100)
    condition: Optional[str] = Field(default=None, max_length=100)
    price_min: Optional[float] = Field(default=None, alias="priceMin", ge=0, le=100000)
    price_max: Optional[float] = Field(default=None, alias="priceMax", ge=0, le=100000)
    sort_by: SortBy = Field(default=SortBy.RELEVANCE, alias="sortBy")
    limit: int = Field(default=20, ge=1, le=100)

    @field_validator("query", mode="before")
    @classmethod
    def _strip_query(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("price_max")
    @classmethod
    def _check_price_range(cls, value: Optional[float], info: ValidationInfo) -> Optional[float]:
        price_min = info.data.get("price_min")
        if value is not None and price_min is not None and price_min > value:
            raise ValueError("priceMin must be less than or equal to priceMax")
        return value

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the JSON body sent to the service."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class MarketplaceItem(BaseModel):
    """A single marketplace listing.

    ``price`` is never negative. A price of 0 means the source price could
    not be parsed, not that the item is free.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    title: str
    price: float = Field(ge=0)
    original_price: Optional[float] = Field(default=None, alias="originalPrice", ge=0)
    currency: str = "USD"
    description: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    location: Optional[str] = None
    seller: Optional[str] = None
    condition: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    tags: Optional[List[str]] = None
    url: str
    platform: Platform
    scraped_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="scrapedAt"
    )
    metadata: Optional[Dict[str, Any]] = None

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the wire representation."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


@dataclass(frozen=True)
class ErrorInfo:
    """Why a source failed.

    Attributes:
        kind: Error family (validation, transport, not_found, total_failure)
        message: Human-readable description
        status: HTTP status, when the failure came from a response
        attempts: Transport attempts consumed
    """
    kind: str
    message: str
    status: Optional[int] = None
    attempts: int = 0

    @classmethod
    def from_exception(cls, error: BaseException) -> 'ErrorInfo':
        return cls(
            kind=getattr(error, "kind", "error"),
            message=str(error),
            status=getattr(error, "status", None),
            attempts=getattr(error, "attempts", 0),
        )

    def to_dict(self) -> dict:
        data = {"kind": self.kind, "message": self.message, "attempts": self.attempts}
        if self.status is not None:
            data["status"] = self.status
        return data


@dataclass(frozen=True)
class SourceResult:
    """Outcome of querying one source. Immutable once built."""
    source_id: str
    status: SourceStatus
    items: Tuple[MarketplaceItem, ...] = ()
    error: Optional[ErrorInfo] = None
    search_url: Optional[str] = None
    request_id: Optional[str] = None

    @classmethod
    def ok(cls, source_id: str, items, **kwargs) -> 'SourceResult':
        return cls(source_id=source_id, status=SourceStatus.OK, items=tuple(items), **kwargs)

    @classmethod
    def failed(cls, source_id: str, error: ErrorInfo, **kwargs) -> 'SourceResult':
        return cls(source_id=source_id, status=SourceStatus.FAILED, items=(), error=error, **kwargs)

    @property
    def is_ok(self) -> bool:
        return self.status == SourceStatus.OK

    def to_dict(self) -> dict:
        data = {
            "sourceId": self.source_id,
            "status": self.status.value,
            "items": [item.to_payload() for item in self.items],
        }
        if self.error is not None:
            data["error"] = self.error.to_dict()
        if self.search_url:
            data["searchUrl"] = self.search_url
        if self.request_id:
            data["requestId"] = self.request_id
        return data


@dataclass(frozen=True)
class AggregatedResult:
    """Merged outcome of a multi-source search.

    Attributes:
        results: Per-source outcome keyed by source id, in dispatch order
        combined_items: Items of every ok source, dispatch order then source order
        total_count: Number of items across ok sources
        partial_failure: True when some but not all sources failed
    """
    results: Mapping[str, SourceResult]
    combined_items: Tuple[MarketplaceItem, ...]
    total_count: int
    partial_failure: bool

    @property
    def failed_sources(self) -> List[str]:
        return [sid for sid, result in self.results.items() if not result.is_ok]

    @property
    def succeeded_sources(self) -> List[str]:
        return [sid for sid, result in self.results.items() if result.is_ok]

    def to_dict(self) -> dict:
        return {
            "results": {sid: result.to_dict() for sid, result in self.results.items()},
            "combinedItems": [item.to_payload() for item in self.combined_items],
            "totalCount": self.total_count,
            "partialFailure": self.partial_failure,
        }


@dataclass(frozen=True)
class PriceStats:
    """Summary statistics over item prices."""
    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    median: float = 0.0
    count: int = 0


@dataclass(frozen=True)
class MemoryUsage:
    used: int = 0
    total: int = 0
    percentage: int = 0


@dataclass(frozen=True)
class HealthReport:
    """Decoded ``/api/health`` payload."""
    status: HealthStatus
    scrapers: Dict[str, ScraperState] = field(default_factory=dict)
    timestamp: Optional[datetime] = None
    uptime: int = 0
    memory: MemoryUsage = field(default_factory=MemoryUsage)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "uptime": self.uptime,
            "memory": {
                "used": self.memory.used,
                "total": self.memory.total,
                "percentage": self.memory.percentage,
            },
            "scrapers": {name: state.value for name, state in self.scrapers.items()},
        }


def derive_health_status(scrapers: Mapping[str, ScraperState]) -> HealthStatus:
    """Overall status from per-source states.

    Any ``error`` makes the service unhealthy; otherwise any ``inactive``
    makes it degraded.
    """
    states = set(scrapers.values())
    if ScraperState.ERROR in states:
        return HealthStatus.UNHEALTHY
    if ScraperState.INACTIVE in states:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY
