"""Shared test fixtures.

Provides a scripted HTTP sender so client code can be exercised without a
network, and factories for raw listing payloads.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from fliplab.config import ClientSettings
from fliplab.error_handling import RetryConfig
from fliplab.search_client import SearchClient
from fliplab.transport import HttpResponse

Outcome = Union[HttpResponse, BaseException]


@dataclass
class SentRequest:
    method: str
    url: str
    payload: Any = None
    headers: Dict[str, str] = field(default_factory=dict)


class FakeSender:
    """
    Scripted stand-in for the aiohttp sender.

    Either replays ``outcomes`` in order (the last one repeats), or asks
    ``handler(method, url, payload)`` for each request. An outcome that is an
    exception is raised instead of returned.
    """

    def __init__(
        self,
        outcomes: Optional[List[Outcome]] = None,
        handler: Optional[Callable[[str, str, Any], Outcome]] = None,
    ):
        self.outcomes = list(outcomes or [])
        self.handler = handler
        self.calls: List[SentRequest] = []

    async def __call__(self, method, url, *, payload=None, headers=None):
        self.calls.append(SentRequest(method, url, payload, dict(headers or {})))

        if self.handler is not None:
            outcome = self.handler(method, url, payload)
        elif len(self.outcomes) > 1:
            outcome = self.outcomes.pop(0)
        else:
            outcome = self.outcomes[0]

        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def calls_to(self, suffix: str) -> List[SentRequest]:
        return [call for call in self.calls if call.url.endswith(suffix)]


def envelope(data: Any = None, status: int = 200, success: bool = True, **extra) -> HttpResponse:
    """Build a service response with the standard envelope."""
    body = {"success": success, "data": data, **extra}
    return HttpResponse(status=status, body=body)


def failure(status: int, error: str = "Search failed", message: str = "boom") -> HttpResponse:
    return HttpResponse(status=status, body={"success": False, "error": error, "message": message})


def item_payload(title: str = "Nike Air Max 90", price: Any = 85, platform: str = "facebook-marketplace", **extra) -> dict:
    url = (
        "https://www.facebook.com/marketplace/item/1"
        if platform == "facebook-marketplace"
        else "https://poshmark.com/listing/1"
    )
    payload = {
        "id": f"{platform}-{title}".replace(" ", "-"),
        "title": title,
        "price": price,
        "currency": "USD",
        "images": [],
        "url": url,
        "platform": platform,
        "scrapedAt": "2024-01-15T12:00:00Z",
    }
    payload.update(extra)
    return payload


@pytest.fixture
def fast_settings() -> ClientSettings:
    """Client settings with a short retry budget."""
    return ClientSettings(
        base_url="http://scraper.test",
        retry=RetryConfig(max_attempts=3, base_delay_ms=10, timeout_per_attempt_ms=1000),
    )


@pytest.fixture
def make_client(fast_settings):
    """Factory for a SearchClient wired to a FakeSender."""

    def _make(sender: FakeSender, settings: Optional[ClientSettings] = None) -> SearchClient:
        return SearchClient(settings or fast_settings, sender=sender)

    return _make
