"""
HTTP transport with bounded retries.

The transport is built on a pluggable sender: any async callable that takes
``(method, url, payload=..., headers=...)`` and returns an HttpResponse. The
default sender wraps a lazily created aiohttp ClientSession.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional

import aiohttp

from fliplab.error_handling import ErrorHandler, RetryConfig, TransportError
from fliplab.logging_setup import current_or_new_request_id, reset_request_id, set_request_id

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@dataclass(frozen=True)
class HttpRequest:
    method: str
    path: str
    payload: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    request_id: Optional[str] = None


@dataclass(frozen=True)
class HttpResponse:
    status: int
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


HttpSender = Callable[..., Awaitable[HttpResponse]]


def is_retryable_status(status: int) -> bool:
    """5xx and 429 are worth retrying; every other status is final."""
    return status >= 500 or status == 429


class AiohttpSender:
    """Sends requests through a shared aiohttp ClientSession."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._session = session
        self._owns_session = session is None

    async def _ensure_session(self):
        """Ensure we have an open session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

    async def __call__(
        self,
        method: str,
        url: str,
        *,
        payload: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> HttpResponse:
        await self._ensure_session()

        async with self._session.request(method, url, json=payload, headers=dict(headers or {})) as response:
            text = await response.text()
            body = None
            if text:
                try:
                    body = json.loads(text)
                except ValueError:
                    logger.debug(f"Non-JSON response body from {method} {url}")
            return HttpResponse(
                status=response.status,
                body=body,
                headers=dict(response.headers),
                text=text,
            )

    async def close(self):
        """Close the session if this sender created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class RetryingTransport:
    """
    Executes HTTP requests with bounded retry and linear backoff.

    Network errors, timeouts, 5xx and 429 responses are retried. Any other
    response, including 4xx, is returned to the caller after a single attempt.

    Attributes:
        sender: Async callable performing one HTTP exchange
        config: Retry configuration
        base_url: Prefix joined to every request path
    """

    def __init__(
        self,
        sender: HttpSender,
        config: Optional[RetryConfig] = None,
        base_url: str = "",
        default_headers: Optional[Mapping[str, str]] = None,
    ):
        self.sender = sender
        self.config = config or RetryConfig()
        self.base_url = base_url.rstrip("/")
        self.default_headers = dict(default_headers or {})
        self.error_handler = ErrorHandler(self.config)

    def build_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def execute(self, request: HttpRequest, deadline: Optional[float] = None) -> HttpResponse:
        """
        Send ``request``, retrying transient failures.

        Args:
            request: Request to send
            deadline: Optional overall budget in seconds for all attempts

        Returns:
            The first non-retryable response (2xx, 3xx or 4xx other than 429)

        Raises:
            TransportError: With ``exhausted=True`` once the budget is spent
        """
        request_id = current_or_new_request_id(request.request_id)
        headers = {
            **self.default_headers,
            "Content-Type": "application/json",
            **request.headers,
            REQUEST_ID_HEADER: request_id,
        }
        url = self.build_url(request.path)

        async def attempt(attempt_number: int, timeout: float) -> HttpResponse:
            return await self._attempt(request.method, url, request.payload, headers, timeout)

        token = set_request_id(request_id)
        try:
            return await self.error_handler.retry_with_backoff(
                attempt,
                operation_name=f"{request.method} {request.path}",
                deadline=deadline,
            )
        finally:
            reset_request_id(token)

    async def _attempt(
        self,
        method: str,
        url: str,
        payload: Any,
        headers: Mapping[str, str],
        timeout: float,
    ) -> HttpResponse:
        try:
            response = await asyncio.wait_for(
                self.sender(method, url, payload=payload, headers=headers),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransportError(f"Request timed out after {timeout:.1f}s") from e
        except (aiohttp.ClientError, OSError) as e:
            raise TransportError(f"Network error: {type(e).__name__}: {e}") from e

        if is_retryable_status(response.status):
            raise TransportError(
                f"HTTP {response.status}: {_describe(response)}",
                status=response.status,
            )
        return response


def _describe(response: HttpResponse) -> str:
    body = response.body
    if isinstance(body, Mapping):
        return str(body.get("message") or body.get("error") or "")
    return response.text[:200]
