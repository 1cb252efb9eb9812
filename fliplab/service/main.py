"""
FastAPI application for the FlipLab search service.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Mapping, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from fliplab.config import ServiceSettings, get_service_settings, load_service_config
from fliplab.error_handling import ValidationError
from fliplab.logging_setup import new_request_id, reset_request_id, set_request_id, setup_logging
from fliplab.rate_limiting import RateLimiter
from fliplab.service.envelope import error_response, success_body
from fliplab.service.providers import ListingProvider, default_providers
from fliplab.service.registry import SourceRegistry
from fliplab.service.routers import scraper
from fliplab.transport import REQUEST_ID_HEADER

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or "unknown"


def _with_request_id(request: Request, response):
    response.headers[REQUEST_ID_HEADER] = _request_id(request)
    return response


def create_app(
    settings: Optional[ServiceSettings] = None,
    providers: Optional[Mapping[str, ListingProvider]] = None,
) -> FastAPI:
    """
    Build the search service application.

    Args:
        settings: Service configuration (defaults to the environment)
        providers: Listing provider per source id (defaults to the sample catalogs)

    Returns:
        Configured FastAPI app. ``app.state.registry`` holds the source registry.
    """
    settings = settings or get_service_settings()
    setup_logging(settings.logging.level, settings.logging.format)

    registry = SourceRegistry(providers if providers is not None else default_providers())
    rate_limiter = RateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_ms / 1000,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events"""
        logger.info("Starting FlipLab search service...")
        await registry.initialize()
        logger.info(f"Environment: {settings.environment}")

        yield

        logger.info("Shutting down FlipLab search service...")
        await registry.cleanup()

    app = FastAPI(
        title="FlipLab Search API",
        description="Marketplace search across Facebook Marketplace and Poshmark",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.rate_limiter = rate_limiter

    # Added innermost first: logging, then rate limiting, then request id
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"{request.method} {request.url.path} - {response.status_code} ({duration_ms:.0f}ms)",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round(duration_ms),
            },
        )
        return response

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        client_key = request.client.host if request.client else "unknown"
        if not rate_limiter.consume(client_key):
            logger.warning(f"Rate limit exceeded for {client_key}")
            response = error_response(429, "Rate limit exceeded", settings.rate_limit_message)
            response.headers["Retry-After"] = str(int(rate_limiter.retry_after(client_key)) + 1)
            return response
        return await call_next(request)

    @app.middleware("http")
    async def request_id(request: Request, call_next):
        rid = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
        request.state.request_id = rid
        token = set_request_id(rid)
        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)
        response.headers[REQUEST_ID_HEADER] = rid
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.cors_origin.split(",")],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
    )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        logger.info(f"Rejected {request.method} {request.url.path}: {exc}")
        return error_response(400, "Validation error", str(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error_response(
                404,
                "Endpoint not found",
                f"The requested endpoint {request.url.path} does not exist",
            )
        return error_response(exc.status_code, "Request failed", str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        message = str(exc) if settings.is_development else "An unexpected error occurred"
        response = error_response(500, "Internal server error", message, request_id=_request_id(request))
        return _with_request_id(request, response)

    @app.get("/")
    async def root():
        """Root endpoint"""
        body = success_body(message="FlipLab search service is running")
        body["version"] = VERSION
        return body

    app.include_router(scraper.router, prefix="/api", tags=["search"])

    return app


def app_factory() -> FastAPI:
    """Uvicorn factory: load ``.env`` and build the app from the environment."""
    load_dotenv()
    return create_app(get_service_settings(load_service_config()))
