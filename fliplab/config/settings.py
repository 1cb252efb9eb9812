"""Configuration settings for the FlipLab search client and service."""

from dataclasses import dataclass, field, replace
import os

from fliplab.error_handling.error_handler import RetryConfig


@dataclass(frozen=True)
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "console"


@dataclass(frozen=True)
class ClientSettings:
    """Search client configuration."""
    base_url: str = "http://localhost:3001"
    user_agent: str = "FlipLab-Scraper-Client/1.0.0"
    retry: RetryConfig = field(default_factory=RetryConfig)
    logging: LogConfig = field(default_factory=LogConfig)

    def with_retry(self, **changes) -> 'ClientSettings':
        """Copy of these settings with retry fields replaced."""
        return replace(self, retry=replace(self.retry, **changes))


@dataclass(frozen=True)
class ServiceSettings:
    """Reference search service configuration."""
    host: str = "0.0.0.0"
    port: int = 3001
    environment: str = "development"
    cors_origin: str = "http://localhost:3000"
    scraper_timeout_ms: int = 30000
    rate_limit_window_ms: int = 900000
    rate_limit_max_requests: int = 100
    rate_limit_message: str = "Too many requests from this IP, please try again later."
    logging: LogConfig = field(default_factory=LogConfig)

    def __post_init__(self):
        """Validate configuration values."""
        if self.port < 1 or self.port > 65535:
            raise ValueError("Invalid PORT configuration. Must be between 1 and 65535.")
        if self.scraper_timeout_ms < 1000:
            raise ValueError("Invalid SCRAPER_TIMEOUT_MS configuration. Must be at least 1000ms.")
        if self.rate_limit_max_requests < 1:
            raise ValueError("Invalid RATE_LIMIT_MAX_REQUESTS configuration. Must be at least 1.")
        if self.rate_limit_window_ms < 1000:
            raise ValueError("Invalid RATE_LIMIT_WINDOW_MS configuration. Must be at least 1000ms.")

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


def load_client_config() -> dict:
    return {
        "base_url": os.getenv("SCRAPER_BASE_URL", "http://localhost:3001"),
        "user_agent": os.getenv("SCRAPER_CLIENT_USER_AGENT", "FlipLab-Scraper-Client/1.0.0"),
        "retry_config": {
            "max_attempts": int(os.getenv("SCRAPER_RETRY_ATTEMPTS", "3")),
            "base_delay_ms": int(os.getenv("SCRAPER_RETRY_DELAY_MS", "1000")),
            "timeout_per_attempt_ms": int(os.getenv("SCRAPER_TIMEOUT_MS", "30000")),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "format": os.getenv("LOG_FORMAT", "console"),
        },
    }


def load_service_config() -> dict:
    return {
        "host": os.getenv("HOST", "0.0.0.0"),
        "port": int(os.getenv("PORT", "3001")),
        "environment": os.getenv("APP_ENV", os.getenv("NODE_ENV", "development")),
        "cors_origin": os.getenv("CORS_ORIGIN", "http://localhost:3000"),
        "scraper_timeout_ms": int(os.getenv("SCRAPER_TIMEOUT_MS", "30000")),
        "rate_limit_window_ms": int(os.getenv("RATE_LIMIT_WINDOW_MS", "900000")),
        "rate_limit_max_requests": int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100")),
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "format": os.getenv("LOG_FORMAT", "console"),
        },
    }


# Default configuration, read from the environment at import time
CLIENT_CONFIG = load_client_config()
SERVICE_CONFIG = load_service_config()


def get_client_settings(config: dict = None) -> ClientSettings:
    """Build ClientSettings from a config dict (defaults to CLIENT_CONFIG)."""
    config = config or CLIENT_CONFIG
    return ClientSettings(
        base_url=config["base_url"],
        user_agent=config["user_agent"],
        retry=RetryConfig(**config["retry_config"]),
        logging=LogConfig(**config["logging"]),
    )


def get_service_settings(config: dict = None) -> ServiceSettings:
    """Build ServiceSettings from a config dict (defaults to SERVICE_CONFIG)."""
    config = dict(config or SERVICE_CONFIG)
    config["logging"] = LogConfig(**config.get("logging", {}))
    return ServiceSettings(**config)

