"""Configuration module for the FlipLab search client and service."""

from .settings import (
    CLIENT_CONFIG,
    SERVICE_CONFIG,
    ClientSettings,
    ServiceSettings,
    LogConfig,
    get_client_settings,
    get_service_settings,
    load_client_config,
    load_service_config,
)

__all__ = [
    'CLIENT_CONFIG',
    'SERVICE_CONFIG',
    'ClientSettings',
    'ServiceSettings',
    'LogConfig',
    'get_client_settings',
    'get_service_settings',
    'load_client_config',
    'load_service_config',
]
