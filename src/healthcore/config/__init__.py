"""Configuration management module.

This module provides:
- Environment-based configuration with validation
- Service-specific settings classes
- Cached settings access via get_settings()
"""

from .settings import (
    DatabaseSettings,
    Environment,
    GatewaySettings,
    LogFormat,
    LogLevel,
    NotifierSettings,
    RedisSettings,
    SessionMonitorSettings,
    Settings,
    get_settings,
)

__all__ = [
    # Main settings
    "Settings",
    "get_settings",
    # Enums
    "Environment",
    "LogLevel",
    "LogFormat",
    # Component settings
    "DatabaseSettings",
    "RedisSettings",
    "GatewaySettings",
    "NotifierSettings",
    # Service-specific settings
    "SessionMonitorSettings",
]
