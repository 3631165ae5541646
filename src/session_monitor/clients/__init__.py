"""Outbound clients: messaging gateway, email notifier, rate limiting."""

from .gateway import (
    GatewayError,
    GatewayHTTPError,
    GatewayTimeoutError,
    GatewayUnavailableError,
    SessionGateway,
    SessionGatewayClient,
)
from .notifier import EmailNotifier, Notifier, NotifierError
from .rate_limiter import TokenBucket

__all__ = [
    "EmailNotifier",
    "GatewayError",
    "GatewayHTTPError",
    "GatewayTimeoutError",
    "GatewayUnavailableError",
    "Notifier",
    "NotifierError",
    "SessionGateway",
    "SessionGatewayClient",
    "TokenBucket",
]
