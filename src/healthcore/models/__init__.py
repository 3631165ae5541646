"""Shared data models for the session health service.

All models follow these conventions:
- Timestamps: ISO 8601 format with timezone (UTC)
- IDs: UUID v4 (outage episodes use a monotonically increasing integer)
- Field names: lowercase snake_case
"""

# Base
from .base import HealthBaseModel

# Event models
from .events import Event, EventType

# Gateway results
from .gateway import ConnectResult, GatewayState, GatewayStatus

# Session domain
from .session import (
    AwaitingReauth,
    ChannelSession,
    Connected,
    Connecting,
    Disconnected,
    EpisodeResolution,
    ManuallyDisconnected,
    OutageEpisode,
    SessionState,
    SessionStatus,
)

__all__ = [
    # Base
    "HealthBaseModel",
    # Session
    "AwaitingReauth",
    "ChannelSession",
    "Connected",
    "Connecting",
    "Disconnected",
    "EpisodeResolution",
    "ManuallyDisconnected",
    "OutageEpisode",
    "SessionState",
    "SessionStatus",
    # Gateway
    "ConnectResult",
    "GatewayState",
    "GatewayStatus",
    # Events
    "Event",
    "EventType",
]
