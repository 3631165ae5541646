"""Event models for session state notifications.

Events are ephemeral: published on Redis pub/sub, never persisted.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import Field

from .base import HealthBaseModel


class EventType(str, Enum):
    """Event types published by the session health service."""

    SESSION_STATUS_CHANGED = "SESSION_STATUS_CHANGED"
    SESSION_RECONNECTED = "SESSION_RECONNECTED"
    SESSION_REAUTH_REQUIRED = "SESSION_REAUTH_REQUIRED"
    SESSION_ALERT_SENT = "SESSION_ALERT_SENT"


class Event(HealthBaseModel):
    """Base event model."""

    event_id: UUID
    event_type: EventType
    tenant_id: UUID | None = None
    session_id: UUID | None = None
    timestamp: datetime
    payload: dict[str, Any] = Field(
        default_factory=dict, description="Event-specific payload"
    )
