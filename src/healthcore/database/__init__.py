"""Database configuration and models."""

from .base import Base, UTCDateTime, create_engine, create_session_factory
from .models import (
    ChannelSessionModel,
    NotificationLogModel,
    OutageEpisodeModel,
    TenantModel,
    TenantProfileModel,
)

__all__ = [
    # Base
    "Base",
    "UTCDateTime",
    "create_engine",
    "create_session_factory",
    # Tenant directory
    "TenantModel",
    "TenantProfileModel",
    # Sessions
    "ChannelSessionModel",
    "OutageEpisodeModel",
    # Audit
    "NotificationLogModel",
]
