"""Data access repositories."""

from .notification_log_repository import NotificationLogRepository
from .session_repository import SessionRepository
from .tenant_repository import TenantRepository

__all__ = [
    "NotificationLogRepository",
    "SessionRepository",
    "TenantRepository",
]
