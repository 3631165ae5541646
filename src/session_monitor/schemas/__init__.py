"""API and pass summary schemas."""

from .passes import (
    AlertedSession,
    AlertSummary,
    ReconcileAction,
    ReconcileSummary,
    SessionOutcome,
    TenantAlertOutcome,
)
from .session import (
    GatewayStateReport,
    SessionCreateRequest,
    SessionDetailResponse,
    SessionListResponse,
    SessionResponse,
)

__all__ = [
    "AlertedSession",
    "AlertSummary",
    "GatewayStateReport",
    "ReconcileAction",
    "ReconcileSummary",
    "SessionCreateRequest",
    "SessionDetailResponse",
    "SessionListResponse",
    "SessionOutcome",
    "SessionResponse",
    "TenantAlertOutcome",
]
