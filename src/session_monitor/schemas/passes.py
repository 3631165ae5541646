"""Pass summary schemas returned to the scheduler."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class ReconcileAction(str, Enum):
    """What the reconciler did with one session."""

    GROUND_TRUTH = "ground_truth"
    CONNECT = "connect"
    SKIPPED = "skipped"
    ERROR = "error"


class SessionOutcome(BaseModel):
    """Decision taken for one session in a reconciliation pass."""

    session_id: UUID
    tenant_id: UUID
    instance_name: str
    action: ReconcileAction
    success: bool = False
    needs_reauth: bool = False
    attempts: int = Field(default=0, description="Effective attempt count after this pass")
    message: str = ""


class ReconcileSummary(BaseModel):
    """Result of one reconciliation pass."""

    checked: int = Field(default=0, description="Recoverable sessions not opted out")
    qualified: int = Field(default=0, description="Sessions past their threshold")
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    needing_reauth: int = 0
    checked_at: datetime
    results: list[SessionOutcome] = Field(default_factory=list)


class AlertedSession(BaseModel):
    """One session line in a tenant alert."""

    session_id: UUID
    instance_name: str
    display_name: str | None = None
    phone_number: str | None = None
    status: str
    duration: str
    duration_minutes: int


class TenantAlertOutcome(BaseModel):
    """What happened to one tenant's alert."""

    tenant_id: UUID
    delivered: bool = False
    skipped: bool = Field(default=False, description="No recipient could be resolved")
    recipient: str | None = None
    recipient_source: str | None = None
    sessions: list[AlertedSession] = Field(default_factory=list)
    message: str = ""


class AlertSummary(BaseModel):
    """Result of one alert pass."""

    tenants_notified: int = 0
    sessions_included: int = 0
    tenants_skipped: int = Field(default=0, description="No recipient could be resolved")
    tenants_failed: int = Field(default=0, description="Delivery failed, retried next pass")
    checked_at: datetime
    tenants: list[TenantAlertOutcome] = Field(default_factory=list)
