"""SQLAlchemy ORM models.

Tenants and profiles are owned by the provisioning side of the platform;
this service only reads them to resolve alert recipients.
"""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from healthcore.clock import SystemClock

from .base import Base, UTCDateTime

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return SystemClock().now()


# =============================================================================
# Tenant directory (read-only)
# =============================================================================


class TenantModel(Base):
    """Tenant owning one or more messaging channels."""

    __tablename__ = "tenants"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_email: Mapped[str | None] = mapped_column(String(320))
    admin_profile_id: Mapped[UUID | None] = mapped_column(Uuid)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)

    profiles: Mapped[list["TenantProfileModel"]] = relationship(
        back_populates="tenant", cascade="all, delete-orphan"
    )


class TenantProfileModel(Base):
    """User profile belonging to a tenant."""

    __tablename__ = "tenant_profiles"
    __table_args__ = (
        CheckConstraint(
            "role IN ('owner', 'admin', 'manager', 'agent')",
            name="valid_profile_role",
        ),
        Index("idx_tenant_profiles_tenant_id", "tenant_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    full_name: Mapped[str | None] = mapped_column(String(255))
    email: Mapped[str | None] = mapped_column(String(320))
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="agent")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)

    tenant: Mapped["TenantModel"] = relationship(back_populates="profiles")


# =============================================================================
# Channel sessions
# =============================================================================


class ChannelSessionModel(Base):
    """Persisted state of one tenant's messaging gateway session.

    ``status`` and the ``manual_disconnect``/``awaiting_reauth`` flags are
    only ever written together through a session state, see
    ``session_monitor.services.transitions``.
    """

    __tablename__ = "channel_sessions"
    __table_args__ = (
        CheckConstraint(
            "status IN ('connected', 'connecting', 'disconnected', 'awaiting_reauth', 'error')",
            name="valid_session_status",
        ),
        CheckConstraint("reconnect_attempts_count >= 0", name="non_negative_attempts"),
        Index("idx_channel_sessions_tenant_id", "tenant_id"),
        Index("idx_channel_sessions_status", "status"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    instance_name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(128))
    phone_number: Mapped[str | None] = mapped_column(String(32))

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="connecting")
    disconnected_since: Mapped[datetime | None] = mapped_column(UTCDateTime)
    reconnect_attempts_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reconnect_attempt_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    manual_disconnect: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    awaiting_reauth: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    alert_sent_for_current_disconnect: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    last_alert_sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    current_episode_id: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)

    episodes: Mapped[list["OutageEpisodeModel"]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )


class OutageEpisodeModel(Base):
    """One outage of a session, from leaving connected until it is resolved."""

    __tablename__ = "outage_episodes"
    __table_args__ = (
        CheckConstraint(
            "resolution IS NULL OR resolution IN "
            "('reconnected', 'reauth_required', 'manual_disconnect')",
            name="valid_episode_resolution",
        ),
        Index("idx_outage_episodes_session_id", "session_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("channel_sessions.id", ondelete="CASCADE"), nullable=False
    )
    tenant_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    alerted_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    resolution: Mapped[str | None] = mapped_column(String(32))

    session: Mapped["ChannelSessionModel"] = relationship(back_populates="episodes")


# =============================================================================
# Audit
# =============================================================================


class NotificationLogModel(Base):
    """Append-only audit entry for alerts and automated recovery passes."""

    __tablename__ = "notification_logs"
    __table_args__ = (
        Index("idx_notification_logs_event", "event_type", "event_key"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    event_key: Mapped[str] = mapped_column(String(255), nullable=False)
    tenant_id: Mapped[UUID | None] = mapped_column(Uuid)
    email_sent_to: Mapped[str] = mapped_column(String(320), nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)
