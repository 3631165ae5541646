"""Initial schema creation.

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Tables:
- tenants, tenant_profiles: tenant directory (read by alert routing)
- channel_sessions: one row per messaging gateway session
- outage_episodes: one row per outage of a session
- notification_logs: append-only audit of alerts and recovery passes
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # =========================================================================
    # Tenant directory
    # =========================================================================

    op.create_table(
        "tenants",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("contact_email", sa.String(320), nullable=True),
        sa.Column("admin_profile_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "tenant_profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="agent"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "role IN ('owner', 'admin', 'manager', 'agent')",
            name="valid_profile_role",
        ),
    )
    op.create_index("idx_tenant_profiles_tenant_id", "tenant_profiles", ["tenant_id"])

    # =========================================================================
    # Channel sessions
    # =========================================================================

    op.create_table(
        "channel_sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("instance_name", sa.String(128), unique=True, nullable=False),
        sa.Column("display_name", sa.String(128), nullable=True),
        sa.Column("phone_number", sa.String(32), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="connecting"),
        sa.Column("disconnected_since", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "reconnect_attempts_count", sa.Integer, nullable=False, server_default="0"
        ),
        sa.Column("last_reconnect_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("manual_disconnect", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("awaiting_reauth", sa.Boolean, nullable=False, server_default="false"),
        sa.Column(
            "alert_sent_for_current_disconnect",
            sa.Boolean,
            nullable=False,
            server_default="false",
        ),
        sa.Column("last_alert_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_episode_id", sa.Integer, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "status IN ('connected', 'connecting', 'disconnected', 'awaiting_reauth', 'error')",
            name="valid_session_status",
        ),
        sa.CheckConstraint("reconnect_attempts_count >= 0", name="non_negative_attempts"),
    )
    op.create_index("idx_channel_sessions_tenant_id", "channel_sessions", ["tenant_id"])
    op.create_index("idx_channel_sessions_status", "channel_sessions", ["status"])

    op.create_table(
        "outage_episodes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "session_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("channel_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("alerted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolution", sa.String(32), nullable=True),
        sa.CheckConstraint(
            "resolution IS NULL OR resolution IN "
            "('reconnected', 'reauth_required', 'manual_disconnect')",
            name="valid_episode_resolution",
        ),
    )
    op.create_index("idx_outage_episodes_session_id", "outage_episodes", ["session_id"])

    # =========================================================================
    # Audit
    # =========================================================================

    op.create_table(
        "notification_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("event_key", sa.String(255), nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("email_sent_to", sa.String(320), nullable=False),
        sa.Column("metadata", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_notification_logs_event", "notification_logs", ["event_type", "event_key"]
    )


def downgrade() -> None:
    op.drop_table("notification_logs")
    op.drop_table("outage_episodes")
    op.drop_table("channel_sessions")
    op.drop_table("tenant_profiles")
    op.drop_table("tenants")
