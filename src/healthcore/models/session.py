"""Channel session domain models.

A session's lifecycle is an explicit tagged union. The persisted row keeps
a status column plus independent flags; every write goes through one of
the state classes below so contradictory combinations (re-auth pending on
a connected session, say) cannot be produced.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import ConfigDict, Field

from .base import HealthBaseModel


class SessionStatus(str, Enum):
    """Persisted session status."""

    CONNECTED = "connected"
    CONNECTING = "connecting"
    DISCONNECTED = "disconnected"
    AWAITING_REAUTH = "awaiting_reauth"
    ERROR = "error"


class EpisodeResolution(str, Enum):
    """How an outage episode ended."""

    RECONNECTED = "reconnected"
    REAUTH_REQUIRED = "reauth_required"
    MANUAL_DISCONNECT = "manual_disconnect"


class _State(HealthBaseModel):
    model_config = ConfigDict(frozen=True)


class Connected(_State):
    """Session is open on the gateway."""

    kind: Literal["connected"] = "connected"


class Connecting(_State):
    """Session is negotiating; ``since`` is the start of the outage, if known."""

    kind: Literal["connecting"] = "connecting"
    since: datetime | None = None


class Disconnected(_State):
    """Session dropped without user action. ``errored`` maps to status ``error``."""

    kind: Literal["disconnected"] = "disconnected"
    since: datetime
    errored: bool = False


class AwaitingReauth(_State):
    """Automation gave up; a human has to re-pair the session."""

    kind: Literal["awaiting_reauth"] = "awaiting_reauth"
    since: datetime | None = None


class ManuallyDisconnected(_State):
    """User switched the session off; automation leaves it alone."""

    kind: Literal["manually_disconnected"] = "manually_disconnected"
    since: datetime | None = None


SessionState = Annotated[
    Union[Connected, Connecting, Disconnected, AwaitingReauth, ManuallyDisconnected],
    Field(discriminator="kind"),
]


class ChannelSession(HealthBaseModel):
    """Read model of a persisted channel session."""

    id: UUID
    tenant_id: UUID
    instance_name: str
    display_name: str | None = None
    phone_number: str | None = None
    status: SessionStatus
    disconnected_since: datetime | None = None
    reconnect_attempts_count: int = Field(default=0, ge=0)
    last_reconnect_attempt_at: datetime | None = None
    manual_disconnect: bool = False
    awaiting_reauth: bool = False
    alert_sent_for_current_disconnect: bool = False
    last_alert_sent_at: datetime | None = None
    current_episode_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class OutageEpisode(HealthBaseModel):
    """Read model of an outage episode."""

    id: int
    session_id: UUID
    tenant_id: UUID
    started_at: datetime
    ended_at: datetime | None = None
    alerted_at: datetime | None = None
    resolution: EpisodeResolution | None = None
