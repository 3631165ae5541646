"""Session state transitions.

Rows are read into a ``SessionState`` and written back from one, so the
status column and the opt-out flags always move together. Automation may
only use ``reconnected``, ``start_connecting``, ``dropped`` and
``require_reauth``; the user-facing transitions live alongside them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from healthcore.database import ChannelSessionModel
from healthcore.models import (
    AwaitingReauth,
    Connected,
    Connecting,
    Disconnected,
    EpisodeResolution,
    ManuallyDisconnected,
    SessionState,
    SessionStatus,
)


class InvalidTransitionError(Exception):
    """Raised when a transition is not allowed from the current state."""

    def __init__(self, current: SessionState, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move session from {current.kind} to {target}")


def state_of(row: ChannelSessionModel) -> SessionState:
    """Read the state of a persisted row.

    The opt-out flags win over the status column, so rows written before
    the flags and status were kept in lockstep still load as the stricter
    state.
    """
    since = row.disconnected_since
    if row.manual_disconnect:
        return ManuallyDisconnected(since=since)
    if row.awaiting_reauth or row.status == SessionStatus.AWAITING_REAUTH:
        return AwaitingReauth(since=since)
    if row.status == SessionStatus.CONNECTED:
        return Connected()
    if row.status == SessionStatus.CONNECTING:
        return Connecting(since=since)
    # No recorded outage start: the last write is the best lower bound
    return Disconnected(
        since=since or row.updated_at or row.created_at,
        errored=row.status == SessionStatus.ERROR,
    )


def columns_for(state: SessionState) -> dict[str, Any]:
    """Persisted columns that encode ``state``."""
    if isinstance(state, Connected):
        return {
            "status": SessionStatus.CONNECTED.value,
            "disconnected_since": None,
            "manual_disconnect": False,
            "awaiting_reauth": False,
        }
    if isinstance(state, Connecting):
        return {
            "status": SessionStatus.CONNECTING.value,
            "disconnected_since": state.since,
            "manual_disconnect": False,
            "awaiting_reauth": False,
        }
    if isinstance(state, Disconnected):
        return {
            "status": (SessionStatus.ERROR if state.errored else SessionStatus.DISCONNECTED).value,
            "disconnected_since": state.since,
            "manual_disconnect": False,
            "awaiting_reauth": False,
        }
    if isinstance(state, AwaitingReauth):
        return {
            "status": SessionStatus.AWAITING_REAUTH.value,
            "disconnected_since": state.since,
            "manual_disconnect": False,
            "awaiting_reauth": True,
        }
    if isinstance(state, ManuallyDisconnected):
        return {
            "status": SessionStatus.DISCONNECTED.value,
            "disconnected_since": state.since,
            "manual_disconnect": True,
            "awaiting_reauth": False,
        }
    raise TypeError(f"Unknown session state: {state!r}")


def outage_start(state: SessionState) -> datetime | None:
    return getattr(state, "since", None)


def opens_episode(state: SessionState) -> bool:
    return isinstance(state, (Connecting, Disconnected))


def closing_resolution(state: SessionState) -> EpisodeResolution | None:
    """Resolution recorded on the open episode when entering ``state``."""
    if isinstance(state, Connected):
        return EpisodeResolution.RECONNECTED
    if isinstance(state, AwaitingReauth):
        return EpisodeResolution.REAUTH_REQUIRED
    if isinstance(state, ManuallyDisconnected):
        return EpisodeResolution.MANUAL_DISCONNECT
    return None


def _is_opted_out(state: SessionState) -> bool:
    return isinstance(state, (AwaitingReauth, ManuallyDisconnected))


# =============================================================================
# Automated transitions
# =============================================================================


def reconnected(current: SessionState) -> Connected:
    """The gateway reports the session open. Always authoritative."""
    return Connected()


def start_connecting(current: SessionState, now: datetime) -> Connecting:
    """Recovery is in flight; the outage start is preserved."""
    if _is_opted_out(current):
        raise InvalidTransitionError(current, "connecting")
    if isinstance(current, Connected):
        return Connecting(since=now)
    return Connecting(since=outage_start(current) or now)


def dropped(current: SessionState, now: datetime) -> Disconnected:
    """The session went down without user action.

    A session already in ``error`` stays there until it reconnects.
    """
    if _is_opted_out(current):
        raise InvalidTransitionError(current, "disconnected")
    since = None if isinstance(current, Connected) else outage_start(current)
    errored = isinstance(current, Disconnected) and current.errored
    return Disconnected(since=since or now, errored=errored)


def require_reauth(current: SessionState, now: datetime) -> AwaitingReauth:
    """Automation stops; a human has to re-pair the session."""
    if isinstance(current, ManuallyDisconnected):
        raise InvalidTransitionError(current, "awaiting_reauth")
    if isinstance(current, AwaitingReauth):
        return current
    since = None if isinstance(current, Connected) else outage_start(current)
    return AwaitingReauth(since=since or now)


# =============================================================================
# User transitions
# =============================================================================


def user_connect(current: SessionState, now: datetime) -> SessionState:
    """User asks for the session to be (re)connected."""
    if isinstance(current, Connected):
        return current
    if isinstance(current, ManuallyDisconnected):
        return Connecting(since=now)
    return Connecting(since=outage_start(current) or now)


def user_disconnect(current: SessionState, now: datetime) -> ManuallyDisconnected:
    """User switches the session off."""
    if isinstance(current, ManuallyDisconnected):
        return current
    return ManuallyDisconnected(since=now)


def reauth_completed(current: SessionState) -> Connected:
    """User finished re-pairing."""
    if isinstance(current, ManuallyDisconnected):
        raise InvalidTransitionError(current, "connected")
    return Connected()
