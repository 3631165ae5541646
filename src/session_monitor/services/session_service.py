"""Channel session service: provisioning, user actions, gateway reports."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from healthcore.clock import Clock, SystemClock
from healthcore.database import ChannelSessionModel
from healthcore.models import (
    AwaitingReauth,
    GatewayState,
    ManuallyDisconnected,
    OutageEpisode,
    SessionState,
    SessionStatus,
)
from healthcore.observability import get_logger

from ..repositories import SessionRepository
from ..schemas.session import (
    SessionCreateRequest,
    SessionDetailResponse,
    SessionListResponse,
    SessionResponse,
)
from . import transitions
from .event_service import EventService
from .transitions import InvalidTransitionError

logger = get_logger(__name__)

__all__ = [
    "InvalidTransitionError",
    "SessionAlreadyExistsError",
    "SessionNotFoundError",
    "SessionService",
]


class SessionNotFoundError(Exception):
    """Raised when a session is not found."""

    pass


class SessionAlreadyExistsError(Exception):
    """Raised when a session with the same gateway reference already exists."""

    pass


class SessionService:
    """Service for session lifecycle operations outside the passes."""

    def __init__(
        self,
        session: AsyncSession,
        events: EventService,
        clock: Clock | None = None,
    ):
        self.repository = SessionRepository(session)
        self.events = events
        self.clock = clock or SystemClock()

    async def create(self, request: SessionCreateRequest) -> SessionResponse:
        """Provision a session.

        New sessions have never been paired, so they start out awaiting
        re-authentication and are invisible to the reconciler until a
        human completes pairing.
        """
        existing = await self.repository.get_by_instance_name(request.instance_name)
        if existing:
            raise SessionAlreadyExistsError(
                f"Session with instance name '{request.instance_name}' already exists"
            )

        data = {
            "tenant_id": request.tenant_id,
            "instance_name": request.instance_name,
            "display_name": request.display_name,
            "phone_number": request.phone_number,
            **transitions.columns_for(AwaitingReauth()),
        }
        row = await self.repository.create(data, self.clock.now())
        logger.info(
            "Session provisioned",
            session_id=str(row.id),
            tenant_id=str(row.tenant_id),
            instance_name=row.instance_name,
        )
        return SessionResponse.model_validate(row)

    async def get(self, session_id: UUID) -> SessionDetailResponse:
        row = await self._get_row(session_id)
        episodes = await self.repository.list_episodes(session_id)
        # The episodes relationship is never lazy-loaded on an async session
        return SessionDetailResponse(
            **SessionResponse.model_validate(row).model_dump(),
            episodes=[OutageEpisode.model_validate(e) for e in episodes],
        )

    async def list(
        self,
        tenant_id: UUID | None = None,
        status: str | None = None,
    ) -> SessionListResponse:
        rows = await self.repository.list(tenant_id=tenant_id, status=status)
        return SessionListResponse(
            items=[SessionResponse.model_validate(r) for r in rows],
            total=len(rows),
        )

    # =========================================================================
    # User actions
    # =========================================================================

    async def connect(self, session_id: UUID) -> SessionResponse:
        """Re-enrol a session in automated recovery with a fresh budget."""
        row = await self._get_row(session_id)
        now = self.clock.now()
        current = transitions.state_of(row)
        target = transitions.user_connect(current, now)

        if isinstance(current, (AwaitingReauth, ManuallyDisconnected)):
            # A new outage starts here; it gets its own alert
            row.alert_sent_for_current_disconnect = False
        await self._apply(row, target, now, reset_attempts=True)
        logger.info("Session connect requested", session_id=str(session_id), state=target.kind)
        return SessionResponse.model_validate(row)

    async def disconnect(self, session_id: UUID) -> SessionResponse:
        """Manual disconnect: automation leaves the session alone."""
        row = await self._get_row(session_id)
        now = self.clock.now()
        target = transitions.user_disconnect(transitions.state_of(row), now)
        await self._apply(row, target, now, reset_attempts=True)
        logger.info("Session manually disconnected", session_id=str(session_id))
        return SessionResponse.model_validate(row)

    async def complete_reauth(self, session_id: UUID) -> SessionResponse:
        """The user re-paired the session on the gateway."""
        row = await self._get_row(session_id)
        now = self.clock.now()
        target = transitions.reauth_completed(transitions.state_of(row))
        await self._apply(row, target, now)
        await self.events.publish_reconnected(row, "reauth_completed")
        logger.info("Session re-authenticated", session_id=str(session_id))
        return SessionResponse.model_validate(row)

    # =========================================================================
    # Gateway reports
    # =========================================================================

    async def report_gateway_state(
        self, session_id: UUID, state: GatewayState | str
    ) -> SessionResponse:
        """Apply a connection state pushed by the gateway.

        ``open`` always wins. Other states are ignored for sessions that
        are opted out of automation.
        """
        row = await self._get_row(session_id)
        now = self.clock.now()
        state = GatewayState(state)
        current = transitions.state_of(row)

        if state == GatewayState.OPEN:
            if row.status != SessionStatus.CONNECTED.value:
                await self._apply(row, transitions.reconnected(current), now)
                await self.events.publish_reconnected(row, "gateway_report")
            return SessionResponse.model_validate(row)

        if isinstance(current, (AwaitingReauth, ManuallyDisconnected)):
            logger.info(
                "Gateway report ignored for opted-out session",
                session_id=str(session_id),
                reported=state.value,
                current=current.kind,
            )
            return SessionResponse.model_validate(row)

        if state == GatewayState.CONNECTING:
            await self._apply(row, transitions.start_connecting(current, now), now)
        elif state == GatewayState.CLOSED:
            await self._apply(row, transitions.dropped(current, now), now)
        else:
            logger.info("Unknown gateway state ignored", session_id=str(session_id))

        return SessionResponse.model_validate(row)

    async def _get_row(self, session_id: UUID) -> ChannelSessionModel:
        row = await self.repository.get_by_id(session_id)
        if not row:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return row

    async def _apply(
        self,
        row: ChannelSessionModel,
        state: SessionState,
        now: datetime,
        reset_attempts: bool = False,
    ) -> None:
        old_status = row.status
        await self.repository.apply_state(row, state, now, reset_attempts=reset_attempts)
        await self.events.publish_status_changed(row, old_status, row.status)
