"""Channel session data access repository."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from healthcore.database import ChannelSessionModel, OutageEpisodeModel
from healthcore.models import Connected, SessionState, SessionStatus

from ..services.transitions import (
    closing_resolution,
    columns_for,
    opens_episode,
    outage_start,
    state_of,
)

RECOVERABLE_STATUSES = (SessionStatus.CONNECTING.value, SessionStatus.DISCONNECTED.value)
OUTAGE_STATUSES = (SessionStatus.DISCONNECTED.value, SessionStatus.ERROR.value)


class SessionRepository:
    """Repository for channel session data access.

    Every mutating method commits, so a failure only ever affects the
    session it was called for.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, data: dict[str, Any], now: datetime) -> ChannelSessionModel:
        """Provision a new channel session."""
        row = ChannelSessionModel(**data, created_at=now, updated_at=now)
        self.session.add(row)
        await self.session.commit()
        await self.session.refresh(row)
        return row

    async def get_by_id(self, session_id: UUID) -> ChannelSessionModel | None:
        result = await self.session.execute(
            select(ChannelSessionModel).where(ChannelSessionModel.id == session_id)
        )
        return result.scalar_one_or_none()

    async def get_by_instance_name(self, instance_name: str) -> ChannelSessionModel | None:
        result = await self.session.execute(
            select(ChannelSessionModel).where(ChannelSessionModel.instance_name == instance_name)
        )
        return result.scalar_one_or_none()

    async def refresh(self, row: ChannelSessionModel) -> ChannelSessionModel:
        """Reload ``row`` to pick up updates committed by other writers."""
        await self.session.refresh(row)
        return row

    async def list(
        self,
        tenant_id: UUID | None = None,
        status: str | None = None,
    ) -> list[ChannelSessionModel]:
        """List sessions, optionally filtered by tenant and status."""
        query = select(ChannelSessionModel)
        if tenant_id:
            query = query.where(ChannelSessionModel.tenant_id == tenant_id)
        if status:
            query = query.where(ChannelSessionModel.status == status)
        query = query.order_by(ChannelSessionModel.tenant_id, ChannelSessionModel.instance_name)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_reconcile_candidates(self) -> list[ChannelSessionModel]:
        """Sessions the reconciler may look at: recoverable and not opted out."""
        result = await self.session.execute(
            select(ChannelSessionModel)
            .where(
                ChannelSessionModel.status.in_(RECOVERABLE_STATUSES),
                ChannelSessionModel.manual_disconnect.is_(False),
                ChannelSessionModel.awaiting_reauth.is_(False),
            )
            .order_by(ChannelSessionModel.disconnected_since, ChannelSessionModel.id)
        )
        return list(result.scalars().all())

    async def list_alert_candidates(
        self,
        disconnected_before: datetime,
        stale_connecting_before: datetime,
        include_reauth_required: bool = False,
    ) -> list[ChannelSessionModel]:
        """Sessions past an alert threshold that have not been alerted this outage."""
        not_alerted = ChannelSessionModel.alert_sent_for_current_disconnect.is_(False)
        not_manual = ChannelSessionModel.manual_disconnect.is_(False)

        outage = and_(
            ChannelSessionModel.status.in_(OUTAGE_STATUSES),
            ChannelSessionModel.disconnected_since.is_not(None),
            ChannelSessionModel.disconnected_since <= disconnected_before,
        )
        stale_connecting = and_(
            ChannelSessionModel.status == SessionStatus.CONNECTING.value,
            ChannelSessionModel.updated_at <= stale_connecting_before,
        )
        condition = and_(
            or_(outage, stale_connecting),
            not_manual,
            ChannelSessionModel.awaiting_reauth.is_(False),
            not_alerted,
        )
        if include_reauth_required:
            condition = or_(
                condition,
                and_(
                    ChannelSessionModel.status == SessionStatus.AWAITING_REAUTH.value,
                    # Never-paired sessions have no outage to report
                    ChannelSessionModel.disconnected_since.is_not(None),
                    not_manual,
                    not_alerted,
                ),
            )

        result = await self.session.execute(
            select(ChannelSessionModel)
            .where(condition)
            .order_by(ChannelSessionModel.tenant_id, ChannelSessionModel.instance_name)
        )
        return list(result.scalars().all())

    async def record_attempt(
        self, row: ChannelSessionModel, attempts: int, now: datetime
    ) -> ChannelSessionModel:
        """Persist attempt accounting before the gateway is called.

        Bookkeeping only: ``updated_at`` tracks state changes, not attempts.
        """
        row.reconnect_attempts_count = attempts
        row.last_reconnect_attempt_at = now
        await self.session.commit()
        return row

    async def apply_state(
        self,
        row: ChannelSessionModel,
        state: SessionState,
        now: datetime,
        reset_attempts: bool = False,
    ) -> ChannelSessionModel:
        """Write ``state`` to the row and keep outage episodes in step.

        Every column encoding ``state`` is written, so a row refreshed after
        a concurrent update still ends up consistent. ``updated_at`` only
        moves when a state column actually changes.
        """
        previous = state_of(row)
        changed = False
        for key, value in columns_for(state).items():
            if getattr(row, key) != value:
                changed = True
            setattr(row, key, value)

        if isinstance(state, Connected):
            row.alert_sent_for_current_disconnect = False
            reset_attempts = True
        if reset_attempts:
            row.reconnect_attempts_count = 0
            row.last_reconnect_attempt_at = None

        resolution = closing_resolution(state)
        if resolution and row.current_episode_id is not None:
            episode = await self.session.get(OutageEpisodeModel, row.current_episode_id)
            if episode and episode.ended_at is None:
                episode.ended_at = now
                episode.resolution = resolution.value
            row.current_episode_id = None
        elif opens_episode(state) and row.current_episode_id is None:
            episode = OutageEpisodeModel(
                session_id=row.id,
                tenant_id=row.tenant_id,
                started_at=outage_start(state) or now,
            )
            self.session.add(episode)
            await self.session.flush()
            row.current_episode_id = episode.id
            if not opens_episode(previous):
                # A fresh outage is alerted on its own
                row.alert_sent_for_current_disconnect = False

        if changed:
            row.updated_at = now
        await self.session.commit()
        return row

    async def mark_alerted(self, outages: dict[UUID, int | None], now: datetime) -> int:
        """Set the dedup flag on every session in one alert, in one transaction.

        ``outages`` maps each session id to the outage episode it was
        selected in. A session that reconnected or moved to another outage
        since selection is left alone, so its next outage is still alerted.

        Returns:
            Number of sessions updated
        """
        if not outages:
            return 0

        same_outage = [
            and_(
                ChannelSessionModel.id == session_id,
                ChannelSessionModel.current_episode_id == episode_id
                if episode_id is not None
                else ChannelSessionModel.current_episode_id.is_(None),
            )
            for session_id, episode_id in outages.items()
        ]
        result = await self.session.execute(
            update(ChannelSessionModel)
            .where(
                or_(*same_outage),
                ChannelSessionModel.status != SessionStatus.CONNECTED.value,
            )
            .values(alert_sent_for_current_disconnect=True, last_alert_sent_at=now)
            .execution_options(synchronize_session=False)
        )

        episode_ids = [e for e in outages.values() if e is not None]
        if episode_ids:
            await self.session.execute(
                update(OutageEpisodeModel)
                .where(
                    OutageEpisodeModel.id.in_(episode_ids),
                    OutageEpisodeModel.ended_at.is_(None),
                    OutageEpisodeModel.alerted_at.is_(None),
                )
                .values(alerted_at=now)
                .execution_options(synchronize_session=False)
            )
        await self.session.commit()
        return result.rowcount

    async def list_episodes(self, session_id: UUID) -> list[OutageEpisodeModel]:
        result = await self.session.execute(
            select(OutageEpisodeModel)
            .where(OutageEpisodeModel.session_id == session_id)
            .order_by(OutageEpisodeModel.id)
        )
        return list(result.scalars().all())
