"""Alert Monitor: one email per tenant per outage.

Selects sessions past an alert threshold that have not been alerted in
their current outage, batches them per tenant and delivers a single
email. The dedup flag is only set after delivery succeeds, so a failed
delivery is retried by the next pass.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from healthcore.clock import Clock, SystemClock
from healthcore.config import SessionMonitorSettings
from healthcore.database import ChannelSessionModel
from healthcore.observability import LogContext, get_logger

from ..clients.notifier import Notifier, NotifierError
from ..repositories import NotificationLogRepository, SessionRepository
from ..schemas.passes import AlertSummary, TenantAlertOutcome
from .alert_renderer import alerted_session, render_alert, sort_longest_first
from .event_service import EventService
from .recipients import RecipientResolver

logger = get_logger(__name__)

AUDIT_EVENT_TYPE = "SESSION_DISCONNECTION_ALERT"


class AlertMonitor:
    """Periodic disconnection alerting."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        notifier: Notifier,
        settings: SessionMonitorSettings,
        resolver: RecipientResolver | None = None,
        events: EventService | None = None,
        clock: Clock | None = None,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.settings = settings
        self.resolver = resolver or RecipientResolver(settings.notifier.operator_email)
        self.events = events or EventService(None)
        self.clock = clock or SystemClock()
        self._running = False

    async def run_pass(self) -> AlertSummary:
        """Run one alert pass.

        Only a failure to list candidates propagates.
        """
        now = self.clock.now()
        pass_id = f"alerts-{uuid4().hex[:12]}"

        with LogContext(pass_id=pass_id):
            async with self.session_factory() as db:
                candidates = await SessionRepository(db).list_alert_candidates(
                    disconnected_before=now
                    - timedelta(seconds=self.settings.disconnect_alert_threshold_seconds),
                    stale_connecting_before=now
                    - timedelta(seconds=self.settings.connecting_alert_threshold_seconds),
                    include_reauth_required=self.settings.alert_on_reauth_required,
                )

            by_tenant: OrderedDict[UUID, list[ChannelSessionModel]] = OrderedDict()
            for session in candidates:
                by_tenant.setdefault(session.tenant_id, []).append(session)

            logger.info(
                "Alert pass started",
                sessions=len(candidates),
                tenants=len(by_tenant),
            )

            summary = AlertSummary(checked_at=now)
            for tenant_id, sessions in by_tenant.items():
                outcome = await self._alert_tenant(tenant_id, sessions, now)
                summary.tenants.append(outcome)
                if outcome.delivered:
                    summary.tenants_notified += 1
                    summary.sessions_included += len(outcome.sessions)
                elif outcome.skipped:
                    summary.tenants_skipped += 1
                else:
                    summary.tenants_failed += 1

            logger.info(
                "Alert pass completed",
                tenants_notified=summary.tenants_notified,
                sessions_included=summary.sessions_included,
                tenants_skipped=summary.tenants_skipped,
                tenants_failed=summary.tenants_failed,
            )
            return summary

    async def _alert_tenant(
        self,
        tenant_id: UUID,
        sessions: list[ChannelSessionModel],
        now: datetime,
    ) -> TenantAlertOutcome:
        alerted = sort_longest_first([alerted_session(s, now) for s in sessions])
        outcome = TenantAlertOutcome(tenant_id=tenant_id, sessions=alerted)
        # Outage each session was selected in
        outages = {s.id: s.current_episode_id for s in sessions}

        with LogContext(tenant_id=str(tenant_id)):
            async with self.session_factory() as db:
                try:
                    recipient = await self.resolver.resolve(db, tenant_id)
                except SQLAlchemyError as e:
                    logger.error("Recipient lookup failed", error=str(e))
                    outcome.message = f"Store error: {e.__class__.__name__}"
                    return outcome

            if recipient is None:
                logger.warning(
                    "No alert recipient resolved, skipping tenant",
                    sessions=len(alerted),
                )
                outcome.skipped = True
                outcome.message = "No recipient could be resolved"
                return outcome

            outcome.recipient = recipient.email
            outcome.recipient_source = recipient.source.value

            # No database session is held while the email is in flight
            subject, body = render_alert(recipient.tenant_name, alerted, now)
            try:
                message_id = await self.notifier.send(recipient.email, subject, body)
            except NotifierError as e:
                logger.error(
                    "Alert delivery failed",
                    recipient_source=recipient.source.value,
                    error=str(e),
                )
                outcome.message = f"Delivery failed: {e}"
                return outcome

            outcome.delivered = True
            outcome.message = "Alert delivered"
            session_ids = [s.session_id for s in alerted]

            async with self.session_factory() as db:
                try:
                    marked = await SessionRepository(db).mark_alerted(outages, now)
                except SQLAlchemyError as e:
                    await db.rollback()
                    logger.error(
                        "Failed to mark sessions as alerted",
                        sessions=len(session_ids),
                        error=str(e),
                    )
                    outcome.message = "Alert delivered; dedup flags not persisted"
                    return outcome

                if marked < len(session_ids):
                    logger.info(
                        "Sessions changed state during delivery",
                        sessions=len(session_ids),
                        marked=marked,
                    )

                try:
                    await NotificationLogRepository(db).add(
                        event_type=AUDIT_EVENT_TYPE,
                        event_key=f"session_alert_{tenant_id}_{now.strftime('%Y-%m-%dT%H')}",
                        email_sent_to=recipient.email,
                        tenant_id=tenant_id,
                        details={
                            "message_id": message_id,
                            "recipient_source": recipient.source.value,
                            "session_count": len(alerted),
                            "sessions": [
                                {
                                    "session_id": str(s.session_id),
                                    "name": s.display_name or s.instance_name,
                                    "duration_minutes": s.duration_minutes,
                                }
                                for s in alerted
                            ],
                        },
                        now=now,
                    )
                except SQLAlchemyError as e:
                    await db.rollback()
                    logger.error("Failed to record alert audit entry", error=str(e))

            await self.events.publish_alert_sent(tenant_id, session_ids, recipient.email)
            logger.info(
                "Alert delivered",
                sessions=len(alerted),
                recipient_source=recipient.source.value,
            )
            return outcome

    async def run_periodic(self) -> None:
        """Run alert passes in the background."""
        self._running = True
        interval = self.settings.alert_interval_seconds
        logger.info("Starting periodic alert checks", interval_seconds=interval)

        while self._running:
            try:
                await self.run_pass()
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                logger.info("Periodic alert checks cancelled")
                break
            except Exception as e:
                logger.error("Error in periodic alert loop", error=str(e))
                await asyncio.sleep(5)

        self._running = False

    def stop(self) -> None:
        self._running = False
