"""Reconciler: keeps channel sessions connected without human help.

One pass scans recoverable sessions, asks the gateway for ground truth
and issues bounded recovery attempts. Sessions are handled one at a time;
the gateway client's token bucket paces the calls. Each session is
re-read in its own database session, so a store failure only aborts that
session and overlapping passes re-derive the same attempt count from
timestamps.

Per-session flow:
1. Budget check (no gateway call once the window's budget is spent)
2. Ground-truth status query; an open gateway session wins
3. Attempt accounting persisted before connecting
4. Connect, then connected / awaiting re-auth / still connecting
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from healthcore.clock import Clock, SystemClock
from healthcore.config import SessionMonitorSettings
from healthcore.database import ChannelSessionModel
from healthcore.models import (
    AwaitingReauth,
    Connected,
    ConnectResult,
    GatewayState,
    ManuallyDisconnected,
    SessionState,
    SessionStatus,
)
from healthcore.observability import LogContext, get_logger

from ..clients.gateway import GatewayError, SessionGateway
from ..repositories import NotificationLogRepository, SessionRepository
from ..schemas.passes import ReconcileAction, ReconcileSummary, SessionOutcome
from . import transitions
from .attempt_budget import AttemptBudget
from .event_service import EventService

logger = get_logger(__name__)

AUDIT_EVENT_TYPE = "AUTO_RECONNECT_ATTEMPT"


def is_eligible(
    session: ChannelSessionModel,
    now: datetime,
    settings: SessionMonitorSettings,
) -> bool:
    """Whether a recoverable session has been down long enough to act on."""
    if session.manual_disconnect or session.awaiting_reauth:
        return False

    since = session.disconnected_since
    if session.status == SessionStatus.CONNECTING:
        if since is None:
            return settings.treat_missing_connecting_timestamp_as_eligible
        return since <= now - timedelta(seconds=settings.connecting_threshold_seconds)

    if session.status == SessionStatus.DISCONNECTED:
        if since is None:
            return False
        return since <= now - timedelta(seconds=settings.disconnected_threshold_seconds)

    return False


def left_automation(session: ChannelSessionModel) -> str | None:
    """State a session moved to outside automation's reach, if any.

    Checked after every gateway call: a user action or gateway report may
    have landed while the call was in flight.
    """
    state = transitions.state_of(session)
    if isinstance(state, (Connected, AwaitingReauth, ManuallyDisconnected)):
        return state.kind
    return None


class Reconciler:
    """Periodic reconciliation of session state against the gateway."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        gateway: SessionGateway,
        settings: SessionMonitorSettings,
        events: EventService | None = None,
        clock: Clock | None = None,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.settings = settings
        self.events = events or EventService(None)
        self.clock = clock or SystemClock()
        self.budget = AttemptBudget(
            max_attempts=settings.max_reconnect_attempts,
            window=timedelta(seconds=settings.attempt_window_seconds),
        )
        self._running = False

    async def run_pass(self) -> ReconcileSummary:
        """Run one reconciliation pass.

        Only a failure to list candidates propagates; everything after that
        is reported in the summary.
        """
        now = self.clock.now()
        pass_id = f"reconcile-{uuid4().hex[:12]}"

        with LogContext(pass_id=pass_id):
            async with self.session_factory() as db:
                candidates = await SessionRepository(db).list_reconcile_candidates()

            qualified = [s for s in candidates if is_eligible(s, now, self.settings)]
            summary = ReconcileSummary(
                checked=len(candidates), qualified=len(qualified), checked_at=now
            )
            logger.info(
                "Reconciliation pass started",
                checked=summary.checked,
                qualified=summary.qualified,
            )

            for candidate in qualified:
                outcome = await self._process(candidate, now)
                if outcome is None:
                    continue
                summary.results.append(outcome)
                if outcome.action == ReconcileAction.SKIPPED:
                    summary.skipped += 1
                elif outcome.success:
                    summary.successful += 1
                else:
                    summary.failed += 1
                if outcome.needs_reauth:
                    summary.needing_reauth += 1

            await self._record_audit(summary, now)

            logger.info(
                "Reconciliation pass completed",
                checked=summary.checked,
                qualified=summary.qualified,
                successful=summary.successful,
                failed=summary.failed,
                skipped=summary.skipped,
                needing_reauth=summary.needing_reauth,
            )
            return summary

    async def _process(
        self, candidate: ChannelSessionModel, now: datetime
    ) -> SessionOutcome | None:
        session_id, tenant_id = candidate.id, candidate.tenant_id
        with LogContext(tenant_id=str(tenant_id), session_id=str(session_id)):
            async with self.session_factory() as db:
                repo = SessionRepository(db)
                try:
                    row = await repo.get_by_id(session_id)
                    # Re-checked: a user action may have landed since listing
                    if row is None or not is_eligible(row, now, self.settings):
                        logger.info("Session no longer eligible", action="none")
                        return None
                    outcome = await self._reconcile(repo, row, now)
                except SQLAlchemyError as e:
                    await db.rollback()
                    logger.error("Session update failed", action="error", error=str(e))
                    return SessionOutcome(
                        session_id=session_id,
                        tenant_id=tenant_id,
                        instance_name=candidate.instance_name,
                        action=ReconcileAction.ERROR,
                        message=f"Store error: {e.__class__.__name__}",
                    )

            logger.info(
                "Reconciliation decision",
                instance_name=outcome.instance_name,
                action=outcome.action.value,
                success=outcome.success,
                needs_reauth=outcome.needs_reauth,
                attempts=outcome.attempts,
                message=outcome.message,
            )
            return outcome

    async def _reconcile(
        self, repo: SessionRepository, row: ChannelSessionModel, now: datetime
    ) -> SessionOutcome:
        effective = self.budget.effective(
            row.reconnect_attempts_count, row.last_reconnect_attempt_at, now
        )
        outcome = SessionOutcome(
            session_id=row.id,
            tenant_id=row.tenant_id,
            instance_name=row.instance_name,
            action=ReconcileAction.SKIPPED,
            attempts=effective,
        )

        if self.budget.is_exhausted(
            row.reconnect_attempts_count, row.last_reconnect_attempt_at, now
        ):
            outcome.message = (
                f"skipped: budget exhausted ({effective}/{self.budget.max_attempts} "
                f"attempts in the last {self.settings.attempt_window_seconds}s)"
            )
            return outcome

        # Ground truth: the local record may have drifted from the gateway
        try:
            status = await self.gateway.status(row.instance_name)
        except GatewayError as e:
            logger.warning("Gateway status query failed", error=str(e))
            status = None

        await repo.refresh(row)
        if moved := left_automation(row):
            outcome.message = f"skipped: session became {moved} during the status query"
            return outcome

        if status is not None and status.state == GatewayState.OPEN:
            await self._transition(repo, row, transitions.reconnected(transitions.state_of(row)), now)
            await self.events.publish_reconnected(row, ReconcileAction.GROUND_TRUTH.value)
            outcome.action = ReconcileAction.GROUND_TRUTH
            outcome.success = True
            outcome.attempts = 0
            outcome.message = "Gateway reports session open; local record corrected"
            return outcome

        attempts = effective + 1
        await repo.record_attempt(row, attempts, now)
        outcome.action = ReconcileAction.CONNECT
        outcome.attempts = attempts

        result: ConnectResult | None = None
        try:
            result = await self.gateway.connect(row.instance_name)
        except GatewayError as e:
            outcome.message = f"Connect failed: {e}"

        await repo.refresh(row)
        if moved := left_automation(row):
            # The concurrent update wins; nothing is written over it
            outcome.success = moved == SessionStatus.CONNECTED.value
            outcome.message = (
                f"{outcome.message or 'Connect issued'}; session became {moved} "
                "during the attempt and was left as is"
            )
            return outcome

        # A user connect may have reset the budget meanwhile
        attempts = self.budget.effective(
            row.reconnect_attempts_count, row.last_reconnect_attempt_at, now
        )
        outcome.attempts = attempts
        current = transitions.state_of(row)

        if result is not None and result.state == GatewayState.OPEN:
            await self._transition(repo, row, transitions.reconnected(current), now)
            await self.events.publish_reconnected(row, ReconcileAction.CONNECT.value)
            outcome.success = True
            outcome.attempts = 0
            outcome.message = "Session reconnected automatically"
            return outcome

        if result is not None and result.requires_reauth:
            await self._transition(repo, row, transitions.require_reauth(current, now), now)
            await self.events.publish_reauth_required(row, "pairing_required")
            outcome.needs_reauth = True
            outcome.message = "Session expired; re-pairing required"
            return outcome

        if result is not None:
            outcome.message = f"Connection initiated, gateway state: {result.state}"

        if self.budget.reaches_limit(attempts):
            await self._transition(repo, row, transitions.require_reauth(current, now), now)
            await self.events.publish_reauth_required(row, "attempt_budget_exhausted")
            outcome.needs_reauth = True
            outcome.message = (
                f"{outcome.message}; attempt budget exhausted, escalated to re-auth"
            ).lstrip("; ")
            return outcome

        await self._transition(repo, row, transitions.start_connecting(current, now), now)
        return outcome

    async def _transition(
        self,
        repo: SessionRepository,
        row: ChannelSessionModel,
        state: SessionState,
        now: datetime,
    ) -> None:
        old_status = row.status
        await repo.apply_state(row, state, now)
        await self.events.publish_status_changed(row, old_status, row.status)

    async def _record_audit(self, summary: ReconcileSummary, now: datetime) -> None:
        attempted = [r for r in summary.results if r.action != ReconcileAction.SKIPPED]
        if not attempted:
            return

        details = {
            "total_attempts": len(attempted),
            "successful": summary.successful,
            "failed": summary.failed,
            "needing_reauth": summary.needing_reauth,
            "sessions": [
                {
                    "session_id": str(r.session_id),
                    "name": r.instance_name,
                    "action": r.action.value,
                    "success": r.success,
                    "message": r.message,
                }
                for r in summary.results
            ],
        }
        try:
            async with self.session_factory() as db:
                await NotificationLogRepository(db).add(
                    event_type=AUDIT_EVENT_TYPE,
                    event_key=f"auto_reconnect_{now.strftime('%Y-%m-%dT%H')}",
                    email_sent_to="system",
                    details=details,
                    now=now,
                )
        except SQLAlchemyError as e:
            logger.error("Failed to record reconciliation audit entry", error=str(e))

    async def run_periodic(self) -> None:
        """Run reconciliation passes in the background."""
        self._running = True
        interval = self.settings.reconcile_interval_seconds
        logger.info("Starting periodic reconciliation", interval_seconds=interval)

        while self._running:
            try:
                await self.run_pass()
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                logger.info("Periodic reconciliation cancelled")
                break
            except Exception as e:
                logger.error("Error in periodic reconciliation loop", error=str(e))
                await asyncio.sleep(5)  # Brief pause before retry

        self._running = False

    def stop(self) -> None:
        self._running = False
