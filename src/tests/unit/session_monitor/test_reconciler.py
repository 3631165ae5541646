"""Tests for the reconciliation pass."""

from datetime import timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from healthcore.models import ConnectResult, GatewayState
from session_monitor.clients.gateway import GatewayHTTPError, GatewayTimeoutError
from session_monitor.repositories import NotificationLogRepository, SessionRepository
from session_monitor.schemas.passes import ReconcileAction
from session_monitor.services.reconciler import Reconciler, is_eligible, left_automation
from session_monitor.services.session_service import SessionService


@pytest.fixture
async def tenant(make_tenant):
    return await make_tenant()


def minutes_ago(clock, minutes: float):
    return clock.now() - timedelta(minutes=minutes)


class TestEligibility:
    """Thresholds and opt-out flags."""

    async def test_opted_out_sessions_get_no_gateway_calls(
        self, reconciler, fake_gateway, make_session, tenant, clock
    ):
        await make_session(
            tenant.id,
            "manual",
            status="disconnected",
            manual_disconnect=True,
            disconnected_since=minutes_ago(clock, 30),
        )
        await make_session(
            tenant.id,
            "reauth",
            status="awaiting_reauth",
            awaiting_reauth=True,
            disconnected_since=minutes_ago(clock, 300),
        )
        # Legacy row whose status lags the flag
        await make_session(
            tenant.id,
            "reauth-legacy",
            status="connecting",
            awaiting_reauth=True,
            disconnected_since=minutes_ago(clock, 300),
        )

        summary = await reconciler.run_pass()

        assert fake_gateway.calls == []
        assert summary.checked == 0
        assert summary.qualified == 0

    async def test_recent_disconnect_waits_for_threshold(
        self, reconciler, fake_gateway, make_session, tenant, clock
    ):
        await make_session(
            tenant.id,
            status="disconnected",
            disconnected_since=clock.now() - timedelta(seconds=30),
        )

        summary = await reconciler.run_pass()

        assert summary.checked == 1
        assert summary.qualified == 0
        assert fake_gateway.calls == []

    async def test_connecting_without_timestamp_is_eligible(
        self, reconciler, fake_gateway, make_session, tenant
    ):
        await make_session(tenant.id, "no-ts", status="connecting", disconnected_since=None)

        summary = await reconciler.run_pass()

        assert summary.qualified == 1
        assert fake_gateway.calls_for("connect") == ["no-ts"]

    async def test_connecting_without_timestamp_can_be_deferred(
        self, session_factory, fake_gateway, monitor_settings, clock, make_session, tenant
    ):
        settings = monitor_settings.model_copy(
            update={"treat_missing_connecting_timestamp_as_eligible": False}
        )
        reconciler = Reconciler(session_factory, fake_gateway, settings, clock=clock)
        await make_session(tenant.id, status="connecting", disconnected_since=None)

        summary = await reconciler.run_pass()

        assert summary.qualified == 0
        assert fake_gateway.calls == []

    async def test_disconnected_without_timestamp_is_not_eligible(
        self, reconciler, fake_gateway, make_session, tenant
    ):
        await make_session(tenant.id, status="disconnected", disconnected_since=None)

        summary = await reconciler.run_pass()

        assert summary.checked == 1
        assert summary.qualified == 0
        assert fake_gateway.calls == []

    def test_is_eligible_on_connected_row(self, monitor_settings, clock):
        row = SimpleNamespace(
            status="connected",
            disconnected_since=None,
            manual_disconnect=False,
            awaiting_reauth=False,
        )
        assert is_eligible(row, clock.now(), monitor_settings) is False


class TestAttemptBudget:
    """Rate check before any gateway call."""

    async def test_third_failed_attempt_escalates_to_reauth(
        self, reconciler, fake_gateway, make_session, load_session, tenant, clock, mock_redis
    ):
        row = await make_session(
            tenant.id,
            "third-strike",
            status="connecting",
            disconnected_since=minutes_ago(clock, 10),
            reconnect_attempts_count=2,
            last_reconnect_attempt_at=minutes_ago(clock, 2),
        )

        summary = await reconciler.run_pass()

        loaded = await load_session(row.id)
        assert loaded.reconnect_attempts_count == 3
        assert loaded.status == "awaiting_reauth"
        assert loaded.awaiting_reauth is True
        assert fake_gateway.calls_for("connect") == ["third-strike"]
        assert summary.failed == 1
        assert summary.needing_reauth == 1
        assert "SESSION_REAUTH_REQUIRED" in mock_redis.event_types()

    async def test_stale_counter_is_ignored(
        self, reconciler, fake_gateway, make_session, load_session, tenant, clock
    ):
        row = await make_session(
            tenant.id,
            "stale-counter",
            status="disconnected",
            disconnected_since=minutes_ago(clock, 20),
            reconnect_attempts_count=3,
            last_reconnect_attempt_at=minutes_ago(clock, 10),
        )

        summary = await reconciler.run_pass()

        assert fake_gateway.calls_for("connect") == ["stale-counter"]
        loaded = await load_session(row.id)
        assert loaded.reconnect_attempts_count == 1
        assert loaded.last_reconnect_attempt_at == clock.now()
        assert summary.results[0].attempts == 1

    async def test_exhausted_budget_skips_without_calls(
        self, reconciler, fake_gateway, make_session, load_session, tenant, clock
    ):
        row = await make_session(
            tenant.id,
            status="connecting",
            disconnected_since=minutes_ago(clock, 10),
            reconnect_attempts_count=3,
            last_reconnect_attempt_at=minutes_ago(clock, 1),
        )

        summary = await reconciler.run_pass()

        assert fake_gateway.calls == []
        assert summary.skipped == 1
        assert summary.results[0].action == ReconcileAction.SKIPPED
        assert summary.results[0].message.startswith("skipped: budget exhausted")
        loaded = await load_session(row.id)
        assert loaded.reconnect_attempts_count == 3


class TestGroundTruth:
    async def test_open_gateway_session_wins(
        self, reconciler, fake_gateway, make_session, load_session, tenant, clock
    ):
        row = await make_session(
            tenant.id,
            "drifted",
            status="disconnected",
            disconnected_since=minutes_ago(clock, 5),
            reconnect_attempts_count=1,
            last_reconnect_attempt_at=minutes_ago(clock, 1),
            alert_sent_for_current_disconnect=True,
        )
        fake_gateway.status_results["drifted"] = GatewayState.OPEN

        summary = await reconciler.run_pass()

        assert fake_gateway.calls_for("connect") == []
        assert fake_gateway.calls_for("status") == ["drifted"]
        loaded = await load_session(row.id)
        assert loaded.status == "connected"
        assert loaded.disconnected_since is None
        assert loaded.reconnect_attempts_count == 0
        assert loaded.last_reconnect_attempt_at is None
        assert loaded.alert_sent_for_current_disconnect is False
        assert summary.successful == 1
        assert summary.results[0].action == ReconcileAction.GROUND_TRUTH

    async def test_failed_status_query_still_attempts_connect(
        self, reconciler, fake_gateway, make_session, tenant, clock
    ):
        await make_session(
            tenant.id, "flaky", status="disconnected", disconnected_since=minutes_ago(clock, 5)
        )
        fake_gateway.status_results["flaky"] = GatewayHTTPError(502, "bad gateway")

        await reconciler.run_pass()

        assert fake_gateway.calls == [("status", "flaky"), ("connect", "flaky")]


class TestRecovery:
    async def test_scenario_c_successful_reconnect_resets_everything(
        self, reconciler, fake_gateway, make_session, load_session, tenant, clock, mock_redis
    ):
        row = await make_session(
            tenant.id, "s3", status="disconnected", disconnected_since=minutes_ago(clock, 2)
        )
        fake_gateway.connect_results["s3"] = ConnectResult(state=GatewayState.OPEN)

        summary = await reconciler.run_pass()

        loaded = await load_session(row.id)
        assert loaded.status == "connected"
        assert loaded.disconnected_since is None
        assert loaded.reconnect_attempts_count == 0
        assert loaded.last_reconnect_attempt_at is None
        assert loaded.manual_disconnect is False
        assert loaded.awaiting_reauth is False
        assert loaded.alert_sent_for_current_disconnect is False
        assert summary.qualified == 1
        assert summary.successful == 1
        assert summary.failed == 0
        assert "SESSION_RECONNECTED" in mock_redis.event_types()

    async def test_pairing_payload_means_reauth(
        self, reconciler, fake_gateway, make_session, load_session, tenant, clock
    ):
        row = await make_session(
            tenant.id, "expired", status="disconnected", disconnected_since=minutes_ago(clock, 5)
        )
        fake_gateway.connect_results["expired"] = ConnectResult(
            state=GatewayState.CONNECTING, reauth_payload="data:image/png;base64,iVBOR"
        )

        summary = await reconciler.run_pass()

        loaded = await load_session(row.id)
        assert loaded.status == "awaiting_reauth"
        assert loaded.awaiting_reauth is True
        assert loaded.reconnect_attempts_count == 1
        assert summary.needing_reauth == 1
        assert summary.results[0].needs_reauth is True

    async def test_failed_attempt_keeps_outage_start(
        self, reconciler, fake_gateway, make_session, load_session, tenant, clock
    ):
        since = minutes_ago(clock, 5)
        row = await make_session(
            tenant.id, "timeout", status="disconnected", disconnected_since=since
        )
        fake_gateway.connect_results["timeout"] = GatewayTimeoutError("connect timed out")

        summary = await reconciler.run_pass()

        loaded = await load_session(row.id)
        assert loaded.status == "connecting"
        assert loaded.disconnected_since == since
        assert loaded.reconnect_attempts_count == 1
        assert loaded.awaiting_reauth is False
        assert summary.failed == 1
        assert summary.results[0].message.startswith("Connect failed")

    async def test_gateway_failure_does_not_abort_pass(
        self, reconciler, fake_gateway, make_session, tenant, clock
    ):
        await make_session(
            tenant.id, "a-first", status="disconnected", disconnected_since=minutes_ago(clock, 9)
        )
        await make_session(
            tenant.id, "b-second", status="disconnected", disconnected_since=minutes_ago(clock, 8)
        )
        fake_gateway.connect_results["a-first"] = GatewayHTTPError(500, "boom")
        fake_gateway.connect_results["b-second"] = ConnectResult(state=GatewayState.OPEN)

        summary = await reconciler.run_pass()

        assert fake_gateway.calls_for("connect") == ["a-first", "b-second"]
        assert summary.failed == 1
        assert summary.successful == 1

    async def test_outage_episode_lifecycle(
        self, reconciler, fake_gateway, make_session, session_factory, tenant, clock
    ):
        since = minutes_ago(clock, 5)
        row = await make_session(
            tenant.id, "episodic", status="disconnected", disconnected_since=since
        )

        await reconciler.run_pass()
        async with session_factory() as db:
            episodes = await SessionRepository(db).list_episodes(row.id)
        assert len(episodes) == 1
        assert episodes[0].started_at == since
        assert episodes[0].ended_at is None

        clock.advance(minutes=1)
        fake_gateway.connect_results["episodic"] = ConnectResult(state=GatewayState.OPEN)
        await reconciler.run_pass()

        async with session_factory() as db:
            episodes = await SessionRepository(db).list_episodes(row.id)
        assert len(episodes) == 1
        assert episodes[0].ended_at == clock.now()
        assert episodes[0].resolution == "reconnected"


class TestFailureIsolation:
    async def test_store_error_only_affects_one_session(
        self, reconciler, fake_gateway, make_session, tenant, clock, monkeypatch
    ):
        await make_session(
            tenant.id, "broken", status="disconnected", disconnected_since=minutes_ago(clock, 10)
        )
        await make_session(
            tenant.id, "healthy", status="disconnected", disconnected_since=minutes_ago(clock, 5)
        )
        fake_gateway.default_connect = ConnectResult(state=GatewayState.OPEN)

        original = SessionRepository.record_attempt

        async def flaky_record_attempt(self, row, attempts, now):
            if row.instance_name == "broken":
                raise OperationalError("UPDATE channel_sessions", {}, Exception("disk I/O error"))
            return await original(self, row, attempts, now)

        monkeypatch.setattr(SessionRepository, "record_attempt", flaky_record_attempt)

        summary = await reconciler.run_pass()

        actions = {r.instance_name: r.action for r in summary.results}
        assert actions == {"broken": ReconcileAction.ERROR, "healthy": ReconcileAction.CONNECT}
        assert summary.failed == 1
        assert summary.successful == 1
        assert fake_gateway.calls_for("connect") == ["healthy"]

    async def test_redis_outage_does_not_break_pass(
        self, reconciler, fake_gateway, make_session, load_session, tenant, clock, mock_redis
    ):
        mock_redis.fail = True
        row = await make_session(
            tenant.id, "quiet", status="disconnected", disconnected_since=minutes_ago(clock, 5)
        )
        fake_gateway.connect_results["quiet"] = ConnectResult(state=GatewayState.OPEN)

        summary = await reconciler.run_pass()

        assert summary.successful == 1
        assert (await load_session(row.id)).status == "connected"


class TestAudit:
    async def test_pass_with_attempts_writes_audit_entry(
        self, reconciler, make_session, session_factory, tenant, clock
    ):
        await make_session(
            tenant.id, "audited", status="disconnected", disconnected_since=minutes_ago(clock, 5)
        )

        await reconciler.run_pass()

        async with session_factory() as db:
            entries = await NotificationLogRepository(db).list_by_event_type(
                "AUTO_RECONNECT_ATTEMPT"
            )
        assert len(entries) == 1
        assert entries[0].event_key == "auto_reconnect_2026-10-18T12"
        assert entries[0].email_sent_to == "system"
        assert entries[0].details["total_attempts"] == 1
        assert entries[0].details["sessions"][0]["name"] == "audited"

    async def test_idle_pass_writes_nothing(self, reconciler, session_factory):
        summary = await reconciler.run_pass()

        assert summary.checked == 0
        async with session_factory() as db:
            entries = await NotificationLogRepository(db).list_by_event_type(
                "AUTO_RECONNECT_ATTEMPT"
            )
        assert entries == []


class TestConcurrentUpdates:
    """User actions and gateway reports that land while connect is in flight."""

    async def test_manual_disconnect_during_connect_is_kept(
        self,
        reconciler,
        fake_gateway,
        make_session,
        load_session,
        session_factory,
        events,
        tenant,
        clock,
    ):
        row = await make_session(
            tenant.id, "front", status="disconnected", disconnected_since=minutes_ago(clock, 5)
        )

        async def user_disconnects(ref: str) -> None:
            async with session_factory() as db:
                await SessionService(db, events, clock).disconnect(row.id)

        fake_gateway.on_connect = user_disconnects
        summary = await reconciler.run_pass()

        loaded = await load_session(row.id)
        assert loaded.status == "disconnected"
        assert loaded.manual_disconnect is True
        assert loaded.awaiting_reauth is False
        assert summary.failed == 1
        assert summary.results[0].action == ReconcileAction.CONNECT
        assert "left as is" in summary.results[0].message

    async def test_gateway_open_report_during_connect_counts_as_success(
        self,
        reconciler,
        fake_gateway,
        make_session,
        load_session,
        session_factory,
        events,
        tenant,
        clock,
    ):
        row = await make_session(
            tenant.id, "front", status="disconnected", disconnected_since=minutes_ago(clock, 5)
        )

        async def gateway_reports_open(ref: str) -> None:
            async with session_factory() as db:
                await SessionService(db, events, clock).report_gateway_state(row.id, "open")

        fake_gateway.on_connect = gateway_reports_open
        summary = await reconciler.run_pass()

        loaded = await load_session(row.id)
        assert loaded.status == "connected"
        assert loaded.disconnected_since is None
        assert summary.successful == 1

    async def test_user_connect_during_last_attempt_resets_budget(
        self,
        reconciler,
        fake_gateway,
        make_session,
        load_session,
        session_factory,
        events,
        tenant,
        clock,
    ):
        row = await make_session(
            tenant.id,
            "front",
            status="connecting",
            disconnected_since=minutes_ago(clock, 10),
            reconnect_attempts_count=2,
            last_reconnect_attempt_at=minutes_ago(clock, 1),
        )

        async def user_connects(ref: str) -> None:
            async with session_factory() as db:
                await SessionService(db, events, clock).connect(row.id)

        fake_gateway.on_connect = user_connects
        summary = await reconciler.run_pass()

        loaded = await load_session(row.id)
        assert loaded.status == "connecting"
        assert loaded.awaiting_reauth is False
        assert loaded.reconnect_attempts_count == 0
        assert summary.needing_reauth == 0

    @pytest.mark.parametrize(
        "fields,expected",
        [
            ({"status": "connected"}, "connected"),
            ({"status": "connecting", "awaiting_reauth": True}, "awaiting_reauth"),
            ({"status": "disconnected", "manual_disconnect": True}, "manually_disconnected"),
            ({"status": "connecting"}, None),
            ({"status": "disconnected"}, None),
        ],
    )
    def test_left_automation(self, clock, fields, expected) -> None:
        columns = {
            "disconnected_since": minutes_ago(clock, 5),
            "updated_at": None,
            "created_at": None,
            "manual_disconnect": False,
            "awaiting_reauth": False,
        }
        columns.update(fields)
        assert left_automation(SimpleNamespace(**columns)) == expected
