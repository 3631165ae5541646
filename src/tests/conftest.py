"""Pytest configuration and shared fixtures."""

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment before importing settings
os.environ["ENV"] = "development"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOG_FORMAT"] = "text"
os.environ["SCHEDULER_ENABLED"] = "false"

from healthcore.clock import FrozenClock  # noqa: E402
from healthcore.config import NotifierSettings, SessionMonitorSettings  # noqa: E402
from healthcore.database import (  # noqa: E402
    Base,
    ChannelSessionModel,
    TenantModel,
    TenantProfileModel,
)
from healthcore.models import (  # noqa: E402
    ConnectResult,
    Event,
    GatewayState,
    GatewayStatus,
)
from session_monitor.clients.notifier import NotifierError  # noqa: E402
from session_monitor.services.alert_monitor import AlertMonitor  # noqa: E402
from session_monitor.services.event_service import EventService  # noqa: E402
from session_monitor.services.reconciler import Reconciler  # noqa: E402

# Single shared in-memory database per engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def test_engine():
    """Create test database engine with all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, expire_on_commit=False)


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def monitor_settings() -> SessionMonitorSettings:
    """Settings with the reference thresholds and no operator fallback."""
    return SessionMonitorSettings(
        scheduler_enabled=False,
        notifier=NotifierSettings(api_key="test-key", operator_email=None),
    )


class FakeGateway:
    """Scriptable gateway that records every call."""

    def __init__(self):
        self.calls: list[tuple[str, str]] = []
        self.status_results: dict[str, GatewayState | Exception] = {}
        self.connect_results: dict[str, ConnectResult | Exception] = {}
        self.default_status = GatewayState.CLOSED
        self.default_connect = ConnectResult(state=GatewayState.CONNECTING)
        # Awaited inside connect, to land concurrent updates mid-call
        self.on_connect: Callable[[str], Awaitable[None]] | None = None

    def calls_for(self, operation: str) -> list[str]:
        return [ref for op, ref in self.calls if op == operation]

    async def status(self, ref: str, timeout: float | None = None) -> GatewayStatus:
        self.calls.append(("status", ref))
        result = self.status_results.get(ref, self.default_status)
        if isinstance(result, Exception):
            raise result
        return GatewayStatus(state=result)

    async def connect(self, ref: str, timeout: float | None = None) -> ConnectResult:
        self.calls.append(("connect", ref))
        if self.on_connect is not None:
            await self.on_connect(ref)
        result = self.connect_results.get(ref, self.default_connect)
        if isinstance(result, Exception):
            raise result
        return result


class FakeNotifier:
    """Notifier that records deliveries and can be told to fail."""

    def __init__(self):
        self.sent: list[dict[str, str]] = []
        self.failing: set[str] = set()
        # Awaited inside send, to land concurrent updates mid-delivery
        self.on_send: Callable[[str], Awaitable[None]] | None = None

    async def send(self, recipient: str, subject: str, body: str) -> str | None:
        if self.on_send is not None:
            await self.on_send(recipient)
        if recipient in self.failing:
            raise NotifierError(f"Delivery to {recipient} rejected")
        self.sent.append({"recipient": recipient, "subject": subject, "body": body})
        return f"msg-{len(self.sent)}"


class MockRedisClient:
    """Mock Redis client for testing."""

    def __init__(self):
        self.events: list[Event] = []
        self.fail = False

    async def connect(self):
        pass

    async def close(self):
        pass

    async def publish_event(self, event: Event) -> int:
        if self.fail:
            raise RedisConnectionError("Redis unavailable")
        self.events.append(event)
        return 1

    async def health_check(self) -> dict[str, Any]:
        return {"status": "healthy", "databases": {"pubsub": {"status": "healthy"}}}

    def event_types(self) -> list[str]:
        return [
            e.event_type.value if hasattr(e.event_type, "value") else e.event_type
            for e in self.events
        ]


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def fake_notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def mock_redis() -> MockRedisClient:
    """Create mock Redis client."""
    return MockRedisClient()


@pytest.fixture
def events(mock_redis):
    return EventService(mock_redis)


# =============================================================================
# Seed helpers
# =============================================================================


@pytest.fixture
def make_tenant(session_factory) -> Callable[..., Awaitable[TenantModel]]:
    """Insert a tenant, optionally with profiles."""

    async def _make(
        name: str = "Acme Clinic",
        contact_email: str | None = "contact@acme.example",
        profiles: list[dict[str, Any]] | None = None,
        admin_profile_index: int | None = None,
    ) -> TenantModel:
        async with session_factory() as session:
            tenant = TenantModel(id=uuid4(), name=name, contact_email=contact_email)
            session.add(tenant)
            await session.flush()

            created = []
            for i, data in enumerate(profiles or []):
                profile = TenantProfileModel(
                    id=uuid4(),
                    tenant_id=tenant.id,
                    created_at=NOW.replace(minute=i),
                    **data,
                )
                session.add(profile)
                created.append(profile)
            await session.flush()

            if admin_profile_index is not None:
                tenant.admin_profile_id = created[admin_profile_index].id
            await session.commit()
            return tenant

    return _make


@pytest.fixture
def make_session(session_factory) -> Callable[..., Awaitable[ChannelSessionModel]]:
    """Insert a channel session row with the given columns."""

    async def _make(tenant_id: UUID, instance_name: str | None = None, **fields: Any):
        defaults: dict[str, Any] = {
            "status": "connected",
            "created_at": NOW.replace(hour=0),
            "updated_at": NOW.replace(hour=0),
        }
        defaults.update(fields)
        async with session_factory() as session:
            row = ChannelSessionModel(
                id=uuid4(),
                tenant_id=tenant_id,
                instance_name=instance_name or f"inst-{uuid4().hex[:8]}",
                **defaults,
            )
            session.add(row)
            await session.commit()
            return row

    return _make


@pytest.fixture
def load_session(session_factory) -> Callable[[UUID], Awaitable[ChannelSessionModel]]:
    """Re-read a session row in a fresh database session."""

    async def _load(session_id: UUID) -> ChannelSessionModel:
        async with session_factory() as session:
            return await session.get(ChannelSessionModel, session_id)

    return _load


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def reconciler(session_factory, fake_gateway, monitor_settings, events, clock):
    return Reconciler(session_factory, fake_gateway, monitor_settings, events=events, clock=clock)


@pytest.fixture
def alert_monitor(session_factory, fake_notifier, monitor_settings, events, clock):
    return AlertMonitor(
        session_factory, fake_notifier, monitor_settings, events=events, clock=clock
    )


@pytest_asyncio.fixture
async def test_client(
    test_engine,
    session_factory,
    mock_redis,
    events,
    clock,
    reconciler,
    alert_monitor,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    from session_monitor.main import app

    # Override app state
    app.state.db_engine = test_engine
    app.state.session_factory = session_factory
    app.state.redis = mock_redis
    app.state.events = events
    app.state.clock = clock
    app.state.reconciler = reconciler
    app.state.alert_monitor = alert_monitor

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# =============================================================================
# Markers
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line(
        "markers", "integration: Integration tests (require external services)"
    )
