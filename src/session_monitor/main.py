"""Session Monitor FastAPI Application.

The Session Monitor keeps tenants' messaging gateway sessions healthy:
- Reconciliation of session state against the gateway
- Bounded automated recovery with escalation to re-authentication
- One disconnection alert per tenant per outage
- Event emission for session state changes
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from healthcore.clock import SystemClock
from healthcore.config import SessionMonitorSettings
from healthcore.database import Base, create_engine, create_session_factory
from healthcore.observability import get_logger, setup_logging
from healthcore.redis_client import RedisClient

from .api import health, passes, sessions
from .clients import EmailNotifier, SessionGatewayClient, TokenBucket
from .services.alert_monitor import AlertMonitor
from .services.event_service import EventService
from .services.reconciler import Reconciler
from .services.recipients import RecipientResolver

settings = SessionMonitorSettings()
setup_logging(log_level=settings.log_level, log_format=settings.log_format)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown of:
    - Database connections
    - Redis connections
    - Gateway and notifier HTTP clients
    - Background reconciliation and alert tasks
    """
    logger.info("Starting Session Monitor service", version=settings.app_version)

    # Initialize database
    engine = create_engine(settings.database.async_url, echo=settings.debug)
    session_factory = create_session_factory(engine)
    app.state.db_engine = engine
    app.state.session_factory = session_factory

    # Create tables if they don't exist
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")

    # Initialize Redis
    redis_client = RedisClient(settings.redis.url)
    await redis_client.connect()
    app.state.redis = redis_client

    clock = SystemClock()
    events = EventService(redis_client)
    app.state.clock = clock
    app.state.events = events

    # One bucket for every call to the gateway
    limiter = TokenBucket(settings.gateway.requests_per_second, settings.gateway.burst)
    gateway = SessionGatewayClient(settings.gateway, limiter=limiter)
    notifier = EmailNotifier(settings.notifier)
    app.state.gateway = gateway
    app.state.notifier = notifier

    reconciler = Reconciler(session_factory, gateway, settings, events=events, clock=clock)
    alert_monitor = AlertMonitor(
        session_factory,
        notifier,
        settings,
        resolver=RecipientResolver(settings.notifier.operator_email),
        events=events,
        clock=clock,
    )
    app.state.reconciler = reconciler
    app.state.alert_monitor = alert_monitor

    tasks: list[asyncio.Task] = []
    if settings.scheduler_enabled:
        tasks.append(asyncio.create_task(reconciler.run_periodic()))
        tasks.append(asyncio.create_task(alert_monitor.run_periodic()))
    app.state.background_tasks = tasks

    logger.info(
        "Session Monitor service started successfully",
        scheduler_enabled=settings.scheduler_enabled,
    )

    yield

    # Shutdown
    logger.info("Shutting down Session Monitor service")
    reconciler.stop()
    alert_monitor.stop()
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
    await gateway.close()
    await notifier.close()
    await redis_client.close()
    await engine.dispose()
    logger.info("Session Monitor service shutdown complete")


app = FastAPI(
    title="Session Monitor Service",
    description="Connection health and recovery for tenant messaging gateway sessions",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sessions.router, prefix="/api/v1", tags=["Sessions"])
app.include_router(passes.router, prefix="/api/v1", tags=["Passes"])
app.include_router(health.router, tags=["Health"])


@app.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": "session-monitor",
        "version": settings.app_version,
        "docs": "/docs",
    }


def run() -> None:
    """Serve the application with the configured bind address and workers."""
    uvicorn.run(
        "session_monitor.main:app",
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
        log_config=None,
    )
