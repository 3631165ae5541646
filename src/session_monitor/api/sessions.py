"""Channel session API endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Request, status

from healthcore.models import SessionStatus

from ..schemas.session import (
    GatewayStateReport,
    SessionCreateRequest,
    SessionDetailResponse,
    SessionListResponse,
    SessionResponse,
)
from ..services.session_service import (
    InvalidTransitionError,
    SessionAlreadyExistsError,
    SessionNotFoundError,
    SessionService,
)


router = APIRouter()


def _service(request: Request, session) -> SessionService:
    return SessionService(session, request.app.state.events, request.app.state.clock)


def _not_found(e: SessionNotFoundError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"error": "SESSION_NOT_FOUND", "message": str(e)},
    )


def _invalid_transition(e: InvalidTransitionError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"error": "INVALID_TRANSITION", "message": str(e)},
    )


# =============================================================================
# Session CRUD Endpoints
# =============================================================================


@router.post(
    "/sessions",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Provision a channel session",
    description="Register a tenant's gateway session. It awaits pairing until re-auth completes.",
)
async def create_session(request: Request, session_data: SessionCreateRequest):
    async with request.app.state.session_factory() as session:
        try:
            return await _service(request, session).create(session_data)
        except SessionAlreadyExistsError as e:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"error": "SESSION_ALREADY_EXISTS", "message": str(e)},
            )


@router.get(
    "/sessions",
    response_model=SessionListResponse,
    summary="List channel sessions",
    description="List sessions with optional tenant and status filters.",
)
async def list_sessions(
    request: Request,
    tenant_id: UUID | None = Query(None, description="Filter by tenant"),
    session_status: SessionStatus | None = Query(
        None, alias="status", description="Filter by status"
    ),
):
    async with request.app.state.session_factory() as session:
        return await _service(request, session).list(
            tenant_id=tenant_id,
            status=session_status.value if session_status else None,
        )


@router.get(
    "/sessions/{session_id}",
    response_model=SessionDetailResponse,
    summary="Get session by ID",
    description="Get a session together with its outage episodes.",
)
async def get_session(request: Request, session_id: UUID):
    async with request.app.state.session_factory() as session:
        try:
            return await _service(request, session).get(session_id)
        except SessionNotFoundError as e:
            raise _not_found(e)


# =============================================================================
# User Actions
# =============================================================================


@router.post(
    "/sessions/{session_id}/connect",
    response_model=SessionResponse,
    summary="Reconnect a session",
    description="Re-enrol the session in automated recovery with a fresh attempt budget.",
)
async def connect_session(request: Request, session_id: UUID):
    async with request.app.state.session_factory() as session:
        try:
            return await _service(request, session).connect(session_id)
        except SessionNotFoundError as e:
            raise _not_found(e)


@router.post(
    "/sessions/{session_id}/disconnect",
    response_model=SessionResponse,
    summary="Disconnect a session",
    description="Manual disconnect. Automation will not touch the session until it is reconnected.",
)
async def disconnect_session(request: Request, session_id: UUID):
    async with request.app.state.session_factory() as session:
        try:
            return await _service(request, session).disconnect(session_id)
        except SessionNotFoundError as e:
            raise _not_found(e)


@router.post(
    "/sessions/{session_id}/reauth-complete",
    response_model=SessionResponse,
    summary="Complete re-authentication",
    description="Mark a re-paired session as connected.",
)
async def complete_reauth(request: Request, session_id: UUID):
    async with request.app.state.session_factory() as session:
        try:
            return await _service(request, session).complete_reauth(session_id)
        except SessionNotFoundError as e:
            raise _not_found(e)
        except InvalidTransitionError as e:
            raise _invalid_transition(e)


@router.post(
    "/sessions/{session_id}/gateway-state",
    response_model=SessionResponse,
    summary="Report gateway state",
    description="Connection state pushed by the gateway.",
)
async def report_gateway_state(
    request: Request,
    session_id: UUID,
    report: GatewayStateReport,
):
    async with request.app.state.session_factory() as session:
        try:
            return await _service(request, session).report_gateway_state(
                session_id, report.state
            )
        except SessionNotFoundError as e:
            raise _not_found(e)
        except InvalidTransitionError as e:
            raise _invalid_transition(e)
