"""Channel session API schemas."""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, Field

from healthcore.models import ChannelSession, GatewayState, OutageEpisode


class SessionCreateRequest(BaseModel):
    """Provision a channel session for a tenant."""

    tenant_id: UUID
    instance_name: str = Field(
        min_length=1,
        max_length=128,
        pattern=r"^[A-Za-z0-9][A-Za-z0-9_.-]*$",
        description="Gateway reference of the session",
    )
    display_name: str | None = Field(default=None, max_length=128)
    phone_number: str | None = Field(default=None, max_length=32)


class SessionResponse(ChannelSession):
    """Channel session as returned by the API."""


class SessionListResponse(BaseModel):
    items: list[SessionResponse]
    total: int


class SessionDetailResponse(SessionResponse):
    episodes: list[OutageEpisode] = Field(default_factory=list)


class GatewayStateReport(BaseModel):
    """Connection state pushed by the gateway's webhook."""

    state: GatewayState
