"""Messaging gateway result models."""

from enum import Enum

from pydantic import Field

from .base import HealthBaseModel


class GatewayState(str, Enum):
    """Connection state as reported by the gateway."""

    OPEN = "open"
    CONNECTING = "connecting"
    CLOSED = "closed"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: str | None) -> "GatewayState":
        """Normalize the gateway's state vocabulary."""
        value = (raw or "").strip().lower()
        if value in ("open", "connected"):
            return cls.OPEN
        if value in ("connecting", "qr"):
            return cls.CONNECTING
        if value in ("close", "closed", "disconnected"):
            return cls.CLOSED
        return cls.UNKNOWN


class GatewayStatus(HealthBaseModel):
    """Result of a connection state query."""

    state: GatewayState = GatewayState.UNKNOWN


class ConnectResult(HealthBaseModel):
    """Result of a connect request.

    ``reauth_payload`` carries the pairing artifact (QR code or pairing
    code) when the gateway can only reconnect after a human re-pairs.
    """

    state: GatewayState = GatewayState.UNKNOWN
    reauth_payload: str | None = Field(default=None, repr=False)

    @property
    def requires_reauth(self) -> bool:
        return bool(self.reauth_payload)
