"""Messaging gateway client.

Thin, timeout-bounded wrapper around the gateway's instance API. Every
failure surfaces as a ``GatewayError`` subclass; httpx exceptions never
leak to callers.
"""

from __future__ import annotations

import time
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from healthcore.config import GatewaySettings
from healthcore.models import ConnectResult, GatewayState, GatewayStatus
from healthcore.observability import get_logger, log_external_call_end, log_external_call_start

from .rate_limiter import TokenBucket

logger = get_logger(__name__)


class GatewayError(Exception):
    """Base class for gateway call failures."""


class GatewayTimeoutError(GatewayError):
    """The gateway did not answer within the call timeout."""


class GatewayUnavailableError(GatewayError):
    """The gateway could not be reached."""


class GatewayHTTPError(GatewayError):
    """The gateway answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        super().__init__(f"Gateway returned {status_code}: {message[:200]}".rstrip(": "))


class SessionGateway(Protocol):
    """Contract consumed by the reconciler."""

    async def status(self, ref: str, timeout: float | None = None) -> GatewayStatus: ...

    async def connect(self, ref: str, timeout: float | None = None) -> ConnectResult: ...


def _extract_state(data: dict[str, Any]) -> GatewayState:
    instance = data.get("instance")
    raw = instance.get("state") if isinstance(instance, dict) else None
    return GatewayState.parse(raw or data.get("state"))


def _extract_reauth_payload(data: dict[str, Any]) -> str | None:
    """Pull the pairing artifact out of the gateway's response variants."""
    if data.get("base64"):
        return data["base64"]
    qrcode = data.get("qrcode")
    if isinstance(qrcode, dict) and qrcode.get("base64"):
        return qrcode["base64"]
    if isinstance(qrcode, str) and len(qrcode) > 10:
        return qrcode
    return data.get("pairingCode") or data.get("code") or None


class SessionGatewayClient:
    """HTTP client for the messaging gateway."""

    SERVICE = "messaging-gateway"

    def __init__(
        self,
        settings: GatewaySettings,
        limiter: TokenBucket | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self.limiter = limiter
        headers = {"Content-Type": "application/json"}
        if settings.api_key:
            headers["apikey"] = settings.api_key
        self.client = httpx.AsyncClient(
            base_url=settings.base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(settings.connect_timeout_seconds, connect=5.0),
            transport=transport,
        )

    async def status(self, ref: str, timeout: float | None = None) -> GatewayStatus:
        """Query the live connection state of ``ref``."""
        data = await self._get(
            "status",
            f"/instance/connectionState/{quote(ref, safe='')}",
            timeout or self.settings.status_timeout_seconds,
        )
        return GatewayStatus(state=_extract_state(data))

    async def connect(self, ref: str, timeout: float | None = None) -> ConnectResult:
        """Ask the gateway to (re)open ``ref``."""
        data = await self._get(
            "connect",
            f"/instance/connect/{quote(ref, safe='')}",
            timeout or self.settings.connect_timeout_seconds,
        )
        return ConnectResult(
            state=_extract_state(data),
            reauth_payload=_extract_reauth_payload(data),
        )

    async def _get(self, operation: str, path: str, timeout: float) -> dict[str, Any]:
        if self.limiter:
            await self.limiter.acquire()

        log_external_call_start(logger, self.SERVICE, operation)
        started = time.perf_counter()
        error: str | None = None
        try:
            response = await self.client.get(path, timeout=timeout)
            if not response.is_success:
                raise GatewayHTTPError(response.status_code, response.text)
            try:
                data = response.json()
            except ValueError:
                data = {}
            return data if isinstance(data, dict) else {}
        except httpx.TimeoutException as e:
            error = "timeout"
            raise GatewayTimeoutError(f"{operation} timed out after {timeout}s") from e
        except httpx.TransportError as e:
            error = str(e) or e.__class__.__name__
            raise GatewayUnavailableError(f"{operation} failed: {error}") from e
        except GatewayHTTPError as e:
            error = str(e)
            raise
        finally:
            log_external_call_end(
                logger,
                self.SERVICE,
                operation,
                success=error is None,
                duration_ms=(time.perf_counter() - started) * 1000,
                error=error,
            )

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()
