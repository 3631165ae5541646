"""Email notifier.

Delivers rendered alerts through an HTTP email API. The caller resolves
the recipient; this client only delivers.
"""

from __future__ import annotations

import time
from typing import Protocol

import httpx

from healthcore.config import NotifierSettings
from healthcore.observability import get_logger, log_external_call_end, log_external_call_start

logger = get_logger(__name__)


class NotifierError(Exception):
    """Raised when an alert could not be delivered."""


class Notifier(Protocol):
    """Contract consumed by the alert monitor."""

    async def send(self, recipient: str, subject: str, body: str) -> str | None: ...


class EmailNotifier:
    """Client for the email delivery API."""

    SERVICE = "email-api"

    def __init__(
        self,
        settings: NotifierSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self.client = httpx.AsyncClient(
            base_url=settings.api_url.rstrip("/"),
            timeout=httpx.Timeout(settings.timeout_seconds, connect=5.0),
            transport=transport,
        )

    async def send(self, recipient: str, subject: str, body: str) -> str | None:
        """Deliver an HTML email.

        Returns:
            Provider message id, when the provider returns one

        Raises:
            NotifierError: Delivery was not accepted
        """
        if not self.settings.api_key:
            raise NotifierError("Email delivery API key is not configured")

        log_external_call_start(logger, self.SERVICE, "send")
        started = time.perf_counter()
        error: str | None = None
        try:
            response = await self.client.post(
                "/emails",
                headers={"Authorization": f"Bearer {self.settings.api_key}"},
                json={
                    "from": self.settings.from_address,
                    "to": [recipient],
                    "subject": subject,
                    "html": body,
                },
            )
            if not response.is_success:
                error = f"status {response.status_code}"
                raise NotifierError(
                    f"Email API returned {response.status_code}: {response.text[:200]}"
                )
            try:
                return response.json().get("id")
            except ValueError:
                return None
        except httpx.TimeoutException as e:
            error = "timeout"
            raise NotifierError("Email delivery timed out") from e
        except httpx.TransportError as e:
            error = str(e) or e.__class__.__name__
            raise NotifierError(f"Email delivery failed: {error}") from e
        finally:
            log_external_call_end(
                logger,
                self.SERVICE,
                "send",
                success=error is None,
                duration_ms=(time.perf_counter() - started) * 1000,
                error=error,
            )

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()
