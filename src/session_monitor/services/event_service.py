"""Event service for Redis pub/sub."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from redis.exceptions import RedisError

from healthcore.models.events import Event, EventType
from healthcore.observability import get_logger
from healthcore.redis_client import RedisClient

logger = get_logger(__name__)


class EventService:
    """Service for publishing session events to Redis.

    Events emitted:
    - SESSION_STATUS_CHANGED
    - SESSION_RECONNECTED
    - SESSION_REAUTH_REQUIRED
    - SESSION_ALERT_SENT

    Publishing is best effort: a Redis failure is logged and never breaks
    the caller. With no Redis client configured, events are dropped.
    """

    def __init__(self, redis_client: RedisClient | None):
        self.redis = redis_client

    async def publish(
        self,
        event_type: EventType,
        payload: dict[str, Any],
        tenant_id: UUID | None = None,
        session_id: UUID | None = None,
    ) -> None:
        if self.redis is None:
            return

        event = Event(
            event_id=uuid4(),
            event_type=event_type,
            tenant_id=tenant_id,
            session_id=session_id,
            timestamp=datetime.now(timezone.utc),
            payload=payload,
        )

        try:
            await self.redis.publish_event(event)
        except (RedisError, RuntimeError) as e:
            logger.warning("Event publish failed", event_type=event_type.value, error=str(e))
            return
        logger.debug("Event published", event_type=event_type.value)

    async def publish_status_changed(
        self, session: Any, old_status: str, new_status: str
    ) -> None:
        if old_status == new_status:
            return
        payload = {
            "session_id": str(session.id),
            "instance_name": session.instance_name,
            "old_status": old_status,
            "new_status": new_status,
        }
        await self.publish(
            EventType.SESSION_STATUS_CHANGED, payload, session.tenant_id, session.id
        )

    async def publish_reconnected(self, session: Any, action: str) -> None:
        payload = {
            "session_id": str(session.id),
            "instance_name": session.instance_name,
            "action": action,
        }
        await self.publish(EventType.SESSION_RECONNECTED, payload, session.tenant_id, session.id)

    async def publish_reauth_required(self, session: Any, reason: str) -> None:
        payload = {
            "session_id": str(session.id),
            "instance_name": session.instance_name,
            "reason": reason,
        }
        await self.publish(
            EventType.SESSION_REAUTH_REQUIRED, payload, session.tenant_id, session.id
        )

    async def publish_alert_sent(
        self, tenant_id: UUID, session_ids: list[UUID], recipient: str
    ) -> None:
        payload = {
            "tenant_id": str(tenant_id),
            "session_ids": [str(s) for s in session_ids],
            "recipient": recipient,
        }
        await self.publish(EventType.SESSION_ALERT_SENT, payload, tenant_id)
