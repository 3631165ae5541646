"""Append-only audit log access."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from healthcore.database import NotificationLogModel


class NotificationLogRepository:
    """Writes and reads audit entries. Entries are never updated."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(
        self,
        event_type: str,
        event_key: str,
        email_sent_to: str,
        details: dict[str, Any],
        now: datetime,
        tenant_id: UUID | None = None,
    ) -> NotificationLogModel:
        entry = NotificationLogModel(
            event_type=event_type,
            event_key=event_key,
            email_sent_to=email_sent_to,
            tenant_id=tenant_id,
            details=details,
            created_at=now,
        )
        self.session.add(entry)
        await self.session.commit()
        return entry

    async def list_by_event_type(self, event_type: str) -> list[NotificationLogModel]:
        result = await self.session.execute(
            select(NotificationLogModel)
            .where(NotificationLogModel.event_type == event_type)
            .order_by(NotificationLogModel.created_at)
        )
        return list(result.scalars().all())
