"""Read-only access to the tenant directory."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from healthcore.database import TenantModel, TenantProfileModel

ADMIN_ROLES = ("owner", "admin")


class TenantRepository:
    """Repository for tenant and profile lookups."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, tenant_id: UUID) -> TenantModel | None:
        result = await self.session.execute(
            select(TenantModel).where(TenantModel.id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def get_profile(self, profile_id: UUID) -> TenantProfileModel | None:
        result = await self.session.execute(
            select(TenantProfileModel).where(TenantProfileModel.id == profile_id)
        )
        return result.scalar_one_or_none()

    async def list_admin_profiles(self, tenant_id: UUID) -> list[TenantProfileModel]:
        """Profiles holding an administrative role, oldest first."""
        result = await self.session.execute(
            select(TenantProfileModel)
            .where(
                TenantProfileModel.tenant_id == tenant_id,
                TenantProfileModel.role.in_(ADMIN_ROLES),
                TenantProfileModel.email.is_not(None),
            )
            .order_by(TenantProfileModel.created_at, TenantProfileModel.id)
        )
        return list(result.scalars().all())
