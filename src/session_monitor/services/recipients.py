"""Alert recipient resolution.

One address per tenant, first match wins:
designated admin profile -> tenant contact email -> any profile with an
administrative role -> global operator fallback.
"""

from __future__ import annotations

from enum import Enum
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from healthcore.observability import get_logger

from ..repositories import TenantRepository

logger = get_logger(__name__)


class RecipientSource(str, Enum):
    """Which link of the fallback chain produced the address."""

    ADMIN_PROFILE = "admin_profile"
    CONTACT_EMAIL = "contact_email"
    ADMIN_ROLE = "admin_role"
    OPERATOR = "operator"


class Recipient(BaseModel):
    email: str
    source: RecipientSource
    tenant_name: str | None = None


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class RecipientResolver:
    """Resolves the alert recipient for a tenant."""

    def __init__(self, operator_email: str | None = None):
        self.operator_email = _clean(operator_email)

    async def resolve(self, db: AsyncSession, tenant_id: UUID) -> Recipient | None:
        """Walk the fallback chain.

        Returns:
            Recipient, or None when no link resolves
        """
        repo = TenantRepository(db)
        tenant = await repo.get_by_id(tenant_id)
        tenant_name = tenant.name if tenant else None

        if tenant is not None:
            if tenant.admin_profile_id is not None:
                profile = await repo.get_profile(tenant.admin_profile_id)
                if profile is not None and profile.tenant_id == tenant_id:
                    if email := _clean(profile.email):
                        return Recipient(
                            email=email,
                            source=RecipientSource.ADMIN_PROFILE,
                            tenant_name=tenant_name,
                        )

            if email := _clean(tenant.contact_email):
                return Recipient(
                    email=email,
                    source=RecipientSource.CONTACT_EMAIL,
                    tenant_name=tenant_name,
                )

            for profile in await repo.list_admin_profiles(tenant_id):
                if email := _clean(profile.email):
                    return Recipient(
                        email=email,
                        source=RecipientSource.ADMIN_ROLE,
                        tenant_name=tenant_name,
                    )
        else:
            logger.warning("Tenant not found in directory", tenant_id=str(tenant_id))

        if self.operator_email:
            return Recipient(
                email=self.operator_email,
                source=RecipientSource.OPERATOR,
                tenant_name=tenant_name,
            )

        return None
