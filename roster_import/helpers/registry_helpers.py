"""
Registry Helpers
Lookups against the property registry used while validating imports.
"""
import uuid
from typing import FrozenSet, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roster_import.models import Tenant, Unit, User


async def get_existing_unit_numbers(db: AsyncSession, tenant_id: uuid.UUID) -> FrozenSet[str]:
    """
    Unit identifiers already registered for a tenant.

    Args:
        db: Async database session
        tenant_id: Tenant whose registry is read

    Returns:
        Trimmed unit numbers, for the existing-unit collision check.
    """
    result = await db.execute(
        select(Unit.number).where(Unit.tenant_id == tenant_id)
    )
    return frozenset(str(number).strip() for number in result.scalars().all())


async def get_administered_tenant(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user: User
) -> Optional[Tenant]:
    """Tenant with this id if the user is its admin, else None."""
    result = await db.execute(
        select(Tenant).where(Tenant.id == tenant_id, Tenant.admin_id == user.id)
    )
    return result.scalar_one_or_none()
