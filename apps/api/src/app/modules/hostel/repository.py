"""
Hostel Repository
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.hostel.models import AllocationStatus, HostelAllocation


async def get_active_allocations(
    db: AsyncSession,
    organization_id: UUID | None = None,
) -> list[HostelAllocation]:
    """Active allocations in a stable order, optionally for one organization."""
    query = select(HostelAllocation).where(HostelAllocation.status == AllocationStatus.ACTIVE)
    if organization_id is not None:
        query = query.where(HostelAllocation.organization_id == organization_id)

    result = await db.execute(
        query.order_by(HostelAllocation.organization_id, HostelAllocation.allocated_at)
    )
    return list(result.scalars().all())
