"""
Organization Repository

Database operations for organizations and fee types.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.fees.models import FeePurpose
from app.modules.organizations.models import FeeType, Organization


class OrganizationRepository:
    """Repository for organization database operations."""

    @staticmethod
    async def get_by_id(db: AsyncSession, organization_id: UUID) -> Organization | None:
        return await db.get(Organization, organization_id)

    @staticmethod
    async def get_for_update(db: AsyncSession, organization_id: UUID) -> Organization | None:
        """
        Get an organization with a row lock.

        Held while minting identifiers so two clearances in the same
        organization never read the same ``trainee_sequence``.
        """
        result = await db.execute(
            select(Organization)
            .where(Organization.id == organization_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


class FeeTypeRepository:
    """Repository for fee type lookups."""

    @staticmethod
    async def get_active_for_purpose(
        db: AsyncSession,
        organization_id: UUID,
        purpose: FeePurpose,
    ) -> FeeType | None:
        """
        Get the organization's active fee type for a purpose.

        Returns:
            The most recently created active fee type, or None if the
            organization has not configured one
        """
        result = await db.execute(
            select(FeeType)
            .where(
                FeeType.organization_id == organization_id,
                FeeType.purpose == purpose,
                FeeType.is_active.is_(True),
            )
            .order_by(FeeType.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
