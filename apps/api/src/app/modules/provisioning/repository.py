"""
Provisioning Repository
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.provisioning.models import (
    ProvisioningOutcome,
    ProvisioningRecord,
    ProvisioningTrigger,
)

logger = logging.getLogger(__name__)


async def create_record(
    db: AsyncSession,
    *,
    organization_id: UUID,
    application_id: UUID,
    trigger: ProvisioningTrigger,
    outcome: ProvisioningOutcome,
    email: str | None = None,
    user_id: UUID | None = None,
    trainee_id: UUID | None = None,
    error_message: str | None = None,
    details: dict[str, Any] | None = None,
) -> ProvisioningRecord:
    record = ProvisioningRecord(
        organization_id=organization_id,
        application_id=application_id,
        trainee_id=trainee_id,
        user_id=user_id,
        email=email,
        trigger=trigger,
        outcome=outcome,
        error_message=error_message,
        details=details or {},
    )
    db.add(record)
    await db.flush()
    logger.debug(f"Recorded provisioning {outcome.value} for application {application_id}")
    return record


async def list_for_application(db: AsyncSession, application_id: UUID) -> list[ProvisioningRecord]:
    result = await db.execute(
        select(ProvisioningRecord)
        .where(ProvisioningRecord.application_id == application_id)
        .order_by(ProvisioningRecord.created_at)
    )
    return list(result.scalars().all())
