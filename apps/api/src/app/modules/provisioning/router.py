"""
Provisioning Router

Endpoints:
- POST /provisioning/accounts - Provision the login identity of an application or trainee
- GET /provisioning/applications/{id}/records - Provisioning attempts for an application
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Principal, get_current_principal
from app.core.database import get_db
from app.core.errors import ServiceError, to_http_exception
from app.modules.provisioning import service
from app.modules.provisioning.models import ProvisioningTrigger
from app.modules.provisioning.schemas import (
    ProvisioningRecordResponse,
    ProvisionRequest,
    ProvisionResult,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/accounts",
    response_model=ProvisionResult,
    summary="Provision Trainee Account",
    description="""
Create (or link) the login identity for a cleared applicant.

Safe to repeat: once linked, the call returns the existing identity with
outcome `already_existed`. A `503 PROVISIONING_FAILED` response leaves the
application in `failed` and can be retried.
""",
)
async def provision_account(
    data: ProvisionRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ProvisionResult:
    try:
        return await service.provision_account(
            db,
            principal,
            application_id=data.application_id,
            trainee_id=data.trainee_id,
            force_reprovision=data.force_reprovision,
            trigger=ProvisioningTrigger.MANUAL,
        )
    except ServiceError as e:
        raise to_http_exception(e) from e


@router.get(
    "/applications/{application_id}/records",
    response_model=list[ProvisioningRecordResponse],
    summary="List Provisioning Attempts",
)
async def list_records(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> list[ProvisioningRecordResponse]:
    try:
        records = await service.list_provisioning_records(db, principal, application_id)
    except ServiceError as e:
        raise to_http_exception(e) from e
    return [ProvisioningRecordResponse.model_validate(r) for r in records]
