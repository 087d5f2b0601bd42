"""
Hostel Router

Endpoints:
- POST /hostel/fees/generate - Generate this month's (or a given month's) hostel fees
"""

import logging

from fastapi import APIRouter, Depends

from app.core.auth import Principal, authorize, get_current_principal
from app.core.errors import ServiceError, to_http_exception
from app.modules.hostel.jobs import generate_recurring_fees
from app.modules.hostel.schemas import GenerateFeesRequest, GenerateFeesResult
from app.modules.users.models import UserRole

logger = logging.getLogger(__name__)

router = APIRouter()

HOSTEL_ROLES = (UserRole.ORGANIZATION_ADMIN, UserRole.ADMIN, UserRole.HOSTEL_COORDINATOR)


@router.post(
    "/fees/generate",
    response_model=GenerateFeesResult,
    summary="Generate Hostel Fees",
    description="""
Run the monthly hostel-fee generator on demand.

Safe to repeat: allocations that already have an entry for the period are
counted as `skipped`. Only super admins may omit `organization_id`.
""",
)
async def generate_fees(
    data: GenerateFeesRequest,
    principal: Principal = Depends(get_current_principal),
) -> GenerateFeesResult:
    try:
        authorize(principal, data.organization_id, HOSTEL_ROLES)
    except ServiceError as e:
        raise to_http_exception(e) from e

    logger.info(f"Hostel fee generation requested by {principal.id} for {data.organization_id}")
    result = await generate_recurring_fees(data.period, organization_id=data.organization_id)
    return GenerateFeesResult(**result)
