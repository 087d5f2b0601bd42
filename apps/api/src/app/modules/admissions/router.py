"""
Admissions Router

API endpoints for the applicant lifecycle from submission to enrollment.

Endpoints:
- POST /admissions/applications - Submit an application (public)
- GET /admissions/applications/{id} - Get application details
- POST /admissions/applications/{id}/screen - Record the screening decision
- POST /admissions/applications/{id}/reject - Close the application
- POST /admissions/applications/{id}/application-fee - Raise a missing application fee
- POST /admissions/applications/{id}/register - Register against a qualification
- POST /admissions/applications/{id}/finalize-enrollment - Finalize the enrollment record

Security:
- Submission is public and rate limited per client IP
- All other endpoints require a bearer token; role checks happen in the service
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Principal, get_current_principal
from app.core.database import get_db
from app.core.errors import ServiceError, to_http_exception
from app.core.rate_limit import rate_limit
from app.modules.admissions import service
from app.modules.admissions.schemas import (
    ApplicationCreate,
    ApplicationFeeResult,
    ApplicationResponse,
    EnrollmentResult,
    RegisterRequest,
    RegistrationResult,
    RejectionResult,
    RejectRequest,
    ScreeningResult,
    ScreenRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Public submission: 5 per client IP per hour
RATE_LIMIT_SUBMIT = (5, 3600)


def _handle_service_error(e: ServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    raise to_http_exception(e) from e


@router.post(
    "/applications",
    response_model=ApplicationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Application",
    description="""
Submit a new trainee application.

The application starts as `applied` with qualification status `pending`.
Only one application per national ID is accepted per organization.
""",
    dependencies=[
        Depends(rate_limit(limit=RATE_LIMIT_SUBMIT[0], window_seconds=RATE_LIMIT_SUBMIT[1]))
    ],
)
async def submit_application(
    data: ApplicationCreate,
    db: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    try:
        application = await service.submit_application(db, data)
    except ServiceError as e:
        _handle_service_error(e)
    return ApplicationResponse.model_validate(application)


@router.get(
    "/applications/{application_id}",
    response_model=ApplicationResponse,
    summary="Get Application",
)
async def get_application(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ApplicationResponse:
    try:
        application = await service.get_application(db, principal, application_id)
    except ServiceError as e:
        _handle_service_error(e)
    return ApplicationResponse.model_validate(application)


@router.post(
    "/applications/{application_id}/screen",
    response_model=ScreeningResult,
    summary="Screen Application",
)
async def screen_application(
    application_id: UUID,
    data: ScreenRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ScreeningResult:
    try:
        return await service.screen_application(
            db, principal, application_id, data.decision, data.remarks
        )
    except ServiceError as e:
        _handle_service_error(e)


@router.post(
    "/applications/{application_id}/reject",
    response_model=RejectionResult,
    summary="Reject Application",
)
async def reject_application(
    application_id: UUID,
    data: RejectRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> RejectionResult:
    try:
        return await service.reject_application(db, principal, application_id, data.reason)
    except ServiceError as e:
        _handle_service_error(e)


@router.post(
    "/applications/{application_id}/application-fee",
    response_model=ApplicationFeeResult,
    summary="Raise Application Fee",
    description="Create the application-fee obligation when screening skipped it. Idempotent.",
)
async def ensure_application_fee(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ApplicationFeeResult:
    try:
        return await service.ensure_application_fee(db, principal, application_id)
    except ServiceError as e:
        _handle_service_error(e)


@router.post(
    "/applications/{application_id}/register",
    response_model=RegistrationResult,
    summary="Register Applicant",
    description="""
Register a paid, provisioned applicant against a qualification.

Creates the trainee record and the registration-fee obligation. Repeating
the call while the fee is pending returns the same trainee.
""",
)
async def register_application(
    application_id: UUID,
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> RegistrationResult:
    try:
        return await service.register_application(
            db, principal, application_id, data.qualification_id, data.academic_year
        )
    except ServiceError as e:
        _handle_service_error(e)


@router.post(
    "/applications/{application_id}/finalize-enrollment",
    response_model=EnrollmentResult,
    summary="Finalize Enrollment",
)
async def finalize_enrollment(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> EnrollmentResult:
    try:
        return await service.finalize_enrollment(db, principal, application_id)
    except ServiceError as e:
        _handle_service_error(e)
