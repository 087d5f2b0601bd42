"""
Admissions Repository

Database operations for applications and trainee enrollment records, and
the transition tables for the three application status axes.

State machine (registration axis):
    APPLIED → PENDING_PAYMENT → PAYMENT_CLEARED → PROVISIONALLY_ADMITTED
        → REGISTRATION_FEE_PENDING → REGISTERED → FULLY_REGISTERED
    APPLIED → REJECTED

Functions here flush but never commit; the calling service owns the
transaction.
"""

import logging
from datetime import date
from uuid import UUID

from sqlalchemy import exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.admissions.models import (
    AccountProvisioningStatus,
    EnrollmentStatus,
    QualificationStatus,
    RegistrationStatus,
    Trainee,
    TraineeApplication,
)
from app.modules.shared.state import check_transition
from app.modules.users.models import User

logger = logging.getLogger(__name__)


# ============================================
# Status Transitions
# ============================================

VALID_QUALIFICATION_TRANSITIONS: dict[QualificationStatus, set[QualificationStatus]] = {
    QualificationStatus.PENDING: {
        QualificationStatus.PROVISIONALLY_QUALIFIED,
        QualificationStatus.DOES_NOT_QUALIFY,
    },
    QualificationStatus.PROVISIONALLY_QUALIFIED: set(),
    QualificationStatus.DOES_NOT_QUALIFY: set(),
}

VALID_REGISTRATION_TRANSITIONS: dict[RegistrationStatus, set[RegistrationStatus]] = {
    RegistrationStatus.APPLIED: {
        RegistrationStatus.PENDING_PAYMENT,
        RegistrationStatus.REJECTED,
    },
    RegistrationStatus.PENDING_PAYMENT: {RegistrationStatus.PAYMENT_CLEARED},
    RegistrationStatus.PAYMENT_CLEARED: {RegistrationStatus.PROVISIONALLY_ADMITTED},
    RegistrationStatus.PROVISIONALLY_ADMITTED: {RegistrationStatus.REGISTRATION_FEE_PENDING},
    RegistrationStatus.REGISTRATION_FEE_PENDING: {RegistrationStatus.REGISTERED},
    RegistrationStatus.REGISTERED: {RegistrationStatus.FULLY_REGISTERED},
    RegistrationStatus.FULLY_REGISTERED: set(),
    RegistrationStatus.REJECTED: set(),
}

VALID_PROVISIONING_TRANSITIONS: dict[
    AccountProvisioningStatus | None, set[AccountProvisioningStatus]
] = {
    None: {AccountProvisioningStatus.PENDING},
    AccountProvisioningStatus.PENDING: {
        AccountProvisioningStatus.PROVISIONED,
        AccountProvisioningStatus.FAILED,
    },
    AccountProvisioningStatus.FAILED: {AccountProvisioningStatus.PENDING},
    AccountProvisioningStatus.PROVISIONED: set(),
}


def transition_qualification(
    application: TraineeApplication, new_status: QualificationStatus
) -> None:
    check_transition(
        VALID_QUALIFICATION_TRANSITIONS,
        "qualification",
        application.qualification_status,
        new_status,
    )
    application.qualification_status = new_status


def transition_registration(
    application: TraineeApplication, new_status: RegistrationStatus
) -> None:
    check_transition(
        VALID_REGISTRATION_TRANSITIONS,
        "registration",
        application.registration_status,
        new_status,
    )
    application.registration_status = new_status


def transition_provisioning(
    application: TraineeApplication, new_status: AccountProvisioningStatus
) -> None:
    check_transition(
        VALID_PROVISIONING_TRANSITIONS,
        "account provisioning",
        application.account_provisioning_status,
        new_status,
    )
    application.account_provisioning_status = new_status


# ============================================
# Applications
# ============================================


async def create_application(
    db: AsyncSession,
    *,
    organization_id: UUID,
    national_id: str,
    first_name: str,
    last_name: str,
    email: str | None = None,
    phone: str | None = None,
    date_of_birth: date | None = None,
    gender: str | None = None,
    address: str | None = None,
    trade_id: UUID | None = None,
    preferred_level: int | None = None,
    needs_hostel_accommodation: bool = False,
) -> TraineeApplication:
    """Create an application in its initial state on every axis."""
    application = TraineeApplication(
        organization_id=organization_id,
        national_id=national_id,
        first_name=first_name,
        last_name=last_name,
        email=email.lower() if email else None,
        phone=phone,
        date_of_birth=date_of_birth,
        gender=gender,
        address=address,
        trade_id=trade_id,
        preferred_level=preferred_level,
        needs_hostel_accommodation=needs_hostel_accommodation,
        qualification_status=QualificationStatus.PENDING,
        registration_status=RegistrationStatus.APPLIED,
        account_provisioning_status=None,
    )
    db.add(application)
    await db.flush()

    logger.info(f"Created application {application.id} in organization {organization_id}")
    return application


async def get_by_id(db: AsyncSession, application_id: UUID) -> TraineeApplication | None:
    return await db.get(TraineeApplication, application_id)


async def get_for_update(db: AsyncSession, application_id: UUID) -> TraineeApplication | None:
    """
    Get an application with a row lock.

    Concurrent transitions on the same application serialize here and
    re-check their preconditions against fresh state.
    """
    result = await db.execute(
        select(TraineeApplication)
        .where(TraineeApplication.id == application_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_by_national_id(
    db: AsyncSession, organization_id: UUID, national_id: str
) -> TraineeApplication | None:
    result = await db.execute(
        select(TraineeApplication).where(
            TraineeApplication.organization_id == organization_id,
            TraineeApplication.national_id == national_id,
        )
    )
    return result.scalar_one_or_none()


async def trainee_number_exists(db: AsyncSession, organization_id: UUID, trainee_number: str) -> bool:
    result = await db.execute(
        select(
            exists().where(
                TraineeApplication.organization_id == organization_id,
                TraineeApplication.trainee_number == trainee_number,
            )
        )
    )
    return bool(result.scalar())


async def system_email_taken(db: AsyncSession, email: str) -> bool:
    """True if an application or an identity already uses this address."""
    email = email.lower()
    result = await db.execute(
        select(
            or_(
                exists().where(TraineeApplication.system_email == email),
                exists().where(User.email == email),
            )
        )
    )
    return bool(result.scalar())


# ============================================
# Trainees
# ============================================


async def create_trainee(
    db: AsyncSession,
    *,
    application: TraineeApplication,
    qualification_id: UUID,
    academic_year: str,
    registered_by: UUID,
) -> Trainee:
    """Create the enrollment record for a registered application."""
    trainee = Trainee(
        organization_id=application.organization_id,
        application_id=application.id,
        user_id=application.user_id,
        trainee_number=application.trainee_number,
        qualification_id=qualification_id,
        academic_year=academic_year,
        enrollment_status=EnrollmentStatus.FEE_PENDING,
        registered_by=registered_by,
    )
    db.add(trainee)
    await db.flush()

    logger.info(f"Created trainee {trainee.id} ({trainee.trainee_number})")
    return trainee


async def get_trainee_by_id(db: AsyncSession, trainee_id: UUID) -> Trainee | None:
    return await db.get(Trainee, trainee_id)


async def get_trainee_for_update(db: AsyncSession, trainee_id: UUID) -> Trainee | None:
    result = await db.execute(
        select(Trainee)
        .where(Trainee.id == trainee_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_trainee_by_application(db: AsyncSession, application_id: UUID) -> Trainee | None:
    result = await db.execute(select(Trainee).where(Trainee.application_id == application_id))
    return result.scalar_one_or_none()
