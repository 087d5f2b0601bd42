"""
Admissions Service

Business logic for the application state machine.

Operations:
1. submit_application: public submission (all axes at their initial state)
2. screen_application: academic decision; a qualified applicant gets an
   application-fee obligation and moves to pending_payment
3. reject_application: closes an unqualified application
4. ensure_application_fee: creates a missing application-fee obligation
5. register_application: binds a provisioned applicant to a qualification and
   creates the registration-fee obligation
6. finalize_enrollment: completes the trainee's enrollment record

Clearance side effects (called by the Clearance Processor inside its
transaction):
- apply_application_fee_cleared: mints identifiers, pending_payment → payment_cleared
- apply_registration_fee_cleared: registration_fee_pending → registered
  (→ fully_registered when enrollment is already finalized)

Design Principles:
- Every operation takes the caller's Principal explicitly
- Preconditions are re-checked on a row-locked read, never trusted from the caller
- One commit per operation; notifications are dispatched only after commit
"""

import logging
from datetime import UTC, date, datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Principal, authorize
from app.core.database import unit_of_work
from app.core.errors import (
    InvalidStateTransitionError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from app.modules.admissions import repository
from app.modules.admissions.identifiers import mint_identifiers
from app.modules.admissions.models import (
    AccountProvisioningStatus,
    EnrollmentStatus,
    QualificationStatus,
    RegistrationStatus,
    Trainee,
    TraineeApplication,
)
from app.modules.admissions.repository import transition_qualification, transition_registration
from app.modules.admissions.schemas import (
    ApplicationCreate,
    ApplicationFeeResult,
    EnrollmentResult,
    RegistrationResult,
    RejectionResult,
    ScreeningResult,
)
from app.modules.fees import repository as fees_repository
from app.modules.fees.models import FeePurpose, LedgerEntry
from app.modules.notifications import NotificationOutbox
from app.modules.organizations.models import FeeType
from app.modules.organizations.repository import FeeTypeRepository, OrganizationRepository
from app.modules.users.models import UserRole

logger = logging.getLogger(__name__)

STAFF_ROLES = (
    UserRole.ORGANIZATION_ADMIN,
    UserRole.ADMIN,
    UserRole.REGISTRATION_OFFICER,
    UserRole.DEBTOR_OFFICER,
    UserRole.HOSTEL_COORDINATOR,
)
SCREENING_ROLES = (UserRole.ORGANIZATION_ADMIN, UserRole.ADMIN, UserRole.REGISTRATION_OFFICER)
REGISTRATION_ROLES = SCREENING_ROLES

REGISTERABLE_STATUSES = {
    RegistrationStatus.PAYMENT_CLEARED,
    RegistrationStatus.PROVISIONALLY_ADMITTED,
    RegistrationStatus.REGISTRATION_FEE_PENDING,
}


# ============================================
# Exceptions
# ============================================


class ApplicationNotFoundError(NotFoundError):
    def __init__(self, application_id: UUID):
        super().__init__(
            message=f"Application {application_id} not found.",
            error_code="APPLICATION_NOT_FOUND",
        )


class DuplicateApplicationError(ServiceError):
    def __init__(self):
        super().__init__(
            message="An application with this national ID already exists for this organization.",
            error_code="DUPLICATE_APPLICATION",
            status_code=409,
        )


class ApplicationAlreadyScreenedError(InvalidStateTransitionError):
    def __init__(self, current_status: QualificationStatus):
        super().__init__(
            message=f"Application has already been screened ({current_status.value}).",
            error_code="ALREADY_SCREENED",
        )


class ProvisioningRequiredError(InvalidStateTransitionError):
    def __init__(self):
        super().__init__(
            message="The applicant's account must be provisioned before registration.",
            error_code="PROVISIONING_REQUIRED",
        )


class FeeNotConfiguredError(ServiceError):
    def __init__(self, purpose: FeePurpose):
        super().__init__(
            message=f"No active {purpose.value.replace('_', ' ')} is configured for this organization.",
            error_code="FEE_NOT_CONFIGURED",
            status_code=409,
        )


# ============================================
# Helpers
# ============================================


def _now() -> datetime:
    return datetime.now(UTC)


def default_academic_year(today: date | None = None) -> str:
    return str((today or date.today()).year)


async def _lock_application(db: AsyncSession, application_id: UUID) -> TraineeApplication:
    application = await repository.get_for_update(db, application_id)
    if application is None:
        raise ApplicationNotFoundError(application_id)
    return application


async def _get_fee_type(
    db: AsyncSession,
    application: TraineeApplication,
    purpose: FeePurpose,
) -> FeeType | None:
    """Return the organization's usable fee type for ``purpose``, or None."""
    fee_type = await FeeTypeRepository.get_active_for_purpose(
        db, application.organization_id, purpose
    )
    if fee_type is None or fee_type.amount <= 0:
        logger.warning(
            f"No active {purpose.value} fee type for organization "
            f"{application.organization_id} (application {application.id})"
        )
        return None
    return fee_type


async def _create_fee(
    db: AsyncSession,
    *,
    fee_type: FeeType,
    application: TraineeApplication,
    requested_by: UUID,
    trainee: Trainee | None = None,
) -> LedgerEntry:
    """
    Create an obligation sized by ``fee_type``.

    Application fees are charged to the application, registration fees to
    the trainee.
    """
    purpose = fee_type.purpose
    label = "Application" if purpose == FeePurpose.APPLICATION_FEE else "Registration"
    return await fees_repository.create_entry(
        db,
        organization_id=application.organization_id,
        purpose=purpose,
        amount=fee_type.amount,
        application_id=None if trainee else application.id,
        trainee_id=trainee.id if trainee else None,
        fee_type_id=fee_type.id,
        description=f"{label} fee for {application.full_name}",
        requested_by=requested_by,
    )


# ============================================
# Queries
# ============================================


async def get_application(
    db: AsyncSession,
    principal: Principal,
    application_id: UUID,
) -> TraineeApplication:
    application = await repository.get_by_id(db, application_id)
    if application is None:
        raise ApplicationNotFoundError(application_id)

    authorize(principal, application.organization_id, STAFF_ROLES)
    return application


# ============================================
# Submission
# ============================================


async def submit_application(db: AsyncSession, data: ApplicationCreate) -> TraineeApplication:
    """
    Submit a new application.

    Raises:
        ValidationError: Unknown or inactive organization
        DuplicateApplicationError: National ID already used in this organization
    """
    organization = await OrganizationRepository.get_by_id(db, data.organization_id)
    if organization is None or not organization.is_active:
        raise ValidationError("Unknown organization.", error_code="UNKNOWN_ORGANIZATION")

    if await repository.get_by_national_id(db, data.organization_id, data.national_id):
        raise DuplicateApplicationError()

    outbox = NotificationOutbox()
    try:
        async with unit_of_work(db):
            application = await repository.create_application(db, **data.model_dump())
            outbox.notify_role(
                application.organization_id,
                UserRole.REGISTRATION_OFFICER,
                "application_submitted",
                "New Application",
                f"{application.full_name} submitted an application and awaits screening.",
                data={"application_id": str(application.id)},
                action_url=f"/admissions/applications/{application.id}",
            )
    except IntegrityError as e:
        # Concurrent submission with the same national ID
        raise DuplicateApplicationError() from e

    await outbox.dispatch()
    logger.info(f"Application submitted: {application.id}")
    return application


# ============================================
# Screening
# ============================================


async def screen_application(
    db: AsyncSession,
    principal: Principal,
    application_id: UUID,
    decision: QualificationStatus,
    remarks: str | None = None,
) -> ScreeningResult:
    """
    Record the academic screening decision.

    On provisionally_qualified the application moves to pending_payment and
    an application-fee obligation is created (skipped, not failed, when the
    organization has no application fee configured). On does_not_qualify the
    registration status stays applied.

    Raises:
        ValidationError: decision is pending
        ApplicationNotFoundError: Unknown application
        ApplicationAlreadyScreenedError: Application was screened before
    """
    if decision == QualificationStatus.PENDING:
        raise ValidationError(
            "Screening decision must be provisionally_qualified or does_not_qualify."
        )

    outbox = NotificationOutbox()
    entry: LedgerEntry | None = None

    async with unit_of_work(db):
        application = await _lock_application(db, application_id)
        authorize(principal, application.organization_id, SCREENING_ROLES)

        if application.qualification_status != QualificationStatus.PENDING:
            raise ApplicationAlreadyScreenedError(application.qualification_status)

        transition_qualification(application, decision)
        application.screened_by = principal.id
        application.screened_at = _now()
        application.screening_remarks = remarks

        if decision == QualificationStatus.PROVISIONALLY_QUALIFIED:
            transition_registration(application, RegistrationStatus.PENDING_PAYMENT)
            fee_type = await _get_fee_type(db, application, FeePurpose.APPLICATION_FEE)
            if fee_type is not None:
                entry = await _create_fee(
                    db, fee_type=fee_type, application=application, requested_by=principal.id
                )
                outbox.notify_role(
                    application.organization_id,
                    UserRole.DEBTOR_OFFICER,
                    "application_fee_pending",
                    "Application Fee Pending",
                    f"{application.full_name} qualified and owes an application fee of "
                    f"{entry.amount_required}.",
                    data={"application_id": str(application.id), "ledger_entry_id": str(entry.id)},
                    action_url=f"/fees/entries/{entry.id}",
                )

    await outbox.dispatch()

    logger.info(
        f"Application {application_id} screened as {decision.value} by {principal.id}"
        + (f", fee entry {entry.id}" if entry else "")
    )
    return ScreeningResult(
        application_id=application.id,
        qualification_status=application.qualification_status,
        registration_status=application.registration_status,
        ledger_entry_id=entry.id if entry else None,
        amount_due=entry.balance if entry else None,
    )


async def reject_application(
    db: AsyncSession,
    principal: Principal,
    application_id: UUID,
    reason: str,
) -> RejectionResult:
    """
    Close an application that will not proceed.

    Valid while the application is still applied and not provisionally
    qualified.
    """
    async with unit_of_work(db):
        application = await _lock_application(db, application_id)
        authorize(principal, application.organization_id, SCREENING_ROLES)

        if application.qualification_status == QualificationStatus.PROVISIONALLY_QUALIFIED:
            raise InvalidStateTransitionError(
                "A provisionally qualified application cannot be rejected.",
                error_code="CANNOT_REJECT_QUALIFIED",
            )

        transition_registration(application, RegistrationStatus.REJECTED)
        application.rejection_reason = reason

    logger.info(f"Application {application_id} rejected by {principal.id}")
    return RejectionResult(
        application_id=application.id,
        registration_status=application.registration_status,
        rejection_reason=reason,
    )


async def ensure_application_fee(
    db: AsyncSession,
    principal: Principal,
    application_id: UUID,
) -> ApplicationFeeResult:
    """
    Create the application-fee obligation if screening could not.

    Idempotent: returns the existing obligation when there is one.

    Raises:
        InvalidStateTransitionError: Application is not pending payment
        FeeNotConfiguredError: The organization still has no application fee
    """
    async with unit_of_work(db):
        application = await _lock_application(db, application_id)
        authorize(principal, application.organization_id, SCREENING_ROLES)

        if application.registration_status != RegistrationStatus.PENDING_PAYMENT:
            raise InvalidStateTransitionError(
                f"Application fee can only be raised while pending payment "
                f"(current: {application.registration_status.value})."
            )

        entry = await fees_repository.find_entry(
            db, purpose=FeePurpose.APPLICATION_FEE, application_id=application.id
        )
        created = entry is None
        if entry is None:
            fee_type = await _get_fee_type(db, application, FeePurpose.APPLICATION_FEE)
            if fee_type is None:
                raise FeeNotConfiguredError(FeePurpose.APPLICATION_FEE)
            entry = await _create_fee(
                db, fee_type=fee_type, application=application, requested_by=principal.id
            )

    return ApplicationFeeResult(
        application_id=application.id,
        ledger_entry_id=entry.id,
        amount_due=entry.balance,
        created=created,
    )


# ============================================
# Registration
# ============================================


async def register_application(
    db: AsyncSession,
    principal: Principal,
    application_id: UUID,
    qualification_id: UUID,
    academic_year: str | None = None,
) -> RegistrationResult:
    """
    Register a provisioned applicant against a qualification.

    From payment_cleared the application is first provisionally admitted;
    both steps commit together. Re-invoking while registration_fee_pending
    creates the registration-fee obligation if it is still missing.

    Raises:
        InvalidStateTransitionError: Application is not at a registerable status,
            or is already registered against a different qualification
        ProvisioningRequiredError: The applicant has no provisioned account
        FeeNotConfiguredError: The organization has no active registration fee;
            nothing is changed
    """
    outbox = NotificationOutbox()

    async with unit_of_work(db):
        application = await _lock_application(db, application_id)
        authorize(principal, application.organization_id, REGISTRATION_ROLES)

        if application.registration_status not in REGISTERABLE_STATUSES:
            raise InvalidStateTransitionError(
                f"Application cannot be registered from "
                f"'{application.registration_status.value}'."
            )
        if (
            application.account_provisioning_status != AccountProvisioningStatus.PROVISIONED
            or application.user_id is None
        ):
            raise ProvisioningRequiredError()

        trainee = await repository.get_trainee_by_application(db, application.id)
        if trainee is not None and trainee.qualification_id != qualification_id:
            raise InvalidStateTransitionError(
                "Application is already registered against a different qualification.",
                error_code="QUALIFICATION_MISMATCH",
            )

        entry = None
        if trainee is not None:
            entry = await fees_repository.find_entry(
                db, purpose=FeePurpose.REGISTRATION_FEE, trainee_id=trainee.id
            )
        fee_type = None
        if entry is None:
            fee_type = await _get_fee_type(db, application, FeePurpose.REGISTRATION_FEE)
            if fee_type is None:
                raise FeeNotConfiguredError(FeePurpose.REGISTRATION_FEE)

        if application.registration_status == RegistrationStatus.PAYMENT_CLEARED:
            transition_registration(application, RegistrationStatus.PROVISIONALLY_ADMITTED)
            application.admitted_at = _now()

        if trainee is None:
            trainee = await repository.create_trainee(
                db,
                application=application,
                qualification_id=qualification_id,
                academic_year=academic_year or default_academic_year(),
                registered_by=principal.id,
            )

        if entry is None:
            entry = await _create_fee(
                db,
                fee_type=fee_type,
                application=application,
                trainee=trainee,
                requested_by=principal.id,
            )
            outbox.notify_role(
                application.organization_id,
                UserRole.DEBTOR_OFFICER,
                "registration_fee_pending",
                "Registration Fee Pending",
                f"{application.full_name} ({trainee.trainee_number}) owes a registration "
                f"fee of {entry.amount_required}.",
                data={"trainee_id": str(trainee.id), "ledger_entry_id": str(entry.id)},
                action_url=f"/fees/entries/{entry.id}",
            )

        transition_registration(application, RegistrationStatus.REGISTRATION_FEE_PENDING)

    await outbox.dispatch()

    logger.info(f"Application {application_id} registered as trainee {trainee.id}")
    return RegistrationResult(
        application_id=application.id,
        trainee_id=trainee.id,
        trainee_number=trainee.trainee_number,
        registration_status=application.registration_status,
        ledger_entry_id=entry.id,
        amount_due=entry.balance,
    )


async def finalize_enrollment(
    db: AsyncSession,
    principal: Principal,
    application_id: UUID,
) -> EnrollmentResult:
    """
    Mark the trainee's enrollment record as finalized.

    If the registration fee is already cleared the application becomes
    fully_registered now; otherwise the later clearance completes it.
    """
    outbox = NotificationOutbox()

    async with unit_of_work(db):
        application = await _lock_application(db, application_id)
        authorize(principal, application.organization_id, REGISTRATION_ROLES)

        trainee = await repository.get_trainee_by_application(db, application.id)
        if trainee is not None:
            trainee = await repository.get_trainee_for_update(db, trainee.id)
        if trainee is None or application.registration_status not in {
            RegistrationStatus.REGISTRATION_FEE_PENDING,
            RegistrationStatus.REGISTERED,
            RegistrationStatus.FULLY_REGISTERED,
        }:
            raise InvalidStateTransitionError(
                "Application has no enrollment record yet; register it first.",
                error_code="NOT_REGISTERED",
            )

        if trainee.enrollment_finalized_at is None:
            trainee.enrollment_finalized_at = _now()

        if application.registration_status == RegistrationStatus.REGISTERED:
            _complete_enrollment(application, trainee, outbox)

    await outbox.dispatch()

    return EnrollmentResult(
        application_id=application.id,
        trainee_id=trainee.id,
        registration_status=application.registration_status,
        enrollment_status=trainee.enrollment_status,
        enrollment_finalized_at=trainee.enrollment_finalized_at,
    )


def _complete_enrollment(
    application: TraineeApplication,
    trainee: Trainee,
    outbox: NotificationOutbox,
) -> None:
    transition_registration(application, RegistrationStatus.FULLY_REGISTERED)
    trainee.enrollment_status = EnrollmentStatus.ACTIVE

    if trainee.user_id is not None:
        outbox.notify_user(
            application.organization_id,
            trainee.user_id,
            "enrollment_complete",
            "Enrollment Complete",
            "Your enrollment is complete. Welcome!",
            send_email=True,
        )


# ============================================
# Clearance side effects
# ============================================


async def apply_application_fee_cleared(
    db: AsyncSession,
    application: TraineeApplication,
    cleared_at: datetime,
) -> None:
    """
    Advance a locked application after its application fee cleared.

    The only place trainee identifiers are minted. Runs inside the caller's
    transaction so the identifiers and the status change commit together.

    Raises:
        InvalidStateTransitionError: Application is not pending payment
        IdentifierMintingError: No identifier could be minted (retryable)
    """
    if application.qualification_status != QualificationStatus.PROVISIONALLY_QUALIFIED:
        raise InvalidStateTransitionError(
            "Application fee cleared for an application that is not provisionally qualified."
        )
    if application.registration_status != RegistrationStatus.PENDING_PAYMENT:
        raise InvalidStateTransitionError(
            f"Application fee cleared while application is "
            f"'{application.registration_status.value}', expected 'pending_payment'."
        )

    if application.trainee_number is None or application.system_email is None:
        trainee_number, system_email = await mint_identifiers(db, application)
        application.trainee_number = trainee_number
        application.system_email = system_email

    transition_registration(application, RegistrationStatus.PAYMENT_CLEARED)
    application.payment_cleared_at = cleared_at


async def apply_registration_fee_cleared(
    db: AsyncSession,
    trainee_id: UUID,
    cleared_at: datetime,
    outbox: NotificationOutbox,
) -> TraineeApplication:
    """
    Advance the trainee and its application after the registration fee cleared.

    Returns:
        The updated application
    """
    unlocked = await repository.get_trainee_by_id(db, trainee_id)
    if unlocked is None:
        raise NotFoundError(f"Trainee {trainee_id} not found.", error_code="TRAINEE_NOT_FOUND")

    # Lock order: application, then trainee
    application = await _lock_application(db, unlocked.application_id)
    trainee = await repository.get_trainee_for_update(db, trainee_id)

    transition_registration(application, RegistrationStatus.REGISTERED)
    trainee.enrollment_status = EnrollmentStatus.REGISTERED
    trainee.registered_at = cleared_at

    if trainee.user_id is not None:
        outbox.notify_user(
            application.organization_id,
            trainee.user_id,
            "registration_complete",
            "Registration Complete",
            "Your registration fee has been cleared and your registration is complete.",
            data={"trainee_id": str(trainee.id)},
            send_email=True,
        )

    if trainee.enrollment_finalized_at is not None:
        _complete_enrollment(application, trainee, outbox)

    return application
