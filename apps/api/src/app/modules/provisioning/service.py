"""
Identity Provisioner

Creates (or links) the login identity of a cleared applicant.

Flow:
1. Claim: lock the application, re-check eligibility, mark the attempt
   (account_provisioning_status → pending) and commit
2. Identity: look up the system email in the identity store; reuse it if it
   exists, otherwise create it with the default credential and a forced
   password change. A unique-email conflict from a concurrent call is
   treated as "already existed". Committed on its own
3. Linkage: assign the trainee role, set user_id and
   account_provisioning_status → provisioned, record the outcome. Committed
   as one unit

A failure in step 2 or 3 sets account_provisioning_status → failed and
records a failed attempt. Because the identity from step 2 may already be
committed, a retry finds it by email in step 2 and only completes the
missing linkage, so no second identity is ever created.

Eligibility: qualification_status = provisionally_qualified, trainee_number
and system_email assigned, and user_id empty unless force_reprovision.
Calling again once linked returns the linked identity with outcome
already_existed.
"""

import asyncio
import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Principal, authorize
from app.core.config import settings
from app.core.database import unit_of_work
from app.core.email import send_account_provisioned
from app.core.errors import (
    InvalidStateTransitionError,
    NotFoundError,
    RetryableError,
    ValidationError,
)
from app.core.security import hash_password
from app.modules.admissions import repository as admissions_repository
from app.modules.admissions.models import (
    AccountProvisioningStatus,
    QualificationStatus,
    TraineeApplication,
)
from app.modules.admissions.repository import transition_provisioning
from app.modules.admissions.service import ApplicationNotFoundError
from app.modules.notifications import NotificationOutbox
from app.modules.provisioning import repository
from app.modules.provisioning.models import (
    ProvisioningOutcome,
    ProvisioningRecord,
    ProvisioningTrigger,
)
from app.modules.provisioning.schemas import ProvisionResult
from app.modules.users.models import User, UserRole
from app.modules.users.repository import IdentityConflictError, UserRepository

logger = logging.getLogger(__name__)

PROVISIONING_ROLES = (UserRole.ORGANIZATION_ADMIN, UserRole.ADMIN, UserRole.REGISTRATION_OFFICER)

DEFAULT_ROLE = UserRole.TRAINEE


# ============================================
# Exceptions
# ============================================


class ProvisioningNotEligibleError(InvalidStateTransitionError):
    """The application does not meet the provisioning preconditions."""


class ProvisioningFailedError(RetryableError):
    def __init__(self, application_id: UUID, reason: str):
        self.application_id = application_id
        super().__init__(
            message=f"Account provisioning failed for application {application_id}: {reason}",
            error_code="PROVISIONING_FAILED",
        )


# ============================================
# Helpers
# ============================================


def check_eligibility(application: TraineeApplication) -> None:
    """
    Raise ProvisioningNotEligibleError unless the application can be provisioned.
    """
    if application.qualification_status != QualificationStatus.PROVISIONALLY_QUALIFIED:
        raise ProvisioningNotEligibleError(
            "Insufficient qualification status: the applicant is not provisionally qualified.",
            error_code="INSUFFICIENT_QUALIFICATION_STATUS",
        )
    if not application.trainee_number or not application.system_email:
        raise ProvisioningNotEligibleError(
            "Trainee number and system email have not been assigned; "
            "the application fee must be cleared first.",
            error_code="IDENTIFIERS_NOT_ASSIGNED",
        )


async def _resolve_application_id(
    db: AsyncSession,
    application_id: UUID | None,
    trainee_id: UUID | None,
) -> UUID:
    if (application_id is None) == (trainee_id is None):
        raise ValidationError("Provide exactly one of application_id or trainee_id.")

    if application_id is not None:
        return application_id

    trainee = await admissions_repository.get_trainee_by_id(db, trainee_id)
    if trainee is None:
        raise NotFoundError(f"Trainee {trainee_id} not found.", error_code="TRAINEE_NOT_FOUND")
    return trainee.application_id


async def _lock_application(db: AsyncSession, application_id: UUID) -> TraineeApplication:
    application = await admissions_repository.get_for_update(db, application_id)
    if application is None:
        raise ApplicationNotFoundError(application_id)
    return application


async def _default_password_hash() -> str:
    return await asyncio.to_thread(hash_password, settings.default_trainee_password)


async def _ensure_identity(
    db: AsyncSession,
    application: TraineeApplication,
    force_reprovision: bool,
) -> tuple[User, ProvisioningOutcome]:
    email = application.system_email

    existing = await UserRepository.get_by_email(db, email)
    if existing is not None:
        if force_reprovision:
            await UserRepository.reset_credentials(
                db,
                existing,
                password_hash=await _default_password_hash(),
                must_change_password=True,
            )
        return existing, ProvisioningOutcome.ALREADY_EXISTED

    try:
        user = await UserRepository.create(
            db,
            email=email,
            password_hash=await _default_password_hash(),
            first_name=application.first_name,
            last_name=application.last_name,
            is_verified=True,
            must_change_password=True,
        )
        return user, ProvisioningOutcome.CREATED
    except IdentityConflictError:
        existing = await UserRepository.get_by_email(db, email)
        if existing is None:
            raise
        logger.info(f"Identity for {email} was created concurrently; linking it")
        return existing, ProvisioningOutcome.ALREADY_EXISTED


async def _record_failure(
    db: AsyncSession,
    application_id: UUID,
    trigger: ProvisioningTrigger,
    error: Exception,
    user_id: UUID | None = None,
) -> None:
    """
    Mark the attempt failed.

    An application that is already linked keeps its provisioned status;
    only the failed attempt is recorded.
    """
    try:
        async with unit_of_work(db):
            application = await _lock_application(db, application_id)
            if application.user_id is None:
                transition_provisioning(application, AccountProvisioningStatus.FAILED)
            await repository.create_record(
                db,
                organization_id=application.organization_id,
                application_id=application.id,
                trigger=trigger,
                outcome=ProvisioningOutcome.FAILED,
                email=application.system_email,
                user_id=user_id,
                error_message=str(error)[:1000],
            )
    except Exception as e:
        logger.error(
            f"Could not record provisioning failure for application {application_id}: {e}",
            exc_info=True,
        )


# ============================================
# Provision
# ============================================


async def provision_account(
    db: AsyncSession,
    principal: Principal,
    *,
    application_id: UUID | None = None,
    trainee_id: UUID | None = None,
    force_reprovision: bool = False,
    trigger: ProvisioningTrigger = ProvisioningTrigger.MANUAL,
) -> ProvisionResult:
    """
    Provision the login identity for an application (or a trainee's application).

    Returns:
        ProvisionResult with the linked user id, the system email and the
        outcome (created / already_existed)

    Raises:
        ValidationError: Not exactly one reference given
        ApplicationNotFoundError: Unknown application or trainee
        ProvisioningNotEligibleError: Preconditions not met; nothing changed
        ProvisioningFailedError: Identity or linkage step failed; status is
            failed and the call can be retried
    """
    application_id = await _resolve_application_id(db, application_id, trainee_id)

    # Step 1: claim
    async with unit_of_work(db):
        application = await _lock_application(db, application_id)
        authorize(principal, application.organization_id, PROVISIONING_ROLES)
        check_eligibility(application)

        if application.user_id is not None and not force_reprovision:
            await repository.create_record(
                db,
                organization_id=application.organization_id,
                application_id=application.id,
                trigger=trigger,
                outcome=ProvisioningOutcome.ALREADY_EXISTED,
                email=application.system_email,
                user_id=application.user_id,
                details={"reason": "already_linked"},
            )
            logger.info(f"Application {application.id} already provisioned; nothing to do")
            return ProvisionResult(
                application_id=application.id,
                user_id=application.user_id,
                email=application.system_email,
                outcome=ProvisioningOutcome.ALREADY_EXISTED,
                account_provisioning_status=application.account_provisioning_status,
            )

        if application.user_id is None:
            transition_provisioning(application, AccountProvisioningStatus.PENDING)

    # Step 2: identity
    try:
        async with unit_of_work(db):
            user, outcome = await _ensure_identity(db, application, force_reprovision)
    except Exception as e:
        logger.error(f"Identity step failed for application {application_id}: {e}", exc_info=True)
        await _record_failure(db, application_id, trigger, e)
        raise ProvisioningFailedError(application_id, "identity could not be created") from e

    # Step 3: linkage
    outbox = NotificationOutbox()
    try:
        async with unit_of_work(db):
            application = await _lock_application(db, application_id)
            await UserRepository.assign_role(
                db,
                user_id=user.id,
                organization_id=application.organization_id,
                role=DEFAULT_ROLE,
            )

            application.user_id = user.id
            transition_provisioning(application, AccountProvisioningStatus.PROVISIONED)

            trainee = await admissions_repository.get_trainee_by_application(db, application.id)
            if trainee is not None and trainee.user_id is None:
                trainee.user_id = user.id

            await repository.create_record(
                db,
                organization_id=application.organization_id,
                application_id=application.id,
                trainee_id=trainee.id if trainee else None,
                trigger=trigger,
                outcome=outcome,
                email=user.email,
                user_id=user.id,
                details={"force_reprovision": force_reprovision},
            )
            outbox.notify_role(
                application.organization_id,
                UserRole.REGISTRATION_OFFICER,
                "account_provisioned",
                "Trainee Account Ready",
                f"Account {user.email} is ready for {application.full_name}.",
                data={"application_id": str(application.id), "user_id": str(user.id)},
            )
    except Exception as e:
        logger.error(f"Linkage step failed for application {application_id}: {e}", exc_info=True)
        await _record_failure(db, application_id, trigger, e, user_id=user.id)
        raise ProvisioningFailedError(application_id, "account linkage could not be completed") from e

    await outbox.dispatch()

    if application.email and (outcome == ProvisioningOutcome.CREATED or force_reprovision):
        await send_account_provisioned(
            to_email=application.email,
            applicant_name=application.full_name,
            system_email=user.email,
            trainee_number=application.trainee_number,
            default_password=settings.default_trainee_password,
        )

    logger.info(
        f"Provisioned {user.email} for application {application_id} "
        f"({outcome.value}, trigger={trigger.value})"
    )
    return ProvisionResult(
        application_id=application.id,
        user_id=user.id,
        email=user.email,
        outcome=outcome,
        account_provisioning_status=application.account_provisioning_status,
    )


async def list_provisioning_records(
    db: AsyncSession,
    principal: Principal,
    application_id: UUID,
) -> list[ProvisioningRecord]:
    application = await admissions_repository.get_by_id(db, application_id)
    if application is None:
        raise ApplicationNotFoundError(application_id)

    authorize(principal, application.organization_id, PROVISIONING_ROLES)
    return await repository.list_for_application(db, application_id)
