"""
Clearance Processor

Applies a payment to a ledger entry and, when the entry clears, drives the
downstream transition for the obligation's purpose:

- application fee: mint trainee identifiers, pending_payment → payment_cleared
- registration fee: registration_fee_pending → registered
  (→ fully_registered if enrollment is already finalized)
- hostel fee: ledger only, plus a notification

Flow (single transaction):
1. Lock the ledger row (SELECT ... FOR UPDATE) so concurrent payments on
   the same entry serialize and compute from a consistent balance
2. Already cleared → return current state, no changes
3. Reject overpayment
4. Update amount_paid / balance / status, append the payment row
5. If cleared, apply the downstream effect
6. Commit; on any failure roll everything back
7. Dispatch notifications after commit

Overpayment policy: a payment larger than the outstanding balance is
rejected. Excess is never carried forward as credit.
"""

import logging
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import SYSTEM_PRINCIPAL, Principal, authorize
from app.core.config import settings
from app.core.database import unit_of_work
from app.core.errors import NotFoundError, RetryableError, ServiceError, ValidationError
from app.modules.admissions import repository as admissions_repository
from app.modules.admissions import service as admissions_service
from app.modules.admissions.models import TraineeApplication
from app.modules.fees import repository
from app.modules.fees.models import FeePurpose, LedgerEntry, LedgerStatus, PaymentMethod
from app.modules.fees.repository import transition_ledger
from app.modules.fees.schemas import ClearanceResult
from app.modules.notifications import NotificationOutbox
from app.modules.users.models import UserRole

logger = logging.getLogger(__name__)

CLEARANCE_ROLES = (UserRole.ORGANIZATION_ADMIN, UserRole.ADMIN, UserRole.DEBTOR_OFFICER)

CENT = Decimal("0.01")


# ============================================
# Exceptions
# ============================================


class LedgerEntryNotFoundError(NotFoundError):
    def __init__(self, ledger_entry_id: UUID):
        super().__init__(
            message=f"Ledger entry {ledger_entry_id} not found.",
            error_code="LEDGER_ENTRY_NOT_FOUND",
        )


class OverpaymentRejectedError(ServiceError):
    def __init__(self, amount: Decimal, balance: Decimal):
        self.amount = amount
        self.balance = balance
        super().__init__(
            message=f"Payment of {amount} exceeds the outstanding balance of {balance}.",
            error_code="OVERPAYMENT_REJECTED",
            status_code=422,
        )


class ClearanceFailedError(RetryableError):
    def __init__(self):
        super().__init__(
            message="The payment could not be applied and nothing was recorded. Please retry.",
            error_code="CLEARANCE_FAILED",
        )


# ============================================
# Helpers
# ============================================


def _validate_payment(amount: Decimal, method: PaymentMethod | str) -> PaymentMethod:
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than zero.", "INVALID_AMOUNT")
    if amount != amount.quantize(CENT):
        raise ValidationError(
            "Payment amount cannot have more than two decimal places.", "INVALID_AMOUNT"
        )
    try:
        return PaymentMethod(method)
    except ValueError as e:
        raise ValidationError(f"Unknown payment method: {method}", "INVALID_PAYMENT_METHOD") from e


def apply_payment(entry: LedgerEntry, amount: Decimal, method: PaymentMethod) -> None:
    """
    Add a payment to the entry's running totals.

    Keeps ``amount_paid + balance = amount_required`` and
    ``status = cleared`` exactly when ``balance = 0``.
    """
    new_paid = entry.amount_paid + amount
    new_balance = entry.amount_required - new_paid
    if new_balance < 0:
        raise OverpaymentRejectedError(amount, entry.balance)

    transition_ledger(entry, LedgerStatus.CLEARED if new_balance == 0 else LedgerStatus.PARTIAL)
    entry.amount_paid = new_paid
    entry.balance = new_balance
    entry.payment_method = method


def _result(
    entry: LedgerEntry,
    application: TraineeApplication | None = None,
    already_cleared: bool = False,
) -> ClearanceResult:
    return ClearanceResult(
        ledger_entry_id=entry.id,
        purpose=entry.purpose,
        amount_required=entry.amount_required,
        amount_paid=entry.amount_paid,
        new_balance=entry.balance,
        new_status=entry.status,
        already_cleared=already_cleared,
        application_id=application.id if application else entry.application_id,
        registration_status=application.registration_status if application else None,
        trainee_number=application.trainee_number if application else None,
        system_email=application.system_email if application else None,
    )


async def _apply_cleared_effects(
    db: AsyncSession,
    entry: LedgerEntry,
    cleared_at: datetime,
    outbox: NotificationOutbox,
) -> TraineeApplication | None:
    if entry.purpose == FeePurpose.APPLICATION_FEE:
        application = await admissions_repository.get_for_update(db, entry.application_id)
        if application is None:
            raise NotFoundError(
                f"Application {entry.application_id} for ledger entry {entry.id} not found.",
                error_code="APPLICATION_NOT_FOUND",
            )
        await admissions_service.apply_application_fee_cleared(db, application, cleared_at)
        outbox.notify_role(
            entry.organization_id,
            UserRole.REGISTRATION_OFFICER,
            "application_fee_cleared",
            "Application Fee Cleared",
            f"{application.full_name} cleared the application fee and was assigned "
            f"{application.trainee_number}. The trainee account can now be created.",
            data={"application_id": str(application.id)},
            action_url=f"/admissions/applications/{application.id}",
        )
        return application

    if entry.purpose == FeePurpose.REGISTRATION_FEE:
        return await admissions_service.apply_registration_fee_cleared(
            db, entry.trainee_id, cleared_at, outbox
        )

    outbox.notify_role(
        entry.organization_id,
        UserRole.HOSTEL_COORDINATOR,
        "hostel_fee_cleared",
        "Hostel Fee Cleared",
        f"{entry.description or 'Hostel fee'} has been cleared.",
        data={"ledger_entry_id": str(entry.id), "trainee_id": str(entry.trainee_id)},
    )
    return None


# ============================================
# ClearPayment
# ============================================


async def clear_payment(
    db: AsyncSession,
    principal: Principal,
    ledger_entry_id: UUID,
    amount: Decimal,
    method: PaymentMethod | str,
    notes: str | None = None,
) -> ClearanceResult:
    """
    Apply a payment to a ledger entry.

    Returns:
        ClearanceResult with the new balance and status. For an entry that
        was already cleared, the unchanged state with ``already_cleared=True``.

    Raises:
        ValidationError: Non-positive amount or unknown method
        LedgerEntryNotFoundError: Unknown entry
        OverpaymentRejectedError: Amount exceeds the outstanding balance
        IdentifierMintingError / ClearanceFailedError: Nothing was applied; retryable
    """
    method = _validate_payment(amount, method)
    outbox = NotificationOutbox()
    application: TraineeApplication | None = None
    cleared_now = False

    try:
        async with unit_of_work(db):
            entry = await repository.get_for_update(db, ledger_entry_id)
            if entry is None:
                raise LedgerEntryNotFoundError(ledger_entry_id)

            authorize(principal, entry.organization_id, CLEARANCE_ROLES)

            if entry.status == LedgerStatus.CLEARED:
                logger.info(f"Ledger entry {entry.id} already cleared; ignoring repeat payment")
                return _result(entry, already_cleared=True)

            if amount > entry.balance:
                raise OverpaymentRejectedError(amount, entry.balance)

            apply_payment(entry, amount, method)
            await repository.record_payment(
                db,
                entry,
                amount=amount,
                method=method,
                received_by=principal.id,
                notes=notes,
            )

            if entry.status == LedgerStatus.CLEARED:
                cleared_now = True
                cleared_at = datetime.now(UTC)
                entry.cleared_at = cleared_at
                entry.cleared_by = principal.id
                application = await _apply_cleared_effects(db, entry, cleared_at, outbox)

    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"Clearance of ledger entry {ledger_entry_id} failed: {e}", exc_info=True)
        raise ClearanceFailedError() from e

    logger.info(
        f"Payment of {amount} ({method.value}) applied to ledger entry {entry.id} by "
        f"{principal.id}: balance {entry.balance}, status {entry.status.value}"
    )

    await outbox.dispatch()

    if cleared_now and entry.purpose == FeePurpose.APPLICATION_FEE:
        await _auto_provision(db, entry.application_id)

    return _result(entry, application)


async def _auto_provision(db: AsyncSession, application_id: UUID) -> None:
    """Provision the account right after clearance when enabled. Never raises."""
    if not settings.auto_provision_on_clearance:
        return

    from app.modules.provisioning.models import ProvisioningTrigger
    from app.modules.provisioning.service import provision_account

    try:
        await provision_account(
            db,
            SYSTEM_PRINCIPAL,
            application_id=application_id,
            trigger=ProvisioningTrigger.AUTO,
        )
    except Exception as e:
        logger.error(
            f"Automatic provisioning after clearance failed for application "
            f"{application_id}: {e}",
            exc_info=True,
        )
