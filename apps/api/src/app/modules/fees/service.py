"""
Fee Ledger Queries

Read access to ledger entries for staff. All writes go through the
Clearance Processor or the operations that create obligations.
"""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Principal, authorize
from app.core.errors import NotFoundError, ValidationError
from app.modules.admissions import repository as admissions_repository
from app.modules.fees import repository
from app.modules.fees.clearance import LedgerEntryNotFoundError
from app.modules.fees.models import LedgerEntry
from app.modules.users.models import UserRole

READ_ROLES = (
    UserRole.ORGANIZATION_ADMIN,
    UserRole.ADMIN,
    UserRole.REGISTRATION_OFFICER,
    UserRole.DEBTOR_OFFICER,
    UserRole.HOSTEL_COORDINATOR,
)


async def get_ledger_entry(
    db: AsyncSession,
    principal: Principal,
    ledger_entry_id: UUID,
) -> LedgerEntry:
    entry = await repository.get_by_id(db, ledger_entry_id)
    if entry is None:
        raise LedgerEntryNotFoundError(ledger_entry_id)

    authorize(principal, entry.organization_id, READ_ROLES)
    return entry


async def list_ledger_entries(
    db: AsyncSession,
    principal: Principal,
    *,
    application_id: UUID | None = None,
    trainee_id: UUID | None = None,
) -> list[LedgerEntry]:
    """List the obligations of one application or one trainee."""
    if (application_id is None) == (trainee_id is None):
        raise ValidationError("Provide exactly one of application_id or trainee_id.")

    if application_id is not None:
        subject = await admissions_repository.get_by_id(db, application_id)
    else:
        subject = await admissions_repository.get_trainee_by_id(db, trainee_id)
    if subject is None:
        raise NotFoundError("Subject of the ledger entries not found.")

    authorize(principal, subject.organization_id, READ_ROLES)
    return await repository.list_entries(db, application_id=application_id, trainee_id=trainee_id)
