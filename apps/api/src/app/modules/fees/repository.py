"""
Fee Ledger Repository

Database operations for ledger entries and payments, plus the ledger
status transition table. Functions flush but never commit.
"""

import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.fees.models import (
    FeePurpose,
    LedgerEntry,
    LedgerPayment,
    LedgerStatus,
    PaymentMethod,
)
from app.modules.shared.state import check_transition

logger = logging.getLogger(__name__)


# ============================================
# Status Transitions
# ============================================

VALID_LEDGER_TRANSITIONS: dict[LedgerStatus, set[LedgerStatus]] = {
    LedgerStatus.PENDING: {LedgerStatus.PARTIAL, LedgerStatus.CLEARED},
    LedgerStatus.PARTIAL: {LedgerStatus.CLEARED},
    LedgerStatus.CLEARED: set(),
}


def transition_ledger(entry: LedgerEntry, new_status: LedgerStatus) -> None:
    """Set the entry's status after checking the transition table."""
    check_transition(VALID_LEDGER_TRANSITIONS, "ledger", entry.status, new_status)
    entry.status = new_status


# ============================================
# Entries
# ============================================


async def create_entry(
    db: AsyncSession,
    *,
    organization_id: UUID,
    purpose: FeePurpose,
    amount: Decimal,
    application_id: UUID | None = None,
    trainee_id: UUID | None = None,
    fee_type_id: UUID | None = None,
    description: str | None = None,
    source_id: UUID | None = None,
    period: date | None = None,
    due_date: date | None = None,
    requested_by: UUID | None = None,
) -> LedgerEntry:
    """
    Create a pending obligation with ``balance = amount``.

    Raises:
        ValueError: If not exactly one subject is given or amount is not positive
    """
    if (application_id is None) == (trainee_id is None):
        raise ValueError("A ledger entry must be linked to exactly one of application or trainee")
    if amount <= 0:
        raise ValueError("Ledger entry amount must be positive")

    entry = LedgerEntry(
        organization_id=organization_id,
        application_id=application_id,
        trainee_id=trainee_id,
        purpose=purpose,
        fee_type_id=fee_type_id,
        description=description,
        source_id=source_id,
        period=period,
        due_date=due_date,
        amount_required=amount,
        amount_paid=Decimal("0"),
        balance=amount,
        status=LedgerStatus.PENDING,
        requested_by=requested_by,
    )
    db.add(entry)
    await db.flush()

    logger.info(f"Created {purpose.value} ledger entry {entry.id} for {amount}")
    return entry


async def get_by_id(db: AsyncSession, entry_id: UUID) -> LedgerEntry | None:
    return await db.get(LedgerEntry, entry_id)


async def get_for_update(db: AsyncSession, entry_id: UUID) -> LedgerEntry | None:
    """Get an entry with a row lock held until the transaction ends."""
    result = await db.execute(
        select(LedgerEntry)
        .where(LedgerEntry.id == entry_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def find_entry(
    db: AsyncSession,
    *,
    purpose: FeePurpose,
    application_id: UUID | None = None,
    trainee_id: UUID | None = None,
) -> LedgerEntry | None:
    """Get the earliest entry of a purpose for an application or trainee."""
    query = select(LedgerEntry).where(LedgerEntry.purpose == purpose)
    if application_id is not None:
        query = query.where(LedgerEntry.application_id == application_id)
    if trainee_id is not None:
        query = query.where(LedgerEntry.trainee_id == trainee_id)

    result = await db.execute(query.order_by(LedgerEntry.created_at).limit(1))
    return result.scalar_one_or_none()


async def list_entries(
    db: AsyncSession,
    *,
    application_id: UUID | None = None,
    trainee_id: UUID | None = None,
) -> list[LedgerEntry]:
    conditions = []
    if application_id is not None:
        conditions.append(LedgerEntry.application_id == application_id)
    if trainee_id is not None:
        conditions.append(LedgerEntry.trainee_id == trainee_id)

    result = await db.execute(
        select(LedgerEntry).where(or_(*conditions)).order_by(LedgerEntry.created_at)
    )
    return list(result.scalars().all())


async def record_payment(
    db: AsyncSession,
    entry: LedgerEntry,
    *,
    amount: Decimal,
    method: PaymentMethod,
    received_by: UUID,
    notes: str | None = None,
) -> LedgerPayment:
    """Append a payment row reflecting the entry's already-updated balance."""
    payment = LedgerPayment(
        ledger_entry_id=entry.id,
        amount=amount,
        method=method,
        notes=notes,
        received_by=received_by,
        balance_after=entry.balance,
    )
    db.add(payment)
    await db.flush()
    return payment


# ============================================
# Recurring fee queries
# ============================================


async def get_period_keys(
    db: AsyncSession,
    purpose: FeePurpose,
    period: date,
) -> tuple[set[UUID], set[UUID]]:
    """
    Collect the keys of every entry already generated for a period.

    Returns:
        (source ids, trainee ids) of existing entries for the period
    """
    result = await db.execute(
        select(LedgerEntry.source_id, LedgerEntry.trainee_id).where(
            LedgerEntry.purpose == purpose,
            LedgerEntry.period == period,
        )
    )
    source_ids: set[UUID] = set()
    trainee_ids: set[UUID] = set()
    for row in result.all():
        if row.source_id is not None:
            source_ids.add(row.source_id)
        if row.trainee_id is not None:
            trainee_ids.add(row.trainee_id)
    return source_ids, trainee_ids


async def get_overdue_entries(
    db: AsyncSession,
    purpose: FeePurpose,
    as_of: date,
) -> list[LedgerEntry]:
    """Entries of a purpose past their due date that still carry a balance."""
    result = await db.execute(
        select(LedgerEntry)
        .where(
            LedgerEntry.purpose == purpose,
            LedgerEntry.due_date < as_of,
            LedgerEntry.status.in_([LedgerStatus.PENDING, LedgerStatus.PARTIAL]),
        )
        .order_by(LedgerEntry.organization_id, LedgerEntry.due_date)
    )
    return list(result.scalars().all())
