"""
Hostel Background Jobs

Scheduled tasks for recurring hostel obligations:
1. Generate one hostel-fee ledger entry per active allocation per month
2. Notify hostel coordinators about overdue hostel fees

Design Principles:
- Jobs are idempotent (safe to run multiple times per period)
- Jobs handle their own database sessions
- The "already generated" set is computed once for the whole period before
  any batch runs, never per batch
- Each batch commits on its own; a failed batch is reported and the
  remaining batches still run
- A cooperative stop flag is checked between batches, so a stop loses at
  most the batch in flight
- Notification failures never change the reported counts

Schedule:
- generate_monthly_hostel_fees: 00:15 UTC on the 1st of each month
- check_overdue_hostel_fees: daily at 06:00 UTC
- Both can also be triggered manually via the debug job endpoints
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from apscheduler.triggers.cron import CronTrigger

from app.core.config import settings
from app.core.database import async_session_maker, unit_of_work
from app.core.redis import clear_job_stop, is_job_stop_requested
from app.core.scheduler import register_job
from app.modules.fees import repository as fees_repository
from app.modules.fees.models import FeePurpose
from app.modules.hostel import repository
from app.modules.hostel.models import HostelAllocation
from app.modules.notifications import NotificationOutbox
from app.modules.notifications.models import NotificationPriority
from app.modules.users.models import UserRole

logger = logging.getLogger(__name__)

# Job IDs for registration and manual triggering
JOB_ID_GENERATE_FEES = "generate_monthly_hostel_fees"
JOB_ID_CHECK_OVERDUE = "check_overdue_hostel_fees"

StopCheck = Callable[[], Awaitable[bool]]


def normalize_period(value: date | datetime) -> date:
    """Return the first day of the month containing ``value``."""
    if isinstance(value, datetime):
        value = value.date()
    return value.replace(day=1)


def due_date_for(period: date) -> date:
    # Day 28 exists in every month
    return period.replace(day=max(1, min(settings.recurring_fee_due_day, 28)))


def _select_pending(
    allocations: list[HostelAllocation],
    existing_sources: set[UUID],
    existing_trainees: set[UUID],
) -> tuple[list[HostelAllocation], int]:
    """
    Split allocations into those needing an entry and a skipped count.

    An allocation is already covered when an entry exists for its own id or
    for its trainee in the same period.
    """
    pending: list[HostelAllocation] = []
    seen_trainees = set(existing_trainees)
    skipped = 0

    for allocation in allocations:
        if (
            allocation.id in existing_sources
            or allocation.trainee_id in seen_trainees
            or allocation.monthly_fee <= 0
        ):
            skipped += 1
            continue
        seen_trainees.add(allocation.trainee_id)
        pending.append(allocation)

    return pending, skipped


async def _create_batch(
    batch: list[HostelAllocation],
    period: date,
    due_date: date,
) -> None:
    description = f"Hostel fee for {period.strftime('%B %Y')}"

    async with async_session_maker() as db:
        async with unit_of_work(db):
            for allocation in batch:
                await fees_repository.create_entry(
                    db,
                    organization_id=allocation.organization_id,
                    purpose=FeePurpose.HOSTEL_FEE,
                    amount=allocation.monthly_fee,
                    trainee_id=allocation.trainee_id,
                    description=description,
                    source_id=allocation.id,
                    period=period,
                    due_date=due_date,
                )


async def generate_recurring_fees(
    period: date | None = None,
    *,
    organization_id: UUID | None = None,
    batch_size: int | None = None,
    should_stop: StopCheck | None = None,
) -> dict[str, Any]:
    """
    Generate the hostel-fee obligations of one month.

    Args:
        period: Any day of the target month; defaults to the current month
        organization_id: Limit generation to one organization
        batch_size: Entries per transaction (defaults to settings)
        should_stop: Awaitable check consulted before each batch

    Returns:
        Dict with job execution summary including:
        - executed_at / period / due_date
        - created: Entries created by this run
        - skipped: Allocations already covered for the period
        - errors: One item per failed batch
        - batches_processed: Batches committed
        - stopped: Whether a stop request ended the run early
        - total_amount: Sum of the created entries
        - organizations: Created count and amount per organization
    """
    executed_at = datetime.now(UTC)
    period = normalize_period(period or executed_at.date())
    due_date = due_date_for(period)
    batch_size = batch_size or settings.recurring_fee_batch_size

    logger.info(f"Starting hostel fee generation for {period.isoformat()}")

    results: dict[str, Any] = {
        "executed_at": executed_at.isoformat(),
        "period": period.isoformat(),
        "due_date": due_date.isoformat(),
        "created": 0,
        "skipped": 0,
        "errors": [],
        "batches_processed": 0,
        "stopped": False,
        "total_amount": "0.00",
        "organizations": {},
    }

    async with async_session_maker() as db:
        allocations = await repository.get_active_allocations(db, organization_id)
        existing_sources, existing_trainees = await fees_repository.get_period_keys(
            db, FeePurpose.HOSTEL_FEE, period
        )

    pending, results["skipped"] = _select_pending(allocations, existing_sources, existing_trainees)

    logger.info(
        f"Found {len(allocations)} active allocations, {len(pending)} need a fee "
        f"for {period.isoformat()}"
    )

    total = Decimal("0")
    per_org: dict[UUID, dict[str, Any]] = {}

    for batch_number, start in enumerate(range(0, len(pending), batch_size), start=1):
        if should_stop is not None and await should_stop():
            logger.warning(f"Hostel fee generation stopped before batch {batch_number}")
            results["stopped"] = True
            break

        batch = pending[start : start + batch_size]
        try:
            await _create_batch(batch, period, due_date)
        except Exception as e:
            logger.error(f"Hostel fee batch {batch_number} failed: {e}", exc_info=True)
            results["errors"].append(
                {
                    "batch": batch_number,
                    "error": str(e),
                    "source_ids": [str(a.id) for a in batch],
                }
            )
            continue

        results["batches_processed"] += 1
        results["created"] += len(batch)
        for allocation in batch:
            total += allocation.monthly_fee
            org = per_org.setdefault(
                allocation.organization_id, {"count": 0, "amount": Decimal("0")}
            )
            org["count"] += 1
            org["amount"] += allocation.monthly_fee

    results["total_amount"] = str(total.quantize(Decimal("0.01")))
    results["organizations"] = {
        str(org_id): {"count": org["count"], "amount": str(org["amount"])}
        for org_id, org in per_org.items()
    }

    outbox = NotificationOutbox()
    label = period.strftime("%B %Y")
    for org_id, org in per_org.items():
        outbox.notify_role(
            org_id,
            UserRole.HOSTEL_COORDINATOR,
            "hostel_fees_generated",
            "Monthly Hostel Fees Generated",
            f"{org['count']} hostel fee(s) totalling {org['amount']} were generated for {label}.",
            data={"period": period.isoformat(), "count": org["count"], "amount": str(org["amount"])},
            action_url="/fees/entries?purpose=hostel_fee",
        )
    await outbox.dispatch()

    logger.info(
        f"Hostel fee generation completed for {period.isoformat()}. "
        f"Created: {results['created']}, Skipped: {results['skipped']}, "
        f"Failed batches: {len(results['errors'])}"
    )
    return results


async def check_overdue_hostel_fees(as_of: date | None = None) -> dict[str, Any]:
    """
    Notify hostel coordinators about hostel fees past their due date.

    Read-only against the ledger.

    Returns:
        Dict with executed_at, overdue_entries, organizations_notified, and
        the per-organization breakdown
    """
    executed_at = datetime.now(UTC)
    as_of = as_of or executed_at.date()

    async with async_session_maker() as db:
        entries = await fees_repository.get_overdue_entries(db, FeePurpose.HOSTEL_FEE, as_of)

    per_org: dict[UUID, dict[str, Any]] = {}
    for entry in entries:
        org = per_org.setdefault(entry.organization_id, {"count": 0, "amount": Decimal("0")})
        org["count"] += 1
        org["amount"] += entry.balance

    outbox = NotificationOutbox()
    for org_id, org in per_org.items():
        outbox.notify_role(
            org_id,
            UserRole.HOSTEL_COORDINATOR,
            "hostel_fees_overdue",
            "Overdue Hostel Fees",
            f"{org['count']} hostel fee(s) are overdue with {org['amount']} outstanding.",
            priority=NotificationPriority.HIGH,
            data={"count": org["count"], "amount": str(org["amount"])},
            action_url="/fees/entries?purpose=hostel_fee&overdue=true",
        )
    await outbox.dispatch()

    logger.info(
        f"Overdue hostel fee check completed: {len(entries)} entries across "
        f"{len(per_org)} organization(s)"
    )
    return {
        "executed_at": executed_at.isoformat(),
        "overdue_entries": len(entries),
        "organizations_notified": len(per_org),
        "organizations": {
            str(org_id): {"count": org["count"], "amount": str(org["amount"])}
            for org_id, org in per_org.items()
        },
    }


# ============================================
# Scheduled entry points
# ============================================


async def generate_monthly_hostel_fees() -> dict[str, Any]:
    """Scheduled wrapper: current month, stoppable via the Redis stop flag."""

    async def stop_requested() -> bool:
        return await is_job_stop_requested(JOB_ID_GENERATE_FEES)

    try:
        return await generate_recurring_fees(should_stop=stop_requested)
    finally:
        await clear_job_stop(JOB_ID_GENERATE_FEES)


def register_hostel_jobs() -> None:
    """
    Register hostel background jobs with the scheduler.

    This function should be called during application startup, before
    the scheduler is started.
    """
    logger.info("Registering hostel background jobs...")

    register_job(
        job_id=JOB_ID_GENERATE_FEES,
        func=generate_monthly_hostel_fees,
        trigger=CronTrigger(day=1, hour=0, minute=15),
    )
    logger.info(f"Registered job: {JOB_ID_GENERATE_FEES} (cron: 1st of month 00:15)")

    register_job(
        job_id=JOB_ID_CHECK_OVERDUE,
        func=check_overdue_hostel_fees,
        trigger=CronTrigger(hour=6, minute=0),
    )
    logger.info(f"Registered job: {JOB_ID_CHECK_OVERDUE} (cron: daily 06:00)")
