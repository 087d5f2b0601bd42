"""
Fee Ledger Router

Endpoints:
- GET /fees/entries - List ledger entries of an application or a trainee
- GET /fees/entries/{id} - Ledger entry with its payment history
- POST /fees/entries/{id}/payments - Record a payment (Clearance Processor)
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Principal, get_current_principal
from app.core.database import get_db
from app.core.errors import ServiceError, to_http_exception
from app.modules.fees import clearance, service
from app.modules.fees.schemas import (
    ClearanceResult,
    ClearPaymentRequest,
    LedgerEntryDetailResponse,
    LedgerEntryResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/entries",
    response_model=list[LedgerEntryResponse],
    summary="List Ledger Entries",
)
async def list_entries(
    application_id: UUID | None = Query(None),
    trainee_id: UUID | None = Query(None),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> list[LedgerEntryResponse]:
    try:
        entries = await service.list_ledger_entries(
            db, principal, application_id=application_id, trainee_id=trainee_id
        )
    except ServiceError as e:
        raise to_http_exception(e) from e
    return [LedgerEntryResponse.model_validate(e) for e in entries]


@router.get(
    "/entries/{ledger_entry_id}",
    response_model=LedgerEntryDetailResponse,
    summary="Get Ledger Entry",
)
async def get_entry(
    ledger_entry_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> LedgerEntryDetailResponse:
    try:
        entry = await service.get_ledger_entry(db, principal, ledger_entry_id)
    except ServiceError as e:
        raise to_http_exception(e) from e
    return LedgerEntryDetailResponse.model_validate(entry)


@router.post(
    "/entries/{ledger_entry_id}/payments",
    response_model=ClearanceResult,
    summary="Clear Payment",
    description="""
Apply a payment to a ledger entry.

A payment that brings the balance to zero clears the entry and advances the
owning application or trainee. Paying an entry that is already cleared
returns `already_cleared: true` and changes nothing. Payments above the
outstanding balance are rejected with `422 OVERPAYMENT_REJECTED`.
""",
)
async def clear_payment(
    ledger_entry_id: UUID,
    data: ClearPaymentRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ClearanceResult:
    try:
        return await clearance.clear_payment(
            db,
            principal,
            ledger_entry_id,
            amount=data.amount,
            method=data.method,
            notes=data.notes,
        )
    except ServiceError as e:
        raise to_http_exception(e) from e
