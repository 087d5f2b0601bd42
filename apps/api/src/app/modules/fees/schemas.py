"""
Fee Ledger Schemas
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.modules.admissions.models import RegistrationStatus
from app.modules.fees.models import FeePurpose, LedgerStatus, PaymentMethod


class ClearPaymentRequest(BaseModel):
    """Request body for POST /fees/entries/{id}/payments."""

    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    method: PaymentMethod
    notes: str | None = Field(None, max_length=500)


class LedgerPaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    amount: Decimal
    method: PaymentMethod
    notes: str | None
    received_by: UUID
    balance_after: Decimal
    created_at: datetime


class LedgerEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    application_id: UUID | None
    trainee_id: UUID | None
    purpose: FeePurpose
    description: str | None
    source_id: UUID | None
    period: date | None
    due_date: date | None
    amount_required: Decimal
    amount_paid: Decimal
    balance: Decimal
    status: LedgerStatus
    payment_method: PaymentMethod | None
    cleared_at: datetime | None
    created_at: datetime


class LedgerEntryDetailResponse(LedgerEntryResponse):
    payments: list[LedgerPaymentResponse] = []


class ClearanceResult(BaseModel):
    """Outcome of a ClearPayment call."""

    ledger_entry_id: UUID
    purpose: FeePurpose
    amount_required: Decimal
    amount_paid: Decimal
    new_balance: Decimal
    new_status: LedgerStatus
    already_cleared: bool = Field(
        False, description="True when the entry was already cleared and nothing changed"
    )
    application_id: UUID | None = None
    registration_status: RegistrationStatus | None = None
    trainee_number: str | None = None
    system_email: str | None = None
