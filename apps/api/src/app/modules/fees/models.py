"""
Fee Ledger Models

A LedgerEntry is one monetary obligation (application fee, registration
fee, or a recurring hostel fee) and its payment progress. Each accepted
payment appends a LedgerPayment.

Invariants enforced by check constraints:
- exactly one of application_id / trainee_id is set
- balance >= 0
- amount_paid + balance = amount_required
"""

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.modules.shared import BaseModel, pg_enum


class FeePurpose(str, enum.Enum):
    """What an obligation pays for; decides the downstream effect of clearance."""

    APPLICATION_FEE = "application_fee"
    REGISTRATION_FEE = "registration_fee"
    HOSTEL_FEE = "hostel_fee"


class LedgerStatus(str, enum.Enum):
    """Payment progress. Moves strictly forward."""

    PENDING = "pending"
    PARTIAL = "partial"
    CLEARED = "cleared"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    MOBILE_MONEY = "mobile_money"
    CARD = "card"
    CHEQUE = "cheque"


class LedgerEntry(BaseModel):
    """A single obligation tied to an application or a trainee."""

    __tablename__ = "ledger_entries"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Subject: exactly one of these is set
    application_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("trainee_applications.id", ondelete="RESTRICT"),
        nullable=True,
    )
    trainee_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("trainees.id", ondelete="RESTRICT"),
        nullable=True,
    )

    purpose: Mapped[FeePurpose] = mapped_column(pg_enum(FeePurpose, "fee_purpose"), nullable=False)
    fee_type_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("fee_types.id", ondelete="SET NULL"),
        nullable=True,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Recurring obligations: the source that generated the entry and its period
    source_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("hostel_allocations.id", ondelete="SET NULL"),
        nullable=True,
    )
    period: Mapped[date | None] = mapped_column(Date, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    amount_required: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[LedgerStatus] = mapped_column(
        pg_enum(LedgerStatus, "ledger_status"),
        default=LedgerStatus.PENDING,
        nullable=False,
    )

    # Method of the most recent payment
    payment_method: Mapped[PaymentMethod | None] = mapped_column(
        pg_enum(PaymentMethod, "payment_method"),
        nullable=True,
    )

    requested_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    cleared_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    cleared_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    payments: Mapped[list["LedgerPayment"]] = relationship(
        "LedgerPayment",
        back_populates="ledger_entry",
        order_by="LedgerPayment.created_at",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(
            "(application_id IS NULL) <> (trainee_id IS NULL)",
            name="ck_ledger_entries_single_subject",
        ),
        CheckConstraint("balance >= 0", name="ck_ledger_entries_balance_non_negative"),
        CheckConstraint(
            "amount_paid + balance = amount_required",
            name="ck_ledger_entries_balance_consistent",
        ),
        UniqueConstraint("source_id", "period", name="uq_ledger_entries_source_period"),
        Index("ix_ledger_entries_application_purpose", "application_id", "purpose"),
        Index("ix_ledger_entries_trainee_purpose", "trainee_id", "purpose"),
        Index("ix_ledger_entries_purpose_period", "purpose", "period"),
        Index("ix_ledger_entries_status_due_date", "status", "due_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(id={self.id}, purpose={self.purpose.value}, "
            f"balance={self.balance}, status={self.status.value})>"
        )


class LedgerPayment(BaseModel):
    """One accepted payment against a ledger entry."""

    __tablename__ = "ledger_payments"

    ledger_entry_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("ledger_entries.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(
        pg_enum(PaymentMethod, "payment_method"),
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    received_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    ledger_entry: Mapped[LedgerEntry] = relationship("LedgerEntry", back_populates="payments")

    __table_args__ = (CheckConstraint("amount > 0", name="ck_ledger_payments_amount_positive"),)
