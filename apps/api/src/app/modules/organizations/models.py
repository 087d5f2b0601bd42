"""
Organization Models

An organization is a tenant (a training institution). It owns the settings
used to mint trainee identifiers and the fee amounts charged at each stage.
"""

import uuid
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.modules.fees.models import FeePurpose
from app.modules.shared import BaseModel, pg_enum


class Organization(BaseModel):
    """
    Tenant model.

    ``trainee_sequence`` is the last sequence number handed out when minting
    a trainee number. It only ever increases and is read under a row lock.
    """

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)

    # Domain used for trainee system emails, e.g. "trainees.example.edu"
    email_domain: Mapped[str | None] = mapped_column(String(255), nullable=True)

    trainee_id_prefix: Mapped[str | None] = mapped_column(String(10), nullable=True)
    trainee_sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name})>"


class FeeType(BaseModel):
    """A fee amount an organization charges for a given purpose."""

    __tablename__ = "fee_types"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    purpose: Mapped[FeePurpose] = mapped_column(
        pg_enum(FeePurpose, "fee_purpose"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (Index("ix_fee_types_org_purpose", "organization_id", "purpose"),)

    def __repr__(self) -> str:
        return f"<FeeType(id={self.id}, purpose={self.purpose.value}, amount={self.amount})>"
