"""
Hostel Models

Rooms themselves are managed elsewhere and referenced by id only.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Numeric, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.modules.shared import BaseModel, pg_enum


class AllocationStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ENDED = "ended"


class HostelAllocation(BaseModel):
    """A trainee's standing place in a hostel room, billed monthly."""

    __tablename__ = "hostel_allocations"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    trainee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("trainees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    room_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    monthly_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[AllocationStatus] = mapped_column(
        pg_enum(AllocationStatus, "allocation_status"),
        default=AllocationStatus.ACTIVE,
        nullable=False,
    )
    allocated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("monthly_fee >= 0", name="ck_hostel_allocations_fee_non_negative"),
        Index("ix_hostel_allocations_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<HostelAllocation(id={self.id}, trainee_id={self.trainee_id}, status={self.status})>"
