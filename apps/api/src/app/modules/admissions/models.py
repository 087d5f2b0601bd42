"""
Admissions Models

TraineeApplication carries three independent status axes:

- qualification_status: academic screening outcome
- registration_status: financial / registration progress
- account_provisioning_status: progress of the login identity (NULL until attempted)

Trainee is the enrollment record created when a provisioned applicant is
registered against a qualification. The registration fee and recurring
fees are charged to the trainee rather than the application.

Rows are never hard-deleted.
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.modules.shared import BaseModel, pg_enum


class QualificationStatus(str, enum.Enum):
    PENDING = "pending"
    PROVISIONALLY_QUALIFIED = "provisionally_qualified"
    DOES_NOT_QUALIFY = "does_not_qualify"


class RegistrationStatus(str, enum.Enum):
    """
    Registration axis:

    applied -> pending_payment -> payment_cleared -> provisionally_admitted
        -> registration_fee_pending -> registered -> fully_registered
    applied -> rejected
    """

    APPLIED = "applied"
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_CLEARED = "payment_cleared"
    PROVISIONALLY_ADMITTED = "provisionally_admitted"
    REGISTRATION_FEE_PENDING = "registration_fee_pending"
    REGISTERED = "registered"
    FULLY_REGISTERED = "fully_registered"
    REJECTED = "rejected"


class AccountProvisioningStatus(str, enum.Enum):
    PENDING = "pending"
    PROVISIONED = "provisioned"
    FAILED = "failed"


class EnrollmentStatus(str, enum.Enum):
    FEE_PENDING = "fee_pending"
    REGISTERED = "registered"
    ACTIVE = "active"


class TraineeApplication(BaseModel):
    """
    A prospective trainee's application.

    Invariants:
    - user_id set => account_provisioning_status = provisioned
    - trainee_number set => qualification_status = provisionally_qualified
    """

    __tablename__ = "trainee_applications"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Applicant
    national_id: Mapped[str] = mapped_column(String(50), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[str | None] = mapped_column(String(20), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)

    # External context referenced by id only
    trade_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    preferred_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    needs_hostel_accommodation: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    # Status axes
    qualification_status: Mapped[QualificationStatus] = mapped_column(
        pg_enum(QualificationStatus, "qualification_status"),
        default=QualificationStatus.PENDING,
        nullable=False,
    )
    registration_status: Mapped[RegistrationStatus] = mapped_column(
        pg_enum(RegistrationStatus, "registration_status"),
        default=RegistrationStatus.APPLIED,
        nullable=False,
    )
    account_provisioning_status: Mapped[AccountProvisioningStatus | None] = mapped_column(
        pg_enum(AccountProvisioningStatus, "account_provisioning_status"),
        nullable=True,
    )

    # Identifiers minted at application-fee clearance
    trainee_number: Mapped[str | None] = mapped_column(String(30), nullable=True)
    system_email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)

    user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Screening
    screened_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    screened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    screening_remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Milestones
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    payment_cleared_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    admitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "national_id", name="uq_trainee_applications_org_national_id"
        ),
        UniqueConstraint(
            "organization_id",
            "trainee_number",
            name="uq_trainee_applications_org_trainee_number",
        ),
        Index("ix_trainee_applications_org_registration", "organization_id", "registration_status"),
        Index(
            "ix_trainee_applications_org_qualification", "organization_id", "qualification_status"
        ),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return (
            f"<TraineeApplication(id={self.id}, qualification={self.qualification_status.value}, "
            f"registration={self.registration_status.value})>"
        )


class Trainee(BaseModel):
    """Enrollment record created at registration."""

    __tablename__ = "trainees"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    application_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("trainee_applications.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    trainee_number: Mapped[str] = mapped_column(String(30), nullable=False)

    # Qualification (trade/level programme) the trainee is registered on
    qualification_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    academic_year: Mapped[str] = mapped_column(String(9), nullable=False)

    enrollment_status: Mapped[EnrollmentStatus] = mapped_column(
        pg_enum(EnrollmentStatus, "enrollment_status"),
        default=EnrollmentStatus.FEE_PENDING,
        nullable=False,
    )
    registered_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    registered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    enrollment_finalized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Trainee(id={self.id}, number={self.trainee_number})>"
