"""
Admissions Schemas

Pydantic schemas for request validation and operation results.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.modules.admissions.models import (
    AccountProvisioningStatus,
    EnrollmentStatus,
    QualificationStatus,
    RegistrationStatus,
)

# ============================================
# Requests
# ============================================


class ApplicationCreate(BaseModel):
    """Request body for POST /admissions/applications."""

    organization_id: UUID
    national_id: str = Field(..., min_length=3, max_length=50)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=30)
    date_of_birth: date | None = None
    gender: str | None = Field(None, max_length=20)
    address: str | None = Field(None, max_length=500)
    trade_id: UUID | None = None
    preferred_level: int | None = Field(None, ge=1, le=6)
    needs_hostel_accommodation: bool = False

    @field_validator("national_id", "first_name", "last_name")
    @classmethod
    def strip_whitespace(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class ScreenRequest(BaseModel):
    decision: QualificationStatus = Field(
        ..., description="provisionally_qualified or does_not_qualify"
    )
    remarks: str | None = Field(None, max_length=2000)

    @field_validator("decision")
    @classmethod
    def decision_is_final(cls, value: QualificationStatus) -> QualificationStatus:
        if value == QualificationStatus.PENDING:
            raise ValueError("decision must be provisionally_qualified or does_not_qualify")
        return value


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class RegisterRequest(BaseModel):
    qualification_id: UUID
    academic_year: str | None = Field(
        None,
        pattern=r"^\d{4}(/\d{4})?$",
        description="Defaults to the current calendar year",
    )


# ============================================
# Responses
# ============================================


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    national_id: str
    first_name: str
    last_name: str
    email: str | None
    phone: str | None
    needs_hostel_accommodation: bool
    qualification_status: QualificationStatus
    registration_status: RegistrationStatus
    account_provisioning_status: AccountProvisioningStatus | None
    trainee_number: str | None
    system_email: str | None
    user_id: UUID | None
    screened_at: datetime | None
    screening_remarks: str | None
    rejection_reason: str | None
    submitted_at: datetime | None
    payment_cleared_at: datetime | None
    admitted_at: datetime | None


class ScreeningResult(BaseModel):
    application_id: UUID
    qualification_status: QualificationStatus
    registration_status: RegistrationStatus
    ledger_entry_id: UUID | None = Field(
        None, description="Application-fee obligation; absent when no fee type is configured"
    )
    amount_due: Decimal | None = None


class RejectionResult(BaseModel):
    application_id: UUID
    registration_status: RegistrationStatus
    rejection_reason: str


class ApplicationFeeResult(BaseModel):
    application_id: UUID
    ledger_entry_id: UUID
    amount_due: Decimal
    created: bool


class RegistrationResult(BaseModel):
    application_id: UUID
    trainee_id: UUID
    trainee_number: str
    registration_status: RegistrationStatus
    ledger_entry_id: UUID
    amount_due: Decimal


class EnrollmentResult(BaseModel):
    application_id: UUID
    trainee_id: UUID
    registration_status: RegistrationStatus
    enrollment_status: EnrollmentStatus
    enrollment_finalized_at: datetime
