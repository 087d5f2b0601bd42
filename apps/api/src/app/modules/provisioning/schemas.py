"""
Provisioning Schemas
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.modules.admissions.models import AccountProvisioningStatus
from app.modules.provisioning.models import ProvisioningOutcome, ProvisioningTrigger


class ProvisionRequest(BaseModel):
    """Request body for POST /provisioning/accounts."""

    application_id: UUID | None = None
    trainee_id: UUID | None = None
    force_reprovision: bool = Field(
        False, description="Reset the credential of an already linked identity"
    )

    @model_validator(mode="after")
    def exactly_one_reference(self) -> "ProvisionRequest":
        if (self.application_id is None) == (self.trainee_id is None):
            raise ValueError("Provide exactly one of application_id or trainee_id")
        return self


class ProvisionResult(BaseModel):
    application_id: UUID
    user_id: UUID
    email: str
    outcome: ProvisioningOutcome
    account_provisioning_status: AccountProvisioningStatus


class ProvisioningRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_id: UUID
    trainee_id: UUID | None
    user_id: UUID | None
    email: str | None
    trigger: ProvisioningTrigger
    outcome: ProvisioningOutcome
    error_message: str | None
    created_at: datetime
