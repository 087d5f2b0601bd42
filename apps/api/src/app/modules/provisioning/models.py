"""
Provisioning Models

One row per provisioning attempt. Together they form the attempt history
used to tell a fresh creation, a no-op, and a retry apart.
"""

import enum
import uuid
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.modules.shared import BaseModel, pg_enum


class ProvisioningOutcome(str, enum.Enum):
    CREATED = "created"
    ALREADY_EXISTED = "already_existed"
    FAILED = "failed"


class ProvisioningTrigger(str, enum.Enum):
    MANUAL = "manual"
    AUTO = "auto"


class ProvisioningRecord(BaseModel):
    __tablename__ = "provisioning_records"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    application_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("trainee_applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    trainee_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("trainees.id", ondelete="SET NULL"),
        nullable=True,
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    trigger: Mapped[ProvisioningTrigger] = mapped_column(
        pg_enum(ProvisioningTrigger, "provisioning_trigger"),
        nullable=False,
    )
    outcome: Mapped[ProvisioningOutcome] = mapped_column(
        pg_enum(ProvisioningOutcome, "provisioning_outcome"),
        nullable=False,
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)

    __table_args__ = (Index("ix_provisioning_records_application", "application_id", "created_at"),)
