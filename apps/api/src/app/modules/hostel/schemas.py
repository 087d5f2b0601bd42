"""
Hostel Schemas
"""

from datetime import date
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class GenerateFeesRequest(BaseModel):
    """Request body for POST /hostel/fees/generate."""

    organization_id: UUID | None = Field(
        None, description="Limit generation to one organization (required for non super admins)"
    )
    period: date | None = Field(None, description="Any day of the month; defaults to this month")


class BatchError(BaseModel):
    batch: int
    error: str
    source_ids: list[str]


class GenerateFeesResult(BaseModel):
    executed_at: str
    period: str
    due_date: str
    created: int
    skipped: int
    errors: list[BatchError]
    batches_processed: int
    stopped: bool
    total_amount: str
    organizations: dict[str, Any] = Field(default_factory=dict)
