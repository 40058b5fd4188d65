"""Review queue schemas."""
from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


ReviewReason = Literal[
    "no_email",
    "invalid_email",
    "missing_contact_name",
    "missing_company_identity",
    "fuzzy_match_uncertainty",
    "entity_creation_failed",
]

ReviewStatus = Literal["pending", "resolved", "archived"]


class ReviewCaseView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    source_record_id: UUID
    reason: ReviewReason
    status: ReviewStatus
    suggested_company_id: Optional[UUID] = None
    suggested_contact_id: Optional[UUID] = None
    original_company: Optional[str] = None
    original_contact_name: Optional[str] = None
    original_contact_email: Optional[str] = None
    error_detail: Optional[str] = None
    run_id: Optional[UUID] = None
    resolution_notes: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    flagged_at: Optional[datetime] = None
