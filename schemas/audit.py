"""Invariant audit and constraint gate schemas."""
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel


AuditIssueType = Literal["missing_company", "missing_contact", "contact_company_mismatch"]


class AuditIssue(BaseModel):
    source_record_id: UUID
    issue: AuditIssueType
    company_id: Optional[UUID] = None
    contact_id: Optional[UUID] = None
    contact_company_id: Optional[UUID] = None


class ConstraintGateResult(BaseModel):
    applied: bool
    orphan_count: int
    mismatch_count: int
    pending_review_count: int
    message: str
