"""Normalized identity and match result schemas."""
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel


class NormalizedIdentity(BaseModel):
    valid: bool
    email: Optional[str] = None  # lower-cased, trimmed
    domain: Optional[str] = None  # None for consumer providers
    company_name_hint: Optional[str] = None


CompanyMatchMethod = Literal["domain", "name", "name_enriched"]
ContactMatchMethod = Literal["email", "fuzzy"]


class CompanyMatch(BaseModel):
    company_id: Optional[UUID] = None
    method: Optional[CompanyMatchMethod] = None


class ContactMatch(BaseModel):
    """Best contact candidate inside one company.

    contact_id None means no candidate at or above the review floor.
    accepted False with a contact_id means a near miss (below threshold).
    """

    contact_id: Optional[UUID] = None
    method: Optional[ContactMatchMethod] = None
    score: Optional[float] = None
    accepted: bool = False
    candidate_email: Optional[str] = None


class MatchResult(BaseModel):
    company_id: Optional[UUID] = None
    contact_id: Optional[UUID] = None
    matched_by_fuzzy: bool = False
