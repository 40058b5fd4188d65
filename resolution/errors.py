"""Error taxonomy for entity resolution.

InputError and AmbiguousMatch become review cases; CreationFailure becomes an
entity_creation_failed review case; ConsistencyViolation rejects the write
that caused it and is never queued for review.
"""
from typing import Optional
from uuid import UUID


class ResolutionError(Exception):
    """Base class for all resolution errors."""


class InputError(ResolutionError):
    """The source record's identity fields cannot be used for matching."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


class AmbiguousMatch(ResolutionError):
    """A fuzzy candidate exists but the heuristics cannot accept it."""

    def __init__(
        self,
        message: str,
        *,
        suggested_company_id: Optional[UUID] = None,
        suggested_contact_id: Optional[UUID] = None,
        score: Optional[float] = None,
    ):
        super().__init__(message)
        self.suggested_company_id = suggested_company_id
        self.suggested_contact_id = suggested_contact_id
        self.score = score


class CreationFailure(ResolutionError):
    """Writing a Company or Contact failed unexpectedly."""


class ConsistencyViolation(ResolutionError):
    """A source record write would break the company/contact invariants."""

    def __init__(
        self,
        message: str,
        *,
        record_id: Optional[UUID] = None,
        company_id: Optional[UUID] = None,
        contact_id: Optional[UUID] = None,
        contact_company_id: Optional[UUID] = None,
    ):
        super().__init__(message)
        self.record_id = record_id
        self.company_id = company_id
        self.contact_id = contact_id
        self.contact_company_id = contact_company_id


class ReviewCaseNotFound(ResolutionError):
    """No review case exists with the given id."""


class ReviewCaseAlreadyResolved(ResolutionError):
    """The review case has already left the pending state."""

    def __init__(self, case_id: UUID, status: str):
        super().__init__(f"Review case {case_id} is already {status}")
        self.case_id = case_id
        self.status = status


class RollbackRefused(ResolutionError):
    """A run cannot be rolled back."""
