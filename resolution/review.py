"""Review queue and the human resolution workflow.

A case moves pending -> resolved or pending -> archived exactly once. Both
transitions are a single guarded UPDATE (WHERE status = 'pending'), so two
operators acting on the same case cannot both succeed. Resolving also writes
the chosen references to the source record in the same transaction; if the
write-time consistency check rejects them, the case stays pending.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import review_cases as review_repo
from db.repositories import source_records as records_repo
from resolution.errors import ReviewCaseAlreadyResolved, ReviewCaseNotFound
from schemas.review import ReviewCaseView

logger = logging.getLogger(__name__)


async def list_review_cases(
    session: AsyncSession,
    status: Optional[str] = "pending",
    search: Optional[str] = None,
) -> list[ReviewCaseView]:
    """Return cases for triage; status=None lists every status."""
    cases = await review_repo.list_cases(session, status=status, search=search)
    return [ReviewCaseView.model_validate(c) for c in cases]


async def list_pending(session: AsyncSession) -> list[ReviewCaseView]:
    return await list_review_cases(session, status="pending")


async def _close(
    session: AsyncSession,
    case_id: UUID,
    status: str,
    resolver_id: str,
    notes: Optional[str],
) -> UUID:
    if not resolver_id or not resolver_id.strip():
        raise ValueError("resolver_id is required")
    record_id = await review_repo.close_if_pending(session, case_id, status, resolver_id, notes)
    if record_id is not None:
        return record_id
    case = await review_repo.get(session, case_id)
    if case is None:
        raise ReviewCaseNotFound(f"Review case {case_id} does not exist")
    raise ReviewCaseAlreadyResolved(case_id, case.status)


async def resolve_review_case(
    session: AsyncSession,
    case_id: UUID,
    company_id: UUID,
    contact_id: UUID,
    resolver_id: str,
    notes: Optional[str] = None,
) -> bool:
    """Link the case's source record to company_id/contact_id and close the case.

    Raises ReviewCaseAlreadyResolved if the case is no longer pending,
    ReviewCaseNotFound for an unknown id, and ConsistencyViolation if the
    contact does not belong to the company. The caller's transaction must be
    rolled back on any of these (get_db() does).
    """
    record_id = await _close(session, case_id, "resolved", resolver_id, notes)
    record = await records_repo.get(session, record_id)
    if record is None:
        raise ReviewCaseNotFound(f"Source record {record_id} of case {case_id} no longer exists")
    await records_repo.set_references(session, record, company_id, contact_id, run_id=None)
    logger.info(
        "Review case %s resolved by %s: record %s -> company %s, contact %s",
        case_id, resolver_id, record_id, company_id, contact_id,
    )
    return True


async def archive_review_case(
    session: AsyncSession,
    case_id: UUID,
    resolver_id: str,
    notes: Optional[str] = None,
) -> bool:
    """Close a case without linking; the record stays unresolved and is not re-queued."""
    record_id = await _close(session, case_id, "archived", resolver_id, notes)
    logger.info("Review case %s (record %s) archived by %s", case_id, record_id, resolver_id)
    return True
