"""Review case repository — the durable queue of unresolved records."""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import ReviewCase, SourceRecord

logger = logging.getLogger(__name__)


async def create(
    session: AsyncSession,
    record: SourceRecord,
    reason: str,
    *,
    run_id: Optional[UUID] = None,
    suggested_company_id: Optional[UUID] = None,
    suggested_contact_id: Optional[UUID] = None,
    error_detail: Optional[str] = None,
) -> ReviewCase:
    """Queue record for review, snapshotting its free-text identity fields."""
    case = ReviewCase(
        source_record_id=record.id,
        reason=reason,
        status="pending",
        suggested_company_id=suggested_company_id,
        suggested_contact_id=suggested_contact_id,
        original_company=record.company_name_hint,
        original_contact_name=record.contact_name,
        original_contact_email=record.contact_email,
        error_detail=error_detail,
        run_id=run_id,
    )
    session.add(case)
    await session.flush()
    return case


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def get(session: AsyncSession, case_id: UUID) -> Optional[ReviewCase]:
    return await session.get(ReviewCase, case_id)


async def list_cases(
    session: AsyncSession,
    status: Optional[str] = None,
    search: Optional[str] = None,
) -> list[ReviewCase]:
    """Return cases, newest first, optionally filtered by status and free text.

    search matches (case-insensitively) the original company, contact name or
    contact email captured when the case was flagged.
    """
    stmt = select(ReviewCase).order_by(ReviewCase.flagged_at.desc(), ReviewCase.id)
    if status is not None:
        stmt = stmt.where(ReviewCase.status == status)
    if search:
        pattern = f"%{_escape_like(search.lower().strip())}%"
        stmt = stmt.where(
            or_(
                func.lower(ReviewCase.original_company).like(pattern, escape="\\"),
                func.lower(ReviewCase.original_contact_name).like(pattern, escape="\\"),
                func.lower(ReviewCase.original_contact_email).like(pattern, escape="\\"),
            )
        )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def close_if_pending(
    session: AsyncSession,
    case_id: UUID,
    status: str,
    resolved_by: str,
    notes: Optional[str] = None,
) -> Optional[UUID]:
    """Move a pending case to status; return its source_record_id.

    The WHERE status = 'pending' guard makes this the optimistic lock: when two
    operators race, exactly one UPDATE matches and the other gets None.
    """
    result = await session.execute(
        update(ReviewCase)
        .where(ReviewCase.id == case_id)
        .where(ReviewCase.status == "pending")
        .values(
            status=status,
            resolved_by=resolved_by,
            resolved_at=datetime.now(timezone.utc),
            resolution_notes=notes,
        )
        .returning(ReviewCase.source_record_id)
        .execution_options(synchronize_session=False)
    )
    record_id = result.scalar_one_or_none()
    if record_id is not None:
        # Reload a copy already held by this session so it sees every closed column.
        await session.get(ReviewCase, case_id, populate_existing=True)
    return record_id


async def delete_pending_for_run(session: AsyncSession, run_id: UUID) -> list[UUID]:
    """Delete pending cases flagged by run_id; return their source record ids."""
    result = await session.execute(
        delete(ReviewCase)
        .where(ReviewCase.run_id == run_id)
        .where(ReviewCase.status == "pending")
        .returning(ReviewCase.source_record_id)
        .execution_options(synchronize_session="fetch")
    )
    record_ids = [row[0] for row in result.all()]
    if record_ids:
        logger.info("Deleted %d pending review cases from run %s", len(record_ids), run_id)
    return record_ids


async def count_pending(session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count(ReviewCase.id)).where(ReviewCase.status == "pending")
    )
    return result.scalar_one()
