"""Source record repository — unresolved selection and reference write-back."""
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import ReviewCase, SourceRecord

logger = logging.getLogger(__name__)

# A record with one of these cases is waiting on (or was dismissed by) a human.
_OPEN_CASE_STATUSES = ("pending", "archived")


async def create(session: AsyncSession, data: dict) -> SourceRecord:
    """Insert a source record as the CRM would: free-text identity fields only.

    data dict keys: owner_id, name, company_name_hint, contact_name, contact_email
    """
    record = SourceRecord(**data)
    session.add(record)
    await session.flush()
    return record


async def get(session: AsyncSession, record_id: UUID) -> Optional[SourceRecord]:
    return await session.get(SourceRecord, record_id)


async def select_unresolved_ids(
    session: AsyncSession,
    record_ids: Optional[Iterable[UUID]] = None,
) -> list[UUID]:
    """Return ids of records missing a reference and not parked in review.

    Oldest first. With record_ids, only those records are considered.
    """
    parked = exists().where(
        ReviewCase.source_record_id == SourceRecord.id,
        ReviewCase.status.in_(_OPEN_CASE_STATUSES),
    )
    stmt = (
        select(SourceRecord.id)
        .where(or_(SourceRecord.company_id.is_(None), SourceRecord.contact_id.is_(None)))
        .where(~parked)
        .order_by(SourceRecord.created_at, SourceRecord.id)
    )
    if record_ids is not None:
        ids = list(record_ids)
        if not ids:
            return []
        stmt = stmt.where(SourceRecord.id.in_(ids))
    result = await session.execute(stmt)
    return [row[0] for row in result.all()]


async def set_references(
    session: AsyncSession,
    record: SourceRecord,
    company_id: Optional[UUID],
    contact_id: Optional[UUID],
    run_id: Optional[UUID] = None,
) -> SourceRecord:
    """Write back resolved references through the ORM so the consistency hook runs."""
    record.company_id = company_id
    record.contact_id = contact_id
    record.resolved_run_id = run_id
    record.resolved_at = (
        datetime.now(timezone.utc) if company_id is not None and contact_id is not None else None
    )
    await session.flush()
    return record


async def reset_for_run(session: AsyncSession, run_id: UUID) -> list[UUID]:
    """Clear references written by run_id and return the affected record ids."""
    result = await session.execute(
        select(SourceRecord).where(SourceRecord.resolved_run_id == run_id)
    )
    records = list(result.scalars().all())
    for record in records:
        await set_references(session, record, None, None, None)
    if records:
        logger.info("Reset references on %d records resolved by run %s", len(records), run_id)
    return [r.id for r in records]


async def count_orphans(session: AsyncSession) -> int:
    """Count records missing company_id or contact_id."""
    result = await session.execute(
        select(func.count(SourceRecord.id)).where(
            or_(SourceRecord.company_id.is_(None), SourceRecord.contact_id.is_(None))
        )
    )
    return result.scalar_one()
