"""Company repository — domain/name lookup and race-safe creation."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, delete, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Company, Contact, ReviewCase, SourceRecord
from db.repositories import dialect_insert

logger = logging.getLogger(__name__)


async def get_by_id(session: AsyncSession, company_id: UUID) -> Optional[Company]:
    return await session.get(Company, company_id)


async def get_by_domain(session: AsyncSession, domain: str) -> Optional[Company]:
    """Return the Company with this domain (case-insensitive), or None."""
    result = await session.execute(
        select(Company).where(func.lower(Company.domain) == domain.lower().strip())
    )
    return result.scalar_one_or_none()


async def find_by_name(
    session: AsyncSession,
    owner_id: str,
    name: str,
    *,
    without_domain: bool = False,
) -> Optional[Company]:
    """Return the earliest company owned by owner_id whose name equals name.

    Comparison is exact after trimming and lower-casing both sides. With
    without_domain=True only companies that have no domain yet are considered.
    """
    stmt = (
        select(Company)
        .where(Company.owner_id == owner_id)
        .where(func.lower(func.trim(Company.name)) == name.lower().strip())
        .order_by(Company.created_at, Company.id)
        .limit(1)
    )
    if without_domain:
        stmt = stmt.where(Company.domain.is_(None))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def insert_if_absent(session: AsyncSession, data: dict) -> Optional[Company]:
    """Insert a company; return None if a unique index rejected it.

    data dict keys: name, domain, owner_id, created_run_id

    A None return means a concurrent writer created the same domain first;
    the caller refetches by domain.
    """
    if data.get("domain"):
        data = {**data, "domain": data["domain"].lower().strip()}
    stmt = (
        dialect_insert(session, Company)
        .values(**data)
        .on_conflict_do_nothing()
        .returning(Company.id)
    )
    result = await session.execute(stmt)
    company_id = result.scalar_one_or_none()
    if company_id is None:
        return None
    await session.flush()
    return await session.get(Company, company_id)


async def set_domain(session: AsyncSession, company: Company, domain: str) -> Company:
    """Record a newly learned domain on a company that had none."""
    company.domain = domain.lower().strip()
    await session.flush()
    return company


async def delete_unreferenced_created_by_run(session: AsyncSession, run_id: UUID) -> int:
    """Delete companies created by run_id that nothing points at any more."""
    referenced = or_(
        exists().where(Contact.company_id == Company.id),
        exists().where(SourceRecord.company_id == Company.id),
        exists().where(ReviewCase.suggested_company_id == Company.id),
    )
    result = await session.execute(
        delete(Company)
        .where(and_(Company.created_run_id == run_id, ~referenced))
        .returning(Company.id)
    )
    count = len(result.fetchall())
    if count:
        logger.info("Purged %d companies created by run %s", count, run_id)
    return count
