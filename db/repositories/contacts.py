"""Contact repository — company-scoped lookup and race-safe creation."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, delete, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Contact, ReviewCase, SourceRecord
from db.repositories import dialect_insert

logger = logging.getLogger(__name__)


async def get_by_id(session: AsyncSession, contact_id: UUID) -> Optional[Contact]:
    return await session.get(Contact, contact_id)


async def get_by_email(
    session: AsyncSession, company_id: UUID, email: str
) -> Optional[Contact]:
    """Return the contact at company_id with this email (case-insensitive), or None."""
    result = await session.execute(
        select(Contact)
        .where(Contact.company_id == company_id)
        .where(func.lower(Contact.email) == email.lower().strip())
    )
    return result.scalar_one_or_none()


async def list_for_company(session: AsyncSession, company_id: UUID) -> list[Contact]:
    """Return all contacts of a company, oldest first."""
    result = await session.execute(
        select(Contact)
        .where(Contact.company_id == company_id)
        .order_by(Contact.created_at, Contact.id)
    )
    return list(result.scalars().all())


async def has_any(session: AsyncSession, company_id: UUID) -> bool:
    result = await session.execute(
        select(Contact.id).where(Contact.company_id == company_id).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def insert_if_absent(session: AsyncSession, data: dict) -> Optional[Contact]:
    """Insert a contact; return None if a unique index rejected it.

    data dict keys: company_id, first_name, last_name, email, is_primary,
    owner_id, created_run_id

    Conflicts come from (company_id, lower(email)) or from a second primary
    contact at the same company; the caller tells them apart.
    """
    if data.get("email"):
        data = {**data, "email": data["email"].lower().strip()}
    stmt = (
        dialect_insert(session, Contact)
        .values(**data)
        .on_conflict_do_nothing()
        .returning(Contact.id)
    )
    result = await session.execute(stmt)
    contact_id = result.scalar_one_or_none()
    if contact_id is None:
        return None
    await session.flush()
    return await session.get(Contact, contact_id)


async def set_email(session: AsyncSession, contact: Contact, email: str) -> Contact:
    """Attach an email to an existing contact (enrichment instead of duplication)."""
    contact.email = email.lower().strip()
    await session.flush()
    return contact


async def delete_unreferenced_created_by_run(session: AsyncSession, run_id: UUID) -> int:
    """Delete contacts created by run_id that no record or case points at."""
    referenced = or_(
        exists().where(SourceRecord.contact_id == Contact.id),
        exists().where(ReviewCase.suggested_contact_id == Contact.id),
    )
    result = await session.execute(
        delete(Contact)
        .where(and_(Contact.created_run_id == run_id, ~referenced))
        .returning(Contact.id)
    )
    count = len(result.fetchall())
    if count:
        logger.info("Purged %d contacts created by run %s", count, run_id)
    return count
