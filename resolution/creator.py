"""Entity creation and enrichment.

Creation is find-or-create against storage-level unique indexes: the insert
uses ON CONFLICT DO NOTHING and, when it loses a race, the winner's row is
fetched instead. Two resolutions of the same new domain therefore converge on
one Company, and two of the same (company, email) on one Contact.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Company, Contact
from db.repositories import companies as companies_repo
from db.repositories import contacts as contacts_repo
from resolution.errors import CreationFailure, InputError
from resolution.normalizer import company_name_from_domain, split_full_name
from schemas.identity import NormalizedIdentity

logger = logging.getLogger(__name__)


async def create_company(
    session: AsyncSession,
    identity: NormalizedIdentity,
    owner_id: str,
    run_id: Optional[UUID] = None,
) -> Company:
    """Find-or-create the company for identity.

    name is the company hint, else the title-cased primary label of the domain.
    Raises InputError(missing_company_identity) when there is neither.
    """
    if identity.company_name_hint:
        name = identity.company_name_hint
    elif identity.domain:
        name = company_name_from_domain(identity.domain)
    else:
        raise InputError(
            "missing_company_identity",
            "No company name hint and no usable (non-consumer) email domain",
        )

    company = await companies_repo.insert_if_absent(session, {
        "name": name,
        "domain": identity.domain,
        "owner_id": owner_id,
        "created_run_id": run_id,
    })
    if company is not None:
        logger.info("Created company %s (%r, domain=%s)", company.id, name, identity.domain)
        return company

    if identity.domain:
        existing = await companies_repo.get_by_domain(session, identity.domain)
        if existing is not None:
            logger.info(
                "Company for domain %s was created concurrently; reusing %s",
                identity.domain, existing.id,
            )
            return existing
    raise CreationFailure(
        f"Company insert for {name!r} (domain={identity.domain}) conflicted "
        "but no existing row was found"
    )


async def enrich_company_domain(
    session: AsyncSession, company: Company, domain: str
) -> Company:
    logger.info("Enriching company %s with domain %s", company.id, domain)
    return await companies_repo.set_domain(session, company, domain)


async def create_contact(
    session: AsyncSession,
    company_id: UUID,
    full_name: str,
    email: Optional[str],
    owner_id: str,
    run_id: Optional[UUID] = None,
) -> Contact:
    """Find-or-create a contact at company_id.

    The first contact ever created under a company is its primary contact.
    """
    first_name, last_name = split_full_name(full_name)
    is_primary = not await contacts_repo.has_any(session, company_id)
    data = {
        "company_id": company_id,
        "first_name": first_name,
        "last_name": last_name,
        "email": email.lower().strip() if email else None,
        "is_primary": is_primary,
        "owner_id": owner_id,
        "created_run_id": run_id,
    }

    contact = await contacts_repo.insert_if_absent(session, data)
    if contact is not None:
        logger.info(
            "Created contact %s (%r) at company %s, primary=%s",
            contact.id, full_name, company_id, is_primary,
        )
        return contact

    if email:
        existing = await contacts_repo.get_by_email(session, company_id, email)
        if existing is not None:
            logger.info("Contact %s at company %s was created concurrently", email, company_id)
            return existing

    if is_primary:
        # Lost the race for the primary slot, not for the email.
        contact = await contacts_repo.insert_if_absent(session, {**data, "is_primary": False})
        if contact is not None:
            logger.info("Created contact %s (%r) at company %s", contact.id, full_name, company_id)
            return contact

    raise CreationFailure(
        f"Contact insert for {full_name!r} <{email}> at company {company_id} "
        "conflicted but no existing row was found"
    )


async def enrich_contact_email(
    session: AsyncSession, contact: Contact, email: str
) -> Contact:
    """Attach email to a fuzzy-matched contact instead of creating a second person."""
    logger.info("Enriching contact %s with email %s", contact.id, email)
    return await contacts_repo.set_email(session, contact, email)
