"""Candidate matching — find existing canonical entities for a normalized identity.

Company rules (never fuzzy; fuzzy company names cause false merges):
  1. domain present: exact case-insensitive domain match, authoritative.
     On a miss, an owner-scoped exact name match against a company that has
     no domain yet is returned as "name_enriched" so the creator can attach
     the domain instead of creating a duplicate.
  2. domain absent: exact case-insensitive name match scoped to the owner.

Contact rules, scoped to one company:
  1. exact case-insensitive email match.
  2. best name similarity among the company's contacts; accepted at or above
     the threshold, reported as a near miss within [review_floor, threshold).
     Ties go to the earliest-created contact.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from db.repositories import companies as companies_repo
from db.repositories import contacts as contacts_repo
from resolution.similarity import SimilarityFn, get_similarity
from schemas.identity import CompanyMatch, ContactMatch, MatchResult, NormalizedIdentity

logger = logging.getLogger(__name__)


async def find_company(
    session: AsyncSession, identity: NormalizedIdentity, owner_id: str
) -> CompanyMatch:
    if identity.domain:
        company = await companies_repo.get_by_domain(session, identity.domain)
        if company is not None:
            return CompanyMatch(company_id=company.id, method="domain")
        if identity.company_name_hint:
            company = await companies_repo.find_by_name(
                session, owner_id, identity.company_name_hint, without_domain=True
            )
            if company is not None:
                return CompanyMatch(company_id=company.id, method="name_enriched")
        return CompanyMatch()

    if identity.company_name_hint:
        company = await companies_repo.find_by_name(
            session, owner_id, identity.company_name_hint
        )
        if company is not None:
            return CompanyMatch(company_id=company.id, method="name")
    return CompanyMatch()


async def find_contact(
    session: AsyncSession,
    company_id: UUID,
    email: Optional[str],
    full_name: Optional[str],
    *,
    similarity: SimilarityFn,
    threshold: float,
    review_floor: float,
) -> ContactMatch:
    if email:
        contact = await contacts_repo.get_by_email(session, company_id, email)
        if contact is not None:
            return ContactMatch(
                contact_id=contact.id,
                method="email",
                score=1.0,
                accepted=True,
                candidate_email=contact.email,
            )

    if not full_name or not full_name.strip():
        return ContactMatch()

    best = None
    best_score = -1.0
    # Oldest first, and only a strictly higher score replaces the leader.
    for candidate in await contacts_repo.list_for_company(session, company_id):
        candidate_name = candidate.full_name
        if not candidate_name:
            continue
        score = similarity(candidate_name, full_name)
        if score > best_score:
            best, best_score = candidate, score

    if best is None or best_score < review_floor:
        return ContactMatch()

    logger.debug(
        "Fuzzy contact candidate %s for %r at company %s: score=%.3f",
        best.id, full_name, company_id, best_score,
    )
    return ContactMatch(
        contact_id=best.id,
        method="fuzzy",
        score=best_score,
        accepted=best_score >= threshold,
        candidate_email=best.email,
    )


async def match(
    session: AsyncSession,
    identity: NormalizedIdentity,
    owner_id: str,
    full_name: Optional[str],
    settings: Settings,
    similarity: Optional[SimilarityFn] = None,
) -> MatchResult:
    """Run company then contact matching; None fields mean "no match, create".

    Only accepted matches are reported; near misses are left to the
    orchestrator, which needs the full ContactMatch to route them to review.
    """
    similarity = similarity or get_similarity(settings.similarity_algorithm)
    company_match = await find_company(session, identity, owner_id)
    if company_match.company_id is None:
        return MatchResult()

    contact_match = await find_contact(
        session,
        company_match.company_id,
        identity.email,
        full_name,
        similarity=similarity,
        threshold=settings.fuzzy_match_threshold,
        review_floor=settings.fuzzy_review_floor,
    )
    if not contact_match.accepted:
        return MatchResult(company_id=company_match.company_id)
    return MatchResult(
        company_id=company_match.company_id,
        contact_id=contact_match.contact_id,
        matched_by_fuzzy=contact_match.method == "fuzzy",
    )
