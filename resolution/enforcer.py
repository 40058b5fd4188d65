"""Invariant enforcement outside the write path.

The synchronous per-write check lives in db.integrity. This module holds:
- validate_all_entities(): offline audit of every current violation
- tighten_constraints(): one-time gate making both references mandatory
"""
import logging

from sqlalchemy import and_, or_, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import REFERENCES_REQUIRED_FLAG, Contact, EnforcementFlag, SourceRecord
from db.repositories import review_cases as review_repo
from db.repositories import source_records as records_repo
from schemas.audit import AuditIssue, ConstraintGateResult

logger = logging.getLogger(__name__)


async def validate_all_entities(session: AsyncSession) -> list[AuditIssue]:
    """Return one AuditIssue per violation, oldest record first.

    A record missing both references yields both missing_company and
    missing_contact. A contact_id pointing at no contact counts as
    missing_contact.
    """
    result = await session.execute(
        select(
            SourceRecord.id,
            SourceRecord.company_id,
            SourceRecord.contact_id,
            Contact.id,
            Contact.company_id,
        )
        .outerjoin(Contact, Contact.id == SourceRecord.contact_id)
        .where(
            or_(
                SourceRecord.company_id.is_(None),
                SourceRecord.contact_id.is_(None),
                Contact.id.is_(None),
                and_(
                    SourceRecord.company_id.is_not(None),
                    Contact.company_id != SourceRecord.company_id,
                ),
            )
        )
        .order_by(SourceRecord.created_at, SourceRecord.id)
    )

    issues: list[AuditIssue] = []
    for record_id, company_id, contact_id, found_contact_id, contact_company_id in result.all():
        common = {
            "source_record_id": record_id,
            "company_id": company_id,
            "contact_id": contact_id,
            "contact_company_id": contact_company_id,
        }
        if company_id is None:
            issues.append(AuditIssue(issue="missing_company", **common))
        if contact_id is None or found_contact_id is None:
            issues.append(AuditIssue(issue="missing_contact", **common))
        elif company_id is not None and contact_company_id != company_id:
            issues.append(AuditIssue(issue="contact_company_mismatch", **common))
    return issues


async def references_required(session: AsyncSession) -> bool:
    flag = await session.get(EnforcementFlag, REFERENCES_REQUIRED_FLAG)
    return bool(flag and flag.enabled)


async def tighten_constraints(session: AsyncSession) -> ConstraintGateResult:
    """Make company_id/contact_id mandatory, but only on a clean data set.

    Refuses (applied=False) while any orphan record, mismatched record or
    pending review case exists, reporting the counts. On success the
    references_required flag is persisted, which the write-time check reads,
    and on PostgreSQL both columns are altered to NOT NULL.
    """
    orphan_count = await records_repo.count_orphans(session)
    mismatch_count = sum(
        1 for i in await validate_all_entities(session) if i.issue == "contact_company_mismatch"
    )
    pending_count = await review_repo.count_pending(session)

    if orphan_count or mismatch_count or pending_count:
        message = (
            f"Refusing to tighten constraints: {orphan_count} orphan records, "
            f"{mismatch_count} contact/company mismatches, "
            f"{pending_count} pending review cases"
        )
        logger.warning(message)
        return ConstraintGateResult(
            applied=False,
            orphan_count=orphan_count,
            mismatch_count=mismatch_count,
            pending_review_count=pending_count,
            message=message,
        )

    flag = await session.get(EnforcementFlag, REFERENCES_REQUIRED_FLAG)
    if flag is None:
        session.add(EnforcementFlag(key=REFERENCES_REQUIRED_FLAG, enabled=True))
    else:
        flag.enabled = True
    await session.flush()

    if session.get_bind().dialect.name == "postgresql":
        await session.execute(text(
            "ALTER TABLE crm.source_records "
            "ALTER COLUMN company_id SET NOT NULL, "
            "ALTER COLUMN contact_id SET NOT NULL"
        ))

    logger.info("Constraints tightened: source record references are now mandatory")
    return ConstraintGateResult(
        applied=True,
        orphan_count=0,
        mismatch_count=0,
        pending_review_count=0,
        message="company_id and contact_id are now mandatory on source records",
    )
