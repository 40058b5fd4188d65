"""Resolution orchestrator — batch driver for unresolved source records.

Per-record states:
  Unresolved -> Resolving -> Resolved | ReviewPending | RejectedByEnforcer

Each record runs in its own session and commits on its own, so an
interrupted batch keeps everything done so far and a re-run only sees what
is still unresolved. Record-level failures never abort the run:
  InputError / AmbiguousMatch -> review case (reason from the error)
  ConsistencyViolation        -> write rejected, logged, no review case
  anything else               -> rolled back, entity_creation_failed case

Usage:
    report = await run_resolution()
    report = await rollback_and_rerun(report.run_id)
"""
import asyncio
import logging
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import Settings, load_settings
from db.connection import get_session_factory, session_scope
from db.models import Company, Contact, SourceRecord
from db.repositories import companies as companies_repo
from db.repositories import contacts as contacts_repo
from db.repositories import review_cases as review_repo
from db.repositories import runs as runs_repo
from db.repositories import source_records as records_repo
from resolution import creator, matcher
from resolution.enforcer import references_required
from resolution.errors import (
    AmbiguousMatch,
    ConsistencyViolation,
    InputError,
    RollbackRefused,
)
from resolution.normalizer import is_valid_email, normalize
from resolution.similarity import SimilarityFn, get_similarity
from schemas.identity import NormalizedIdentity
from schemas.resolution import RecordResult, RollbackReport, RunReport

logger = logging.getLogger(__name__)


def check_preconditions(record: SourceRecord) -> None:
    """Raise InputError if record cannot enter matching at all."""
    if not record.contact_email or not record.contact_email.strip():
        raise InputError("no_email", "Record has no contact email")
    if not is_valid_email(record.contact_email):
        raise InputError("invalid_email", f"Invalid contact email {record.contact_email!r}")
    if not record.contact_name or not record.contact_name.strip():
        raise InputError("missing_contact_name", "Record has no contact name")


async def _resolve_company(
    session: AsyncSession,
    record: SourceRecord,
    identity: NormalizedIdentity,
    run_id: Optional[UUID],
) -> Company:
    # An existing half of a partial resolution is trusted.
    if record.company_id is not None:
        company = await companies_repo.get_by_id(session, record.company_id)
        if company is not None:
            return company
    elif record.contact_id is not None:
        contact = await contacts_repo.get_by_id(session, record.contact_id)
        if contact is not None:
            return await companies_repo.get_by_id(session, contact.company_id)

    found = await matcher.find_company(session, identity, record.owner_id)
    if found.company_id is None:
        return await creator.create_company(session, identity, record.owner_id, run_id)

    company = await companies_repo.get_by_id(session, found.company_id)
    if found.method == "name_enriched":
        await creator.enrich_company_domain(session, company, identity.domain)
    return company


async def _resolve_contact(
    session: AsyncSession,
    record: SourceRecord,
    company: Company,
    identity: NormalizedIdentity,
    run_id: Optional[UUID],
    settings: Settings,
    similarity: SimilarityFn,
) -> Contact:
    if record.contact_id is not None:
        contact = await contacts_repo.get_by_id(session, record.contact_id)
        if contact is not None and contact.company_id == company.id:
            return contact

    found = await matcher.find_contact(
        session,
        company.id,
        identity.email,
        record.contact_name,
        similarity=similarity,
        threshold=settings.fuzzy_match_threshold,
        review_floor=settings.fuzzy_review_floor,
    )

    if found.method == "email":
        return await contacts_repo.get_by_id(session, found.contact_id)

    if found.method == "fuzzy":
        if not found.accepted:
            raise AmbiguousMatch(
                f"Closest contact at {company.name!r} scored {found.score:.2f}, "
                f"below the {settings.fuzzy_match_threshold:.2f} threshold",
                suggested_company_id=company.id,
                suggested_contact_id=found.contact_id,
                score=found.score,
            )
        if found.candidate_email:
            raise AmbiguousMatch(
                f"Name matches contact {found.contact_id} (score {found.score:.2f}) "
                f"who already has email {found.candidate_email!r}, not {identity.email!r}",
                suggested_company_id=company.id,
                suggested_contact_id=found.contact_id,
                score=found.score,
            )
        contact = await contacts_repo.get_by_id(session, found.contact_id)
        return await creator.enrich_contact_email(session, contact, identity.email)

    return await creator.create_contact(
        session, company.id, record.contact_name, identity.email, record.owner_id, run_id
    )


async def resolve_record(
    session: AsyncSession,
    record: SourceRecord,
    run_id: Optional[UUID],
    settings: Settings,
    similarity: SimilarityFn,
) -> RecordResult:
    """Normalize, match-or-create company and contact, and write the references back.

    Raises InputError or AmbiguousMatch for records needing a human, and
    ConsistencyViolation if the write-back is rejected. Does not commit.
    """
    check_preconditions(record)
    identity = normalize(
        record.contact_email, record.company_name_hint, settings.consumer_domains
    )
    if not identity.valid:
        raise InputError("invalid_email", f"Invalid contact email {record.contact_email!r}")

    company = await _resolve_company(session, record, identity, run_id)
    contact = await _resolve_contact(
        session, record, company, identity, run_id, settings, similarity
    )
    await records_repo.set_references(session, record, company.id, contact.id, run_id)
    return RecordResult(
        source_record_id=record.id,
        outcome="resolved",
        company_id=company.id,
        contact_id=contact.id,
    )


async def _queue_for_review(
    session: AsyncSession,
    record: SourceRecord,
    exc: Exception,
    run_id: Optional[UUID],
) -> RecordResult:
    if isinstance(exc, AmbiguousMatch):
        case = await review_repo.create(
            session,
            record,
            "fuzzy_match_uncertainty",
            run_id=run_id,
            suggested_company_id=exc.suggested_company_id,
            suggested_contact_id=exc.suggested_contact_id,
            error_detail=str(exc),
        )
    else:
        case = await review_repo.create(
            session, record, exc.reason, run_id=run_id, error_detail=str(exc)
        )
    logger.info("Record %s queued for review (%s): %s", record.id, case.reason, exc)
    return RecordResult(
        source_record_id=record.id,
        outcome="review_pending",
        review_case_id=case.id,
        reason=case.reason,
        message=str(exc),
    )


async def _record_creation_failure(
    session_factory: async_sessionmaker[AsyncSession],
    record_id: UUID,
    exc: Exception,
    run_id: Optional[UUID],
) -> RecordResult:
    detail = f"{type(exc).__name__}: {exc}"
    result = RecordResult(
        source_record_id=record_id,
        outcome="creation_failed",
        reason="entity_creation_failed",
        message=detail,
    )
    try:
        async with session_factory() as session:
            record = await records_repo.get(session, record_id)
            case = await review_repo.create(
                session, record, "entity_creation_failed", run_id=run_id, error_detail=detail
            )
            await session.commit()
            result.review_case_id = case.id
    except Exception:
        logger.exception("Could not queue record %s for review after failure", record_id)
    return result


async def process_record(
    session_factory: async_sessionmaker[AsyncSession],
    record_id: UUID,
    run_id: Optional[UUID],
    settings: Settings,
    similarity: SimilarityFn,
) -> Optional[RecordResult]:
    """Drive one record to a terminal state and commit it on its own.

    Returns None if the record vanished or was resolved by someone else
    since it was selected.
    """
    async with session_factory() as session:
        try:
            record = await records_repo.get(session, record_id)
            if record is None or (record.company_id is not None and record.contact_id is not None):
                return None
            try:
                result = await resolve_record(session, record, run_id, settings, similarity)
            except (InputError, AmbiguousMatch) as exc:
                result = await _queue_for_review(session, record, exc, run_id)
            await session.commit()
            return result
        except ConsistencyViolation as exc:
            await session.rollback()
            logger.error("Record %s rejected by consistency check: %s", record_id, exc)
            return RecordResult(
                source_record_id=record_id,
                outcome="rejected",
                message=str(exc),
            )
        except Exception as exc:
            await session.rollback()
            logger.warning("Resolution failed for record %s: %s", record_id, exc, exc_info=True)
            failure = exc

    return await _record_creation_failure(session_factory, record_id, failure, run_id)


async def run_resolution(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    *,
    settings: Optional[Settings] = None,
    record_ids: Optional[Iterable[UUID]] = None,
    kind: str = "resolution",
    parent_run_id: Optional[UUID] = None,
    similarity: Optional[SimilarityFn] = None,
) -> RunReport:
    """Resolve every eligible unresolved record under a new run id.

    record_ids narrows the batch (used by rollback_and_rerun). With
    settings.concurrency > 1 records are processed concurrently, each in its
    own session; the storage-level unique indexes keep find-or-create safe.
    """
    session_factory = session_factory or get_session_factory()
    settings = settings or load_settings()
    similarity = similarity or get_similarity(settings.similarity_algorithm)

    async with session_scope(session_factory) as session:
        run = await runs_repo.start_run(session, kind=kind, parent_run_id=parent_run_id)
        ids = await records_repo.select_unresolved_ids(session, record_ids)
    run_id = run.id
    logger.info("Run %s (%s) started: %d unresolved records", run_id, kind, len(ids))

    if settings.concurrency == 1:
        results = []
        for record_id in ids:
            results.append(
                await process_record(session_factory, record_id, run_id, settings, similarity)
            )
    else:
        semaphore = asyncio.Semaphore(settings.concurrency)

        async def _bounded(record_id: UUID) -> Optional[RecordResult]:
            async with semaphore:
                return await process_record(
                    session_factory, record_id, run_id, settings, similarity
                )

        results = await asyncio.gather(*(_bounded(i) for i in ids))

    report = RunReport.from_results(run_id, [r for r in results if r is not None])
    async with session_scope(session_factory) as session:
        await runs_repo.finish_run(
            session, run_id, report.success_count, report.review_count, report.error_count
        )
    logger.info(
        "Run %s finished: %d resolved, %d for review, %d errors",
        run_id, report.success_count, report.review_count, report.error_count,
    )
    return report


async def rollback_and_rerun(
    run_id: UUID,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    *,
    settings: Optional[Settings] = None,
    purge_entities: bool = False,
    similarity: Optional[SimilarityFn] = None,
) -> RollbackReport:
    """Undo what run_id wrote, then reprocess exactly those records.

    Clears references on records resolved by the run and deletes the run's
    pending review cases; cases a human already resolved or archived are
    kept. With purge_entities, companies and contacts created by the run that
    nothing references any more are deleted too.
    """
    session_factory = session_factory or get_session_factory()

    async with session_scope(session_factory) as session:
        run = await runs_repo.get_run(session, run_id)
        if run is None:
            raise RollbackRefused(f"Unknown run {run_id}")
        if await references_required(session):
            raise RollbackRefused(
                "Constraints have been tightened; references can no longer be cleared"
            )
        reset_ids = await records_repo.reset_for_run(session, run_id)
        case_record_ids = await review_repo.delete_pending_for_run(session, run_id)
        contacts_purged = companies_purged = 0
        if purge_entities:
            contacts_purged = await contacts_repo.delete_unreferenced_created_by_run(session, run_id)
            companies_purged = await companies_repo.delete_unreferenced_created_by_run(session, run_id)
        await runs_repo.mark_rolled_back(session, run_id)

    touched = list(dict.fromkeys([*reset_ids, *case_record_ids]))
    logger.info(
        "Rolled back run %s: %d records reset, %d review cases deleted",
        run_id, len(reset_ids), len(case_record_ids),
    )
    rerun = await run_resolution(
        session_factory,
        settings=settings,
        record_ids=touched,
        kind="rerun",
        parent_run_id=run_id,
        similarity=similarity,
    )
    return RollbackReport(
        rolled_back_run_id=run_id,
        records_reset=len(reset_ids),
        review_cases_deleted=len(case_record_ids),
        companies_purged=companies_purged,
        contacts_purged=contacts_purged,
        rerun=rerun,
    )
