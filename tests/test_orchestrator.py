"""End-to-end tests for batch resolution, review routing and scoped rollback."""
import uuid
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, insert, select

from config import Settings
from db.models import Company, Contact, ResolutionRun, ReviewCase, SourceRecord
from db.repositories import runs as runs_repo
from db.repositories import source_records as records_repo
from resolution import creator, orchestrator, review
from resolution.errors import RollbackRefused
from resolution.normalizer import normalize


def _constant_similarity(score: float):
    return lambda a, b: score


async def _count(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


async def _record(session_factory, record_id) -> SourceRecord:
    async with session_factory() as session:
        return await records_repo.get(session, record_id)


async def _cases_for(session_factory, record_id) -> list[ReviewCase]:
    async with session_factory() as session:
        result = await session.execute(
            select(ReviewCase).where(ReviewCase.source_record_id == record_id)
        )
        return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_new_deal_creates_company_and_primary_contact(session_factory, settings, make_record):
    record_id = await make_record(email="jane@acme.com", contact_name="Jane Doe", company="Acme Corp")

    report = await orchestrator.run_resolution(session_factory, settings=settings)

    assert report.success_count == 1
    assert report.review_count == 0
    assert report.error_count == 0
    assert report.diagnostics == []

    record = await _record(session_factory, record_id)
    async with session_factory() as session:
        company = await session.get(Company, record.company_id)
        contact = await session.get(Contact, record.contact_id)
    assert (company.name, company.domain) == ("Acme Corp", "acme.com")
    assert (contact.first_name, contact.last_name, contact.email) == ("Jane", "Doe", "jane@acme.com")
    assert contact.is_primary is True
    assert contact.company_id == company.id
    assert record.resolved_run_id == report.run_id
    assert record.resolved_at is not None


@pytest.mark.asyncio
async def test_rerun_after_completion_is_a_no_op(session_factory, settings, make_record):
    await make_record(email="jane@acme.com", contact_name="Jane Doe", company="Acme Corp")
    await orchestrator.run_resolution(session_factory, settings=settings)

    second = await orchestrator.run_resolution(session_factory, settings=settings)

    assert (second.success_count, second.review_count, second.error_count) == (0, 0, 0)
    assert await _count(session_factory, Company) == 1
    assert await _count(session_factory, Contact) == 1


@pytest.mark.asyncio
async def test_same_domain_converges_on_one_company(session_factory, settings, make_record):
    first = await make_record(email="jane@acme.com", contact_name="Jane Doe", company="Acme Corp")
    second = await make_record(email="bob@ACME.com", contact_name="Bob Stone", company="ACME Incorporated")

    report = await orchestrator.run_resolution(session_factory, settings=settings)

    assert report.success_count == 2
    r1 = await _record(session_factory, first)
    r2 = await _record(session_factory, second)
    assert r1.company_id == r2.company_id
    assert r1.contact_id != r2.contact_id
    async with session_factory() as session:
        bob = await session.get(Contact, r2.contact_id)
    assert bob.is_primary is False


@pytest.mark.asyncio
async def test_same_email_resolves_to_same_contact(session_factory, settings, make_record):
    first = await make_record(email="jane@acme.com", contact_name="Jane Doe", company="Acme Corp")
    second = await make_record(email="JANE@acme.com", contact_name="Jane D.", company="Acme")

    await orchestrator.run_resolution(session_factory, settings=settings)

    r1 = await _record(session_factory, first)
    r2 = await _record(session_factory, second)
    assert (r1.company_id, r1.contact_id) == (r2.company_id, r2.contact_id)


@pytest.mark.asyncio
async def test_consumer_domain_falls_back_to_company_name(session_factory, settings, make_record, owner_id):
    record_id = await make_record(email="alice@gmail.com", contact_name="Alice Ng", company="Widgets Inc")

    report = await orchestrator.run_resolution(session_factory, settings=settings)

    assert report.success_count == 1
    record = await _record(session_factory, record_id)
    async with session_factory() as session:
        company = await session.get(Company, record.company_id)
        gmail = (await session.execute(
            select(Company).where(Company.domain == "gmail.com")
        )).scalar_one_or_none()
    assert company.name == "Widgets Inc"
    assert company.domain is None
    assert gmail is None, "a consumer domain must never become a company"


@pytest.mark.asyncio
async def test_domain_learned_for_name_only_company(session_factory, settings, make_record):
    first = await make_record(email="alice@gmail.com", contact_name="Alice Ng", company="Widgets Inc")
    await orchestrator.run_resolution(session_factory, settings=settings)
    second = await make_record(email="bob@widgets.io", contact_name="Bob Stone", company="Widgets Inc")

    await orchestrator.run_resolution(session_factory, settings=settings)

    r1 = await _record(session_factory, first)
    r2 = await _record(session_factory, second)
    assert r1.company_id == r2.company_id
    async with session_factory() as session:
        company = await session.get(Company, r1.company_id)
    assert company.domain == "widgets.io"


# ---------------------------------------------------------------------------
# Review routing
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "email, contact_name, company, reason",
    [
        (None, "Jane Doe", "Acme", "no_email"),
        ("  ", "Jane Doe", "Acme", "no_email"),
        ("jane-at-acme", "Jane Doe", "Acme", "invalid_email"),
        ("jane@acme.com", None, "Acme", "missing_contact_name"),
        ("alice@gmail.com", "Alice Ng", None, "missing_company_identity"),
    ],
)
async def test_unusable_input_goes_to_review(
    session_factory, settings, make_record, email, contact_name, company, reason
):
    record_id = await make_record(email=email, contact_name=contact_name, company=company)

    report = await orchestrator.run_resolution(session_factory, settings=settings)

    assert report.review_count == 1
    assert report.success_count == 0
    assert len(report.diagnostics) == 1 and reason in report.diagnostics[0]
    record = await _record(session_factory, record_id)
    assert record.company_id is None and record.contact_id is None
    cases = await _cases_for(session_factory, record_id)
    assert [(c.reason, c.status) for c in cases] == [(reason, "pending")]
    assert cases[0].original_contact_email == email
    assert cases[0].run_id == report.run_id
    assert await _count(session_factory, Company) == 0


@pytest.mark.asyncio
async def test_pending_record_is_not_requeued(session_factory, settings, make_record):
    record_id = await make_record(email=None, contact_name="Jane Doe", company="Acme")
    await orchestrator.run_resolution(session_factory, settings=settings)

    second = await orchestrator.run_resolution(session_factory, settings=settings)

    assert second.review_count == 0
    assert len(await _cases_for(session_factory, record_id)) == 1


@pytest.mark.asyncio
async def test_near_miss_queues_review_with_suggestion(session_factory, settings, make_record):
    await make_record(email="jane@acme.com", contact_name="Jane Doe", company="Acme Corp")
    await orchestrator.run_resolution(session_factory, settings=settings)
    record_id = await make_record(email="j.doe@acme.com", contact_name="Jayne Dough", company="Acme Corp")

    report = await orchestrator.run_resolution(
        session_factory, settings=settings, similarity=_constant_similarity(0.79)
    )

    assert report.review_count == 1
    [case] = await _cases_for(session_factory, record_id)
    assert case.reason == "fuzzy_match_uncertainty"
    assert case.suggested_company_id is not None
    assert case.suggested_contact_id is not None
    assert await _count(session_factory, Contact) == 1, "no duplicate contact on a near miss"


@pytest.mark.asyncio
async def test_accepted_fuzzy_with_conflicting_email_goes_to_review(session_factory, settings, make_record):
    await make_record(email="jane@acme.com", contact_name="Jane Doe", company="Acme Corp")
    await orchestrator.run_resolution(session_factory, settings=settings)
    record_id = await make_record(email="jdoe@acme.com", contact_name="Jane Doe", company="Acme Corp")

    report = await orchestrator.run_resolution(session_factory, settings=settings)

    assert report.review_count == 1
    [case] = await _cases_for(session_factory, record_id)
    assert case.reason == "fuzzy_match_uncertainty"
    assert "jane@acme.com" in case.error_detail


@pytest.mark.asyncio
async def test_accepted_fuzzy_enriches_contact_without_email(
    session_factory, settings, make_record, owner_id
):
    async with session_factory() as session:
        company = await creator.create_company(session, normalize("x@acme.com", "Acme Corp"), owner_id)
        existing = await creator.create_contact(session, company.id, "Jane Doe", None, owner_id)
        await session.commit()
    record_id = await make_record(email="jane@acme.com", contact_name="Jane  Doe", company="Acme Corp")

    report = await orchestrator.run_resolution(session_factory, settings=settings)

    assert report.success_count == 1
    record = await _record(session_factory, record_id)
    assert record.contact_id == existing.id
    async with session_factory() as session:
        contact = await session.get(Contact, existing.id)
    assert contact.email == "jane@acme.com"


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_creation_failure_is_isolated_and_queued(session_factory, settings, make_record):
    broken = await make_record(email="jane@acme.com", contact_name="Jane Doe", company="Acme Corp")
    healthy = await make_record(email="bob@beta.com", contact_name="Bob Stone", company="Beta")
    real_create_company = creator.create_company

    async def flaky_create_company(session, identity, owner_id, run_id=None):
        if identity.domain == "acme.com":
            raise RuntimeError("insert timed out")
        return await real_create_company(session, identity, owner_id, run_id)

    with patch.object(creator, "create_company", flaky_create_company):
        report = await orchestrator.run_resolution(session_factory, settings=settings)

    assert report.success_count == 1
    assert report.error_count == 1
    assert any("insert timed out" in line for line in report.diagnostics)
    [case] = await _cases_for(session_factory, broken)
    assert case.reason == "entity_creation_failed"
    assert "RuntimeError" in case.error_detail
    assert (await _record(session_factory, broken)).company_id is None
    assert (await _record(session_factory, healthy)).company_id is not None


@pytest.mark.asyncio
async def test_record_load_failure_is_isolated(session_factory, settings, make_record):
    broken = await make_record(email="jane@acme.com", contact_name="Jane Doe", company="Acme Corp")
    healthy = await make_record(email="bob@beta.com", contact_name="Bob Stone", company="Beta")
    real_get = records_repo.get
    failed_once = []

    async def flaky_get(session, record_id):
        if record_id == broken and not failed_once:
            failed_once.append(record_id)
            raise ConnectionError("connection reset")
        return await real_get(session, record_id)

    with patch.object(records_repo, "get", flaky_get):
        report = await orchestrator.run_resolution(session_factory, settings=settings)

    assert (report.success_count, report.error_count) == (1, 1)
    [case] = await _cases_for(session_factory, broken)
    assert case.reason == "entity_creation_failed"
    assert "ConnectionError" in case.error_detail
    assert (await _record(session_factory, healthy)).company_id is not None
    async with session_factory() as session:
        run = await session.get(ResolutionRun, report.run_id)
    assert run.completed_at is not None
    assert (run.success_count, run.error_count) == (1, 1)


@pytest.mark.asyncio
async def test_consistency_violation_rejects_write(session_factory, settings, make_record, owner_id):
    async with session_factory() as session:
        other = await creator.create_company(session, normalize("x@other.com", "Other"), owner_id)
        stranger = await creator.create_contact(session, other.id, "Sam Stranger", "sam@other.com", owner_id)
        await session.commit()
    record_id = await make_record(email="jane@acme.com", contact_name="Jane Doe", company="Acme Corp")

    with patch.object(orchestrator, "_resolve_contact", AsyncMock(return_value=stranger)):
        report = await orchestrator.run_resolution(session_factory, settings=settings)

    assert report.error_count == 1
    assert "rejected" in report.diagnostics[0]
    assert (await _record(session_factory, record_id)).company_id is None
    assert await _cases_for(session_factory, record_id) == []
    assert await _count(session_factory, Company) == 1, "the rejected record's company was rolled back"


@pytest.mark.asyncio
async def test_partial_record_keeps_existing_company(session_factory, settings, make_record, owner_id):
    async with session_factory() as session:
        company = await creator.create_company(session, normalize("x@acme.com", "Acme Corp"), owner_id)
        record_id = uuid.uuid4()
        # Legacy data written before both references were required together.
        await session.execute(insert(SourceRecord).values(
            id=record_id,
            owner_id=owner_id,
            company_name_hint="Something Else",
            contact_name="Jane Doe",
            contact_email="jane@elsewhere.com",
            company_id=company.id,
        ))
        await session.commit()

    report = await orchestrator.run_resolution(session_factory, settings=settings)

    assert report.success_count == 1
    record = await _record(session_factory, record_id)
    assert record.company_id == company.id
    async with session_factory() as session:
        contact = await session.get(Contact, record.contact_id)
    assert contact.company_id == company.id


# ---------------------------------------------------------------------------
# Rollback
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_rollback_is_scoped_to_one_run(session_factory, settings, make_record):
    first = await make_record(email="jane@acme.com", contact_name="Jane Doe", company="Acme Corp")
    queued = await make_record(email=None, contact_name="No Mail", company="Acme Corp")
    run1 = await orchestrator.run_resolution(session_factory, settings=settings)
    later = await make_record(email="bob@beta.com", contact_name="Bob Stone", company="Beta")
    run2 = await orchestrator.run_resolution(session_factory, settings=settings)

    result = await orchestrator.rollback_and_rerun(run1.run_id, session_factory, settings=settings)

    assert result.records_reset == 1
    assert result.review_cases_deleted == 1
    assert result.rerun.success_count == 1
    assert result.rerun.review_count == 1
    assert result.rerun.run_id not in (run1.run_id, run2.run_id)

    assert (await _record(session_factory, first)).resolved_run_id == result.rerun.run_id
    untouched = await _record(session_factory, later)
    assert untouched.resolved_run_id == run2.run_id
    [case] = await _cases_for(session_factory, queued)
    assert case.run_id == result.rerun.run_id

    async with session_factory() as session:
        original = await runs_repo.get_run(session, run1.run_id)
        rerun = await runs_repo.get_run(session, result.rerun.run_id)
    assert original.rolled_back_at is not None
    assert (rerun.kind, rerun.parent_run_id) == ("rerun", run1.run_id)


@pytest.mark.asyncio
async def test_rollback_keeps_human_decisions(session_factory, settings, make_record):
    record_id = await make_record(email=None, contact_name="Jane Doe", company="Acme Corp")
    helper = await make_record(email="jane@acme.com", contact_name="Jane Doe", company="Acme Corp")
    run1 = await orchestrator.run_resolution(session_factory, settings=settings)
    resolved = await _record(session_factory, helper)
    [case] = await _cases_for(session_factory, record_id)
    async with session_factory() as session:
        await review.resolve_review_case(
            session, case.id, resolved.company_id, resolved.contact_id, "ops@example.com"
        )
        await session.commit()

    result = await orchestrator.rollback_and_rerun(run1.run_id, session_factory, settings=settings)

    assert result.review_cases_deleted == 0
    record = await _record(session_factory, record_id)
    assert record.contact_id == resolved.contact_id, "manual resolution survives rollback"
    [kept] = await _cases_for(session_factory, record_id)
    assert kept.status == "resolved"


@pytest.mark.asyncio
async def test_rollback_purges_unreferenced_entities(session_factory, settings, make_record):
    record_id = await make_record(email="jane@acme.com", contact_name="Jane Doe", company="Acme Corp")
    run1 = await orchestrator.run_resolution(session_factory, settings=settings)
    before = await _record(session_factory, record_id)

    result = await orchestrator.rollback_and_rerun(
        run1.run_id, session_factory, settings=settings, purge_entities=True
    )

    assert (result.companies_purged, result.contacts_purged) == (1, 1)
    after = await _record(session_factory, record_id)
    assert after.company_id is not None and after.company_id != before.company_id
    assert await _count(session_factory, Company) == 1
    assert await _count(session_factory, ResolutionRun) == 2


@pytest.mark.asyncio
async def test_rollback_unknown_run_refused(session_factory, settings):
    with pytest.raises(RollbackRefused):
        await orchestrator.rollback_and_rerun(uuid.uuid4(), session_factory, settings=settings)


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_concurrent_same_domain_converges(session_factory, make_record):
    names = ["Jane Doe", "Bob Stone", "Alice Ng", "Carl Ruiz", "Dana Wu", "Eve Park"]
    ids = [
        await make_record(
            email=f"{name.split()[0].lower()}@acme.com", contact_name=name, company="Acme Corp"
        )
        for name in names
    ]

    report = await orchestrator.run_resolution(session_factory, settings=Settings(concurrency=4))

    assert (report.success_count, report.review_count, report.error_count) == (len(names), 0, 0)
    assert report.diagnostics == []
    assert await _count(session_factory, Company) == 1
    assert await _count(session_factory, Contact) == len(names)
    async with session_factory() as session:
        primaries = (await session.execute(
            select(func.count()).select_from(Contact).where(Contact.is_primary.is_(True))
        )).scalar_one()
    assert primaries == 1
    records = [await _record(session_factory, i) for i in ids]
    assert len({r.company_id for r in records}) == 1
