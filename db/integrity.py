"""Write-time consistency check on source record references.

Runs synchronously inside every flush of a ResolverSession, so a writer that
skips the orchestrator (the review workflow, a migration script, the CRM
itself through this package) cannot persist:
  - a contact_id whose contact belongs to a different company,
  - a contact_id that does not exist,
  - exactly one of company_id / contact_id set,
  - any unset reference once the tighten-constraints gate has run.

Raising from before_flush aborts the flush; the caller's transaction is then
rolled back by get_db() or the orchestrator.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from db.models import REFERENCES_REQUIRED_FLAG, Contact, EnforcementFlag, SourceRecord
from resolution.errors import ConsistencyViolation

logger = logging.getLogger(__name__)


class ResolverSession(Session):
    """Session class carrying the consistency hook."""


def _references_changed(record: SourceRecord) -> bool:
    state = inspect(record)
    if state.pending:
        return True
    return (
        state.attrs.company_id.history.has_changes()
        or state.attrs.contact_id.history.has_changes()
    )


def _lookup_contact(session: Session, contact_id: UUID) -> Optional[Contact]:
    for obj in session.new:
        if isinstance(obj, Contact) and obj.id == contact_id:
            return obj
    return session.get(Contact, contact_id)


def _references_required(session: Session) -> bool:
    flag = session.get(EnforcementFlag, REFERENCES_REQUIRED_FLAG)
    return bool(flag and flag.enabled)


def check_source_record(session: Session, record: SourceRecord) -> None:
    """Raise ConsistencyViolation if record's references break an invariant."""
    company_id = record.company_id
    contact_id = record.contact_id

    if company_id is None and contact_id is None:
        if _references_required(session):
            raise ConsistencyViolation(
                f"Source record {record.id}: company_id and contact_id are mandatory "
                "since constraints were tightened",
                record_id=record.id,
            )
        return

    if company_id is None or contact_id is None:
        raise ConsistencyViolation(
            f"Source record {record.id}: partial resolution "
            f"(company_id={company_id}, contact_id={contact_id}); "
            "both references must be set together",
            record_id=record.id,
            company_id=company_id,
            contact_id=contact_id,
        )

    contact = _lookup_contact(session, contact_id)
    if contact is None:
        raise ConsistencyViolation(
            f"Source record {record.id}: contact {contact_id} does not exist",
            record_id=record.id,
            company_id=company_id,
            contact_id=contact_id,
        )
    if contact.company_id != company_id:
        raise ConsistencyViolation(
            f"Source record {record.id}: company_id={company_id} conflicts with "
            f"contact {contact_id} company_id={contact.company_id}",
            record_id=record.id,
            company_id=company_id,
            contact_id=contact_id,
            contact_company_id=contact.company_id,
        )


@event.listens_for(ResolverSession, "before_flush")
def _enforce_source_record_consistency(session, flush_context, instances) -> None:
    candidates = [
        obj
        for obj in (*session.new, *session.dirty)
        if isinstance(obj, SourceRecord) and _references_changed(obj)
    ]
    if not candidates:
        return
    with session.no_autoflush:
        for record in candidates:
            try:
                check_source_record(session, record)
            except ConsistencyViolation as exc:
                logger.error("Rejected source record write: %s", exc)
                raise
