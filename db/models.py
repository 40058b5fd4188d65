"""SQLAlchemy 2.0 ORM models for the entity resolution engine.

Covers 6 tables in the crm schema:
  - source_records: free-text identity hints plus resolved references
  - companies, contacts: the canonical relationship graph
  - review_cases: records the heuristics could not resolve
  - resolution_runs: one row per batch run, the rollback scope
  - enforcement_flags: persisted outcome of the tighten-constraints gate
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Shared base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Enumerations used in CHECK constraints
# ---------------------------------------------------------------------------

REVIEW_REASONS = (
    "no_email",
    "invalid_email",
    "missing_contact_name",
    "missing_company_identity",
    "fuzzy_match_uncertainty",
    "entity_creation_failed",
)

REVIEW_STATUSES = ("pending", "resolved", "archived")

RUN_KINDS = ("resolution", "rerun")


def _in_check(column: str, values: tuple[str, ...]) -> str:
    return f"{column} IN (" + ", ".join(f"'{v}'" for v in values) + ")"


# ===========================================================================
# Schema: crm
# ===========================================================================


class ResolutionRun(Base):
    """crm.resolution_runs — one batch run; every row it writes is tagged with its id."""

    __tablename__ = "resolution_runs"
    __table_args__ = (
        CheckConstraint(_in_check("kind", RUN_KINDS), name="ck_run_kind"),
        {"schema": "crm"},
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    kind: Mapped[str] = mapped_column(Text, nullable=False, server_default="resolution")
    parent_run_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("crm.resolution_runs.id"), nullable=True
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    success_count: Mapped[int] = mapped_column(Integer, server_default="0", default=0, nullable=False)
    review_count: Mapped[int] = mapped_column(Integer, server_default="0", default=0, nullable=False)
    error_count: Mapped[int] = mapped_column(Integer, server_default="0", default=0, nullable=False)
    rolled_back_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class Company(Base):
    """crm.companies — canonical organization."""

    __tablename__ = "companies"
    __table_args__ = {"schema": "crm"}

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    # Stored lower-cased; uniqueness is enforced on lower(domain) below.
    domain: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner_id: Mapped[str] = mapped_column(Text, nullable=False)
    created_run_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("crm.resolution_runs.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )

    contacts: Mapped[list["Contact"]] = relationship(
        "Contact", back_populates="company"
    )


class Contact(Base):
    """crm.contacts — canonical person, scoped to exactly one company."""

    __tablename__ = "contacts"
    __table_args__ = (
        # Target of the composite foreign key on source_records.
        UniqueConstraint("id", "company_id", name="uq_contact_id_company"),
        {"schema": "crm"},
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("crm.companies.id"), nullable=False
    )
    first_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_primary: Mapped[bool] = mapped_column(
        Boolean, server_default="false", default=False, nullable=False
    )
    owner_id: Mapped[str] = mapped_column(Text, nullable=False)
    created_run_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("crm.resolution_runs.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )

    company: Mapped["Company"] = relationship("Company", back_populates="contacts")

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


class SourceRecord(Base):
    """crm.source_records — a deal carrying free-text identity hints.

    Created and edited by the CRM; this engine only writes company_id,
    contact_id and the resolved_* bookkeeping columns.
    """

    __tablename__ = "source_records"
    __table_args__ = (
        # contact.company_id == source_record.company_id, at the storage layer.
        ForeignKeyConstraint(
            ["contact_id", "company_id"],
            ["crm.contacts.id", "crm.contacts.company_id"],
            name="fk_source_record_contact_company",
        ),
        {"schema": "crm"},
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner_id: Mapped[str] = mapped_column(Text, nullable=False)
    company_name_hint: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("crm.companies.id"), nullable=True
    )
    contact_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    resolved_run_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("crm.resolution_runs.id", ondelete="SET NULL"), nullable=True
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )


class ReviewCase(Base):
    """crm.review_cases — a record queued for a human decision."""

    __tablename__ = "review_cases"
    __table_args__ = (
        CheckConstraint(_in_check("reason", REVIEW_REASONS), name="ck_review_reason"),
        CheckConstraint(_in_check("status", REVIEW_STATUSES), name="ck_review_status"),
        {"schema": "crm"},
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    source_record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("crm.source_records.id", ondelete="CASCADE"), nullable=False
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, server_default="pending", default="pending"
    )
    suggested_company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("crm.companies.id", ondelete="SET NULL"), nullable=True
    )
    suggested_contact_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("crm.contacts.id", ondelete="SET NULL"), nullable=True
    )
    original_company: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    original_contact_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    original_contact_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    run_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("crm.resolution_runs.id", ondelete="SET NULL"), nullable=True
    )
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    flagged_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )


class EnforcementFlag(Base):
    """crm.enforcement_flags — switches flipped by one-time gates."""

    __tablename__ = "enforcement_flags"
    __table_args__ = {"schema": "crm"}

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    enabled: Mapped[bool] = mapped_column(Boolean, server_default="false", nullable=False)
    set_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )


REFERENCES_REQUIRED_FLAG = "references_required"


# ---------------------------------------------------------------------------
# Uniqueness invariants (expression and partial indexes)
# ---------------------------------------------------------------------------

Index("uq_company_domain_lower", func.lower(Company.domain), unique=True)
Index(
    "uq_contact_company_email_lower",
    Contact.company_id,
    func.lower(Contact.email),
    unique=True,
)
Index(
    "uq_contact_primary_per_company",
    Contact.company_id,
    unique=True,
    postgresql_where=Contact.is_primary.is_(True),
    sqlite_where=Contact.is_primary.is_(True),
)
Index(
    "uq_review_case_pending_per_record",
    ReviewCase.source_record_id,
    unique=True,
    postgresql_where=ReviewCase.status == "pending",
    sqlite_where=ReviewCase.status == "pending",
)
Index("ix_company_owner_name_lower", Company.owner_id, func.lower(Company.name))
Index("ix_source_record_resolved_run", SourceRecord.resolved_run_id)
Index("ix_review_case_status", ReviewCase.status)
Index("ix_review_case_run", ReviewCase.run_id)
