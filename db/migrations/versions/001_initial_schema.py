"""Initial schema: crm resolution tables.

Revision ID: 001
Revises:
Create Date: 2026-10-12

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS crm")

    op.create_table(
        "resolution_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("kind", sa.Text, nullable=False, server_default="resolution"),
        sa.Column("parent_run_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("success_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("review_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("rolled_back_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("kind IN ('resolution', 'rerun')", name="ck_run_kind"),
        sa.ForeignKeyConstraint(["parent_run_id"], ["crm.resolution_runs.id"], name="fk_run_parent"),
        schema="crm",
    )

    op.create_table(
        "companies",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("domain", sa.Text, nullable=True),
        sa.Column("owner_id", sa.Text, nullable=False),
        sa.Column("created_run_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(
            ["created_run_id"], ["crm.resolution_runs.id"], name="fk_company_run", ondelete="SET NULL"
        ),
        schema="crm",
    )

    op.create_table(
        "contacts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("company_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("first_name", sa.Text, nullable=True),
        sa.Column("last_name", sa.Text, nullable=True),
        sa.Column("email", sa.Text, nullable=True),
        sa.Column("is_primary", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("owner_id", sa.Text, nullable=False),
        sa.Column("created_run_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("id", "company_id", name="uq_contact_id_company"),
        sa.ForeignKeyConstraint(["company_id"], ["crm.companies.id"], name="fk_contact_company"),
        sa.ForeignKeyConstraint(
            ["created_run_id"], ["crm.resolution_runs.id"], name="fk_contact_run", ondelete="SET NULL"
        ),
        schema="crm",
    )

    op.create_table(
        "source_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text, nullable=True),
        sa.Column("owner_id", sa.Text, nullable=False),
        sa.Column("company_name_hint", sa.Text, nullable=True),
        sa.Column("contact_name", sa.Text, nullable=True),
        sa.Column("contact_email", sa.Text, nullable=True),
        sa.Column("company_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("resolved_run_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["company_id"], ["crm.companies.id"], name="fk_source_record_company"),
        sa.ForeignKeyConstraint(
            ["resolved_run_id"], ["crm.resolution_runs.id"], name="fk_source_record_run", ondelete="SET NULL"
        ),
        schema="crm",
    )
    op.create_index("ix_source_record_resolved_run", "source_records", ["resolved_run_id"], schema="crm")

    op.create_table(
        "review_cases",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("source_record_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("suggested_company_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("suggested_contact_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("original_company", sa.Text, nullable=True),
        sa.Column("original_contact_name", sa.Text, nullable=True),
        sa.Column("original_contact_email", sa.Text, nullable=True),
        sa.Column("error_detail", sa.Text, nullable=True),
        sa.Column("run_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("resolution_notes", sa.Text, nullable=True),
        sa.Column("resolved_by", sa.Text, nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("flagged_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "reason IN ('no_email', 'invalid_email', 'missing_contact_name', "
            "'missing_company_identity', 'fuzzy_match_uncertainty', 'entity_creation_failed')",
            name="ck_review_reason",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'resolved', 'archived')", name="ck_review_status"
        ),
        sa.ForeignKeyConstraint(
            ["source_record_id"], ["crm.source_records.id"], name="fk_review_record", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["suggested_company_id"], ["crm.companies.id"], name="fk_review_company", ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(
            ["suggested_contact_id"], ["crm.contacts.id"], name="fk_review_contact", ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(
            ["run_id"], ["crm.resolution_runs.id"], name="fk_review_run", ondelete="SET NULL"
        ),
        schema="crm",
    )
    op.create_index("ix_review_case_status", "review_cases", ["status"], schema="crm")
    op.create_index("ix_review_case_run", "review_cases", ["run_id"], schema="crm")

    op.create_table(
        "enforcement_flags",
        sa.Column("key", sa.Text, primary_key=True),
        sa.Column("enabled", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("set_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        schema="crm",
    )


def downgrade() -> None:
    op.drop_index("ix_review_case_run", table_name="review_cases", schema="crm")
    op.drop_index("ix_review_case_status", table_name="review_cases", schema="crm")
    op.drop_index("ix_source_record_resolved_run", table_name="source_records", schema="crm")
    op.drop_table("enforcement_flags", schema="crm")
    op.drop_table("review_cases", schema="crm")
    op.drop_table("source_records", schema="crm")
    op.drop_table("contacts", schema="crm")
    op.drop_table("companies", schema="crm")
    op.drop_table("resolution_runs", schema="crm")
