"""Identity uniqueness and contact/company consistency at the storage layer.

- one company per lower(domain)
- one contact per (company_id, lower(email))
- at most one primary contact per company
- at most one pending review case per source record
- source_records (contact_id, company_id) must name a contact of that company

Revision ID: 002
Revises: 001
Create Date: 2026-10-12
"""
from alembic import op
import sqlalchemy as sa

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_index(
        "uq_company_domain_lower",
        "companies",
        [sa.text("lower(domain)")],
        unique=True,
        schema="crm",
    )
    op.create_index(
        "ix_company_owner_name_lower",
        "companies",
        ["owner_id", sa.text("lower(name)")],
        schema="crm",
    )
    op.create_index(
        "uq_contact_company_email_lower",
        "contacts",
        ["company_id", sa.text("lower(email)")],
        unique=True,
        schema="crm",
    )
    op.create_index(
        "uq_contact_primary_per_company",
        "contacts",
        ["company_id"],
        unique=True,
        schema="crm",
        postgresql_where=sa.text("is_primary"),
    )
    op.create_index(
        "uq_review_case_pending_per_record",
        "review_cases",
        ["source_record_id"],
        unique=True,
        schema="crm",
        postgresql_where=sa.text("status = 'pending'"),
    )
    # MATCH SIMPLE: only enforced once both columns are set.
    op.create_foreign_key(
        "fk_source_record_contact_company",
        "source_records",
        "contacts",
        ["contact_id", "company_id"],
        ["id", "company_id"],
        source_schema="crm",
        referent_schema="crm",
    )


def downgrade() -> None:
    op.drop_constraint(
        "fk_source_record_contact_company", "source_records", type_="foreignkey", schema="crm"
    )
    op.drop_index("uq_review_case_pending_per_record", table_name="review_cases", schema="crm")
    op.drop_index("uq_contact_primary_per_company", table_name="contacts", schema="crm")
    op.drop_index("uq_contact_company_email_lower", table_name="contacts", schema="crm")
    op.drop_index("ix_company_owner_name_lower", table_name="companies", schema="crm")
    op.drop_index("uq_company_domain_lower", table_name="companies", schema="crm")
