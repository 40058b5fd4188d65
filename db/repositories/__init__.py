"""Repository layer for the entity resolution engine.

Provides lookup, race-safe insert, and bookkeeping queries for:
- companies: get_by_domain, find_by_name, insert_if_absent, set_domain
- contacts: get_by_email, list_for_company, insert_if_absent, set_email
- source_records: select_unresolved_ids, set_references, reset_for_run
- review_cases: create, list_cases, close_if_pending, delete_pending_for_run
- runs: start_run, finish_run, mark_rolled_back

No function here commits; the caller owns the transaction.
"""
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def dialect_insert(session: AsyncSession, model):
    """Return an INSERT construct supporting ON CONFLICT for the session's dialect."""
    if session.get_bind().dialect.name == "postgresql":
        return postgresql.insert(model)
    return sqlite.insert(model)
