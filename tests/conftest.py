"""Shared fixtures: a throwaway SQLite database per test.

Models live in the crm schema on PostgreSQL; schema_translate_map drops the
schema so the same metadata builds on SQLite, including the expression and
partial unique indexes the resolution engine relies on.
"""
import uuid

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from config import Settings
from db.connection import make_session_factory
from db.models import Base
from db.repositories import source_records as records_repo


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'resolver.db'}",
        execution_options={"schema_translate_map": {"crm": None}},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def owner_id():
    return f"owner-{uuid.uuid4().hex[:8]}"


@pytest.fixture
def make_record(session_factory, owner_id):
    """Insert a committed source record and return its id."""

    async def _make(email=None, contact_name=None, company=None, owner=None, name=None):
        async with session_factory() as session:
            record = await records_repo.create(session, {
                "owner_id": owner or owner_id,
                "name": name or "Test deal",
                "company_name_hint": company,
                "contact_name": contact_name,
                "contact_email": email,
            })
            await session.commit()
            return record.id

    return _make
