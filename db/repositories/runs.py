"""Resolution run repository — the explicit rollback scope."""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.models import ResolutionRun

logger = logging.getLogger(__name__)


async def start_run(
    session: AsyncSession,
    kind: str = "resolution",
    parent_run_id: Optional[UUID] = None,
) -> ResolutionRun:
    run = ResolutionRun(kind=kind, parent_run_id=parent_run_id)
    session.add(run)
    await session.flush()
    return run


async def get_run(session: AsyncSession, run_id: UUID) -> Optional[ResolutionRun]:
    return await session.get(ResolutionRun, run_id)


async def finish_run(
    session: AsyncSession,
    run_id: UUID,
    success_count: int,
    review_count: int,
    error_count: int,
) -> Optional[ResolutionRun]:
    """Stamp completion time and aggregate counts on a run."""
    run = await session.get(ResolutionRun, run_id)
    if run is None:
        return None
    run.completed_at = datetime.now(timezone.utc)
    run.success_count = success_count
    run.review_count = review_count
    run.error_count = error_count
    await session.flush()
    return run


async def mark_rolled_back(session: AsyncSession, run_id: UUID) -> Optional[ResolutionRun]:
    run = await session.get(ResolutionRun, run_id)
    if run is None:
        return None
    run.rolled_back_at = datetime.now(timezone.utc)
    await session.flush()
    return run
