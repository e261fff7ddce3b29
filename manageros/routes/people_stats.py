"""People statistics routes for the dashboard."""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from manageros.business.errors import AuthorizationError
from manageros.schemas.stats import PeopleStats, PersonSummary
from manageros.security.auth import CallerContext, get_caller_context
from manageros.services import people_stats
from manageros.storage.db import get_db_session


router = APIRouter()


@router.get("", response_model=PeopleStats)
async def get_people_stats(
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> PeopleStats:
    stats = await people_stats.get_people_stats(db, ctx)
    if stats is None:
        raise AuthorizationError("User must belong to an organization to view people statistics")
    return stats


@router.get("/without-recent-one-on-one", response_model=List[PersonSummary])
async def list_reports_without_recent_one_on_one(
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> List[PersonSummary]:
    return await people_stats.get_reports_without_recent_one_on_one(db, ctx)


@router.get("/without-recent-feedback-360", response_model=List[PersonSummary])
async def list_reports_without_recent_feedback_360(
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> List[PersonSummary]:
    return await people_stats.get_reports_without_recent_feedback_360(db, ctx)


@router.get("/managers-exceeding-max-reports", response_model=List[PersonSummary])
async def list_managers_exceeding_max_reports(
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> List[PersonSummary]:
    return await people_stats.get_managers_exceeding_max_reports(db, ctx)
