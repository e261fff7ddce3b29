# ==== EXCEPTION ROUTES MODULE ==== #

"""
Exception routes for reviewing tolerance exceptions.

This module provides listing with filters and pagination, statistics,
detail lookup and the acknowledge, ignore and resolve transitions, all
scoped to the caller's organization.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from manageros.business.tolerance import (
    EntityType, ExceptionSeverity, ExceptionStatus, RuleType
)
from manageros.observability.tracing import get_tracer
from manageros.schemas.exception import (
    ExceptionFilters, ExceptionListResponse, ExceptionResponse, ExceptionStatsResponse
)
from manageros.security.auth import CallerContext, get_caller_context
from manageros.services import exception_store
from manageros.storage.db import get_db_session


router = APIRouter()
tracer = get_tracer(__name__)


# ==== EXCEPTION LISTING ==== #


@router.get("", response_model=ExceptionListResponse)
async def list_exceptions(
    status: Optional[ExceptionStatus] = Query(None, description="Filter by status"),
    severity: Optional[ExceptionSeverity] = Query(None, description="Filter by severity"),
    rule_id: Optional[int] = Query(None, description="Filter by rule"),
    rule_type: Optional[RuleType] = Query(None, description="Filter by rule type"),
    entity_type: Optional[EntityType] = Query(None, description="Filter by subject type"),
    entity_id: Optional[str] = Query(None, description="Filter by subject id"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Page size"),
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> ExceptionListResponse:
    """
    List exceptions with filtering and pagination.

    Args:
        status (Optional[ExceptionStatus]): Filter by exception status
        severity (Optional[ExceptionSeverity]): Filter by severity level
        rule_id (Optional[int]): Filter by rule id
        rule_type (Optional[RuleType]): Filter by type of the raising rule
        entity_type (Optional[EntityType]): Filter by subject entity type
        entity_id (Optional[str]): Filter by subject entity id
        page (int): Page number for pagination
        page_size (int): Number of items per page
        ctx (CallerContext): Authenticated caller
        db (AsyncSession): Database session dependency

    Returns:
        ExceptionListResponse: Paginated list of exceptions, newest first
    """
    with tracer.start_as_current_span("list_exceptions") as span:
        filters = ExceptionFilters(
            status=status,
            severity=severity,
            rule_id=rule_id,
            rule_type=rule_type,
            entity_type=entity_type,
            entity_id=entity_id
        )

        total = await exception_store.count_exceptions(db, ctx, filters)
        items = await exception_store.get_exceptions(
            db, ctx, filters,
            limit=page_size,
            offset=(page - 1) * page_size
        )

        span.set_attribute("total_count", total)
        span.set_attribute("page", page)

        return ExceptionListResponse(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            has_next=page * page_size < total
        )


@router.get("/stats/summary", response_model=ExceptionStatsResponse)
async def get_exception_stats(
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> ExceptionStatsResponse:
    """Exception counts by status, severity and rule type."""
    return await exception_store.get_exception_stats(db, ctx)


@router.get("/{exception_id}", response_model=ExceptionResponse)
async def get_exception(
    exception_id: int,
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> ExceptionResponse:
    exception = await exception_store.get_exception_by_id(db, ctx, exception_id)
    if exception is None:
        raise HTTPException(status_code=404, detail=exception_store.EXCEPTION_NOT_FOUND)
    return exception


# ==== STATUS TRANSITIONS ==== #


@router.post("/{exception_id}/acknowledge", response_model=ExceptionResponse)
async def acknowledge_exception(
    exception_id: int,
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> ExceptionResponse:
    exception = await exception_store.acknowledge_exception(db, ctx, exception_id)
    await db.commit()
    return exception


@router.post("/{exception_id}/ignore", response_model=ExceptionResponse)
async def ignore_exception(
    exception_id: int,
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> ExceptionResponse:
    exception = await exception_store.ignore_exception(db, ctx, exception_id)
    await db.commit()
    return exception


@router.post("/{exception_id}/resolve", response_model=ExceptionResponse)
async def resolve_exception(
    exception_id: int,
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> ExceptionResponse:
    exception = await exception_store.resolve_exception(db, ctx, exception_id)
    await db.commit()
    return exception
