# ==== TOLERANCE RULE ROUTES MODULE ==== #

"""
Tolerance rule routes for configuring organization rules.

Provides listing, CRUD and toggle endpoints for tolerance rules, installation
of the default rule set and an on-demand evaluation trigger. Domain errors
raised by the services are mapped to HTTP responses by the application's
exception handlers.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from manageros.business.tolerance import RuleType
from manageros.schemas.tolerance_rule import (
    EvaluationResult, ToleranceRuleCreateRequest, ToleranceRuleListResponse,
    ToleranceRuleResponse, ToleranceRuleToggleRequest, ToleranceRuleUpdateRequest
)
from manageros.security.auth import CallerContext, get_caller_context
from manageros.services import evaluator, rule_store
from manageros.storage.db import get_db_session


router = APIRouter()


def _parse_enabled_filter(value: Optional[str]) -> Optional[bool]:
    if value is None or value.lower() in ("", "all"):
        return None
    if value.lower() in ("true", "1", "yes"):
        return True
    if value.lower() in ("false", "0", "no"):
        return False
    raise HTTPException(status_code=422, detail=f"Invalid isEnabled filter: {value}")


# ==== RULE LISTING AND CREATION ==== #


@router.get("", response_model=ToleranceRuleListResponse)
async def list_rules(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Page size"),
    search: Optional[str] = Query(None, description="Case-insensitive name search"),
    rule_type: Optional[RuleType] = Query(None, alias="ruleType"),
    is_enabled: Optional[str] = Query(None, alias="isEnabled", description="true, false or all"),
    sort: Optional[str] = Query(None, description="field:direction, e.g. name:asc"),
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> ToleranceRuleListResponse:
    """List the organization's tolerance rules with pagination."""
    return await rule_store.list_tolerance_rules(
        db, ctx,
        page=page,
        limit=limit,
        search=search,
        rule_type=rule_type,
        is_enabled=_parse_enabled_filter(is_enabled),
        sort=sort
    )


@router.post("", response_model=ToleranceRuleResponse, status_code=201)
async def create_rule(
    data: ToleranceRuleCreateRequest,
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> ToleranceRuleResponse:
    """Create a tolerance rule (administrators and owners)."""
    rule = await rule_store.create_tolerance_rule(db, ctx, data)
    await db.commit()
    return rule


@router.post("/defaults", response_model=List[ToleranceRuleResponse], status_code=201)
async def install_defaults(
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> List[ToleranceRuleResponse]:
    """Install default rules for every type the organization lacks."""
    rules = await rule_store.install_default_rules(db, ctx)
    await db.commit()
    return rules


@router.post("/check", response_model=EvaluationResult)
async def run_check(
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> EvaluationResult:
    """
    Evaluate all enabled rules of the caller's organization now.

    Per-rule failures are reported in ``errors``; exceptions created by the
    other rules are kept.
    """
    result = await evaluator.run_tolerance_check(db, ctx)
    await db.commit()
    return result


# ==== SINGLE RULE OPERATIONS ==== #


@router.get("/{rule_id}", response_model=ToleranceRuleResponse)
async def get_rule(
    rule_id: int,
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> ToleranceRuleResponse:
    rule = await rule_store.get_tolerance_rule_by_id(db, ctx, rule_id)
    if rule is None:
        raise HTTPException(status_code=404, detail=rule_store.RULE_NOT_FOUND)
    return rule


@router.patch("/{rule_id}", response_model=ToleranceRuleResponse)
async def update_rule(
    rule_id: int,
    data: ToleranceRuleUpdateRequest,
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> ToleranceRuleResponse:
    rule = await rule_store.update_tolerance_rule(db, ctx, rule_id, data)
    await db.commit()
    return rule


@router.post("/{rule_id}/toggle", response_model=ToleranceRuleResponse)
async def toggle_rule(
    rule_id: int,
    data: ToleranceRuleToggleRequest,
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> ToleranceRuleResponse:
    rule = await rule_store.toggle_tolerance_rule(db, ctx, rule_id, data.is_enabled)
    await db.commit()
    return rule


@router.delete("/{rule_id}", status_code=204)
async def delete_rule(
    rule_id: int,
    ctx: CallerContext = Depends(get_caller_context),
    db: AsyncSession = Depends(get_db_session)
) -> Response:
    """Delete a rule; exceptions it raised are kept."""
    await rule_store.delete_tolerance_rule(db, ctx, rule_id)
    await db.commit()
    return Response(status_code=204)
