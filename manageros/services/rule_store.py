# ==== TOLERANCE RULE STORE SERVICE ==== #

"""
Tolerance rule management for ManagerOS.

This module implements organization-scoped create, read, update, delete and
toggle operations on tolerance rules, paginated listing, and installation of
the default rule set. Reads are open to organization members; every write
requires the administrator or owner role and is authorized before anything
is changed.
"""

import math
from typing import List, Optional, Tuple

from sqlalchemy import and_, asc, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from manageros.business.errors import NotFoundError, RuleValidationError
from manageros.business.tolerance import RuleType
from manageros.observability.logging import get_logger, log_business_event
from manageros.observability.tracing import get_tracer
from manageros.schemas.tolerance_rule import (
    Pagination, ToleranceRuleCreateRequest, ToleranceRuleListResponse,
    ToleranceRuleResponse, ToleranceRuleUpdateRequest
)
from manageros.security.auth import (
    CallerContext, require_admin_or_owner, require_organization
)
from manageros.services.policy_loader import get_default_rule_templates
from manageros.services.rule_registry import validate_rule_config
from manageros.storage.models import ToleranceRule


# ==== MODULE INITIALIZATION ==== #


tracer = get_tracer(__name__)
logger = get_logger(__name__)

RULE_NOT_FOUND = "Tolerance rule not found or access denied"

# Sort keys accepted by the listing, as sent by clients
SORT_COLUMNS = {
    "name": ToleranceRule.name,
    "ruleType": ToleranceRule.rule_type,
    "isEnabled": ToleranceRule.is_enabled,
    "createdAt": ToleranceRule.created_at,
}

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


# ==== HELPERS ==== #


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise RuleValidationError(
            "Rule name is required",
            errors=[{"loc": ["name"], "msg": "Rule name is required", "type": "missing"}]
        )
    return cleaned


async def _get_scoped_rule(
    db: AsyncSession,
    organization_id: int,
    rule_id: int
) -> Optional[ToleranceRule]:
    query = select(ToleranceRule).where(
        and_(
            ToleranceRule.id == rule_id,
            ToleranceRule.organization_id == organization_id
        )
    )
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def _require_scoped_rule(
    db: AsyncSession,
    organization_id: int,
    rule_id: int
) -> ToleranceRule:
    rule = await _get_scoped_rule(db, organization_id, rule_id)
    if rule is None:
        raise NotFoundError(RULE_NOT_FOUND)
    return rule


def parse_sort(sort: Optional[str]) -> Tuple[str, str]:
    """Parse ``field:direction``, falling back to newest first."""
    field, _, direction = (sort or "").partition(":")
    if field not in SORT_COLUMNS:
        return "createdAt", "desc"
    return field, "asc" if direction.lower() == "asc" else "desc"


# ==== RULE MUTATIONS ==== #


async def create_tolerance_rule(
    db: AsyncSession,
    ctx: CallerContext,
    data: ToleranceRuleCreateRequest
) -> ToleranceRuleResponse:
    """
    Create a tolerance rule in the caller's organization.

    Args:
        db (AsyncSession): Database session
        ctx (CallerContext): Caller performing the operation
        data (ToleranceRuleCreateRequest): Rule type, name and configuration

    Returns:
        ToleranceRuleResponse: Created rule

    Raises:
        AuthorizationError: If the caller is not an administrator or owner
        RuleValidationError: If the name is empty or the config is invalid
    """
    organization_id = require_admin_or_owner(ctx, "create tolerance rules")

    with tracer.start_as_current_span("create_tolerance_rule") as span:
        span.set_attribute("organization_id", organization_id)
        span.set_attribute("rule_type", data.rule_type.value)

        name = _clean_name(data.name)
        config = validate_rule_config(data.rule_type, data.config)

        rule = ToleranceRule(
            organization_id=organization_id,
            rule_type=data.rule_type.value,
            name=name,
            description=data.description,
            is_enabled=True if data.is_enabled is None else data.is_enabled,
            config=config,
        )
        db.add(rule)
        await db.flush()
        await db.refresh(rule)

        span.set_attribute("rule_id", rule.id)
        log_business_event(
            "tolerance_rule_created",
            organization_id,
            rule_id=rule.id,
            rule_type=rule.rule_type,
            user_id=ctx.user_id
        )
        return ToleranceRuleResponse.model_validate(rule)


async def update_tolerance_rule(
    db: AsyncSession,
    ctx: CallerContext,
    rule_id: int,
    data: ToleranceRuleUpdateRequest
) -> ToleranceRuleResponse:
    """
    Update name, description, enabled flag or config of a rule.

    The rule type is fixed at creation; a new config is validated against
    the existing rule's type. Fields not present in ``data`` are untouched.

    Raises:
        AuthorizationError: If the caller is not an administrator or owner
        NotFoundError: If the rule is missing or belongs to another organization
        RuleValidationError: If the name is empty or the config is invalid
    """
    organization_id = require_admin_or_owner(ctx, "update tolerance rules")

    with tracer.start_as_current_span("update_tolerance_rule") as span:
        span.set_attribute("organization_id", organization_id)
        span.set_attribute("rule_id", rule_id)

        rule = await _require_scoped_rule(db, organization_id, rule_id)
        provided = data.model_fields_set

        # Validate everything before touching the instance
        name = _clean_name(data.name) if "name" in provided else rule.name
        config = (
            validate_rule_config(rule.rule_type, data.config)
            if "config" in provided else rule.config
        )

        rule.name = name
        rule.config = config
        if "description" in provided:
            rule.description = data.description
        if "is_enabled" in provided and data.is_enabled is not None:
            rule.is_enabled = data.is_enabled

        await db.flush()
        await db.refresh(rule)

        log_business_event(
            "tolerance_rule_updated",
            organization_id,
            rule_id=rule.id,
            fields=sorted(provided),
            user_id=ctx.user_id
        )
        return ToleranceRuleResponse.model_validate(rule)


async def delete_tolerance_rule(
    db: AsyncSession,
    ctx: CallerContext,
    rule_id: int
) -> None:
    """Delete a rule. Exceptions it raised are kept."""
    organization_id = require_admin_or_owner(ctx, "delete tolerance rules")

    with tracer.start_as_current_span("delete_tolerance_rule") as span:
        span.set_attribute("organization_id", organization_id)
        span.set_attribute("rule_id", rule_id)

        rule = await _require_scoped_rule(db, organization_id, rule_id)
        await db.delete(rule)
        await db.flush()

        log_business_event(
            "tolerance_rule_deleted",
            organization_id,
            rule_id=rule_id,
            user_id=ctx.user_id
        )


async def toggle_tolerance_rule(
    db: AsyncSession,
    ctx: CallerContext,
    rule_id: int,
    is_enabled: bool
) -> ToleranceRuleResponse:
    """Enable or disable a rule."""
    organization_id = require_admin_or_owner(ctx, "toggle tolerance rules")

    rule = await _require_scoped_rule(db, organization_id, rule_id)
    rule.is_enabled = is_enabled
    await db.flush()
    await db.refresh(rule)

    log_business_event(
        "tolerance_rule_toggled",
        organization_id,
        rule_id=rule.id,
        is_enabled=is_enabled,
        user_id=ctx.user_id
    )
    return ToleranceRuleResponse.model_validate(rule)


async def install_default_rules(
    db: AsyncSession,
    ctx: CallerContext
) -> List[ToleranceRuleResponse]:
    """
    Create the default rule of every type the organization does not have yet.

    Returns:
        List[ToleranceRuleResponse]: Rules created by this call
    """
    organization_id = require_admin_or_owner(ctx, "create tolerance rules")

    with tracer.start_as_current_span("install_default_rules") as span:
        span.set_attribute("organization_id", organization_id)

        existing_types = set((await db.execute(
            select(ToleranceRule.rule_type).where(
                ToleranceRule.organization_id == organization_id
            )
        )).scalars().all())

        created: List[ToleranceRuleResponse] = []
        for rule_type, template in get_default_rule_templates().items():
            if rule_type.value in existing_types:
                continue
            created.append(await create_tolerance_rule(db, ctx, ToleranceRuleCreateRequest(
                rule_type=rule_type,
                name=template.get("name") or rule_type.value,
                description=template.get("description"),
                is_enabled=template.get("is_enabled", True),
                config=template.get("config") or {},
            )))

        span.set_attribute("rules_created", len(created))
        logger.info(
            "Default tolerance rules installed",
            organization_id=organization_id,
            rule_types=[rule.rule_type.value for rule in created]
        )
        return created


# ==== RULE QUERIES ==== #


async def get_tolerance_rules(
    db: AsyncSession,
    ctx: CallerContext
) -> List[ToleranceRuleResponse]:
    """All rules of the caller's organization, newest first."""
    organization_id = require_organization(ctx, "view tolerance rules")

    query = select(ToleranceRule).where(
        ToleranceRule.organization_id == organization_id
    ).order_by(ToleranceRule.created_at.desc(), ToleranceRule.id.desc())

    result = await db.execute(query)
    return [ToleranceRuleResponse.model_validate(rule) for rule in result.scalars().all()]


async def get_tolerance_rule_by_id(
    db: AsyncSession,
    ctx: CallerContext,
    rule_id: int
) -> Optional[ToleranceRuleResponse]:
    """One rule of the caller's organization, or None."""
    organization_id = require_organization(ctx, "view tolerance rules")

    rule = await _get_scoped_rule(db, organization_id, rule_id)
    return ToleranceRuleResponse.model_validate(rule) if rule is not None else None


async def list_tolerance_rules(
    db: AsyncSession,
    ctx: CallerContext,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    search: Optional[str] = None,
    rule_type: Optional[RuleType] = None,
    is_enabled: Optional[bool] = None,
    sort: Optional[str] = None
) -> ToleranceRuleListResponse:
    """
    Paginated and filtered listing of the organization's rules.

    Args:
        db (AsyncSession): Database session
        ctx (CallerContext): Caller performing the operation
        page (int): 1-based page number
        limit (int): Page size, capped at MAX_PAGE_SIZE
        search (Optional[str]): Case-insensitive substring of the rule name
        rule_type (Optional[RuleType]): Only rules of this type
        is_enabled (Optional[bool]): Only enabled or only disabled rules
        sort (Optional[str]): ``field:direction`` over name, ruleType,
                              isEnabled or createdAt

    Returns:
        ToleranceRuleListResponse: Page of rules with pagination metadata
    """
    organization_id = require_organization(ctx, "view tolerance rules")
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    with tracer.start_as_current_span("list_tolerance_rules") as span:
        span.set_attribute("organization_id", organization_id)

        conditions = [ToleranceRule.organization_id == organization_id]
        if search and search.strip():
            conditions.append(
                func.lower(ToleranceRule.name).contains(search.strip().lower())
            )
        if rule_type is not None:
            conditions.append(ToleranceRule.rule_type == RuleType(rule_type).value)
        if is_enabled is not None:
            conditions.append(ToleranceRule.is_enabled.is_(is_enabled))

        count_query = select(func.count(ToleranceRule.id)).where(and_(*conditions))
        total_count = (await db.execute(count_query)).scalar() or 0

        field, direction = parse_sort(sort)
        order = asc if direction == "asc" else desc
        query = (
            select(ToleranceRule)
            .where(and_(*conditions))
            .order_by(order(SORT_COLUMNS[field]), order(ToleranceRule.id))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        rules = (await db.execute(query)).scalars().all()

        total_pages = math.ceil(total_count / limit) if total_count else 0
        span.set_attribute("total_count", total_count)

        return ToleranceRuleListResponse(
            items=[ToleranceRuleResponse.model_validate(rule) for rule in rules],
            pagination=Pagination(
                page=page,
                limit=limit,
                total_count=total_count,
                total_pages=total_pages,
                has_more=page < total_pages
            )
        )
