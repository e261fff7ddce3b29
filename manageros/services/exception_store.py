# ==== EXCEPTION STORE SERVICE ==== #

"""
Exception storage and lifecycle management for ManagerOS.

This module persists exceptions raised by the tolerance evaluator while
keeping at most one active exception per rule and subject, lists and counts
them for review, applies user status transitions and resolves exceptions
automatically when the owning domain fixes the underlying problem.
"""

import datetime as dt
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from manageros.business.errors import InvalidTransitionError, NotFoundError
from manageros.business.tolerance import (
    TRANSITION_FIELDS, EntityType, ExceptionSeverity, ExceptionStatus, RuleType
)
from manageros.observability.logging import get_logger, log_business_event
from manageros.observability.metrics import (
    exception_transitions_total,
    tolerance_exceptions_created_total
)
from manageros.observability.tracing import get_tracer
from manageros.schemas.exception import (
    ExceptionCreate, ExceptionFilters, ExceptionResponse,
    ExceptionRuleSummary, ExceptionStatsResponse
)
from manageros.security.auth import CallerContext, require_organization
from manageros.services.rules.base import Violation
from manageros.services.rules.one_on_one_frequency import pair_entity_id
from manageros.services.rules.manager_span import count_active_reports
from manageros.storage.models import ToleranceException, ToleranceRule


# ==== MODULE INITIALIZATION ==== #


tracer = get_tracer(__name__)
logger = get_logger(__name__)

EXCEPTION_NOT_FOUND = "Exception not found or access denied"

# Actor recorded for transitions performed by the application itself
SYSTEM_ACTOR = "system"

# A rule only ever describes exceptions of its own organization
_RULE_JOIN = and_(
    ToleranceRule.id == ToleranceException.rule_id,
    ToleranceRule.organization_id == ToleranceException.organization_id
)


# ==== EXCEPTION CREATION ==== #


async def find_active_exception(
    db: AsyncSession,
    rule_id: int,
    entity_type: EntityType,
    entity_id: str
) -> Optional[ToleranceException]:
    """Get the active exception of a rule for a subject, if any."""
    query = select(ToleranceException).where(
        and_(
            ToleranceException.rule_id == rule_id,
            ToleranceException.entity_type == EntityType(entity_type).value,
            ToleranceException.entity_id == entity_id,
            ToleranceException.status == ExceptionStatus.ACTIVE.value
        )
    )
    result = await db.execute(query)
    return result.scalars().first()


async def get_active_entity_ids(
    db: AsyncSession,
    rule_id: int,
    entity_types: Iterable[EntityType]
) -> Set[Tuple[str, str]]:
    """Batch lookup of (entity_type, entity_id) pairs with an active exception."""
    types = sorted({EntityType(t).value for t in entity_types})
    if not types:
        return set()

    query = select(
        ToleranceException.entity_type,
        ToleranceException.entity_id
    ).where(
        and_(
            ToleranceException.rule_id == rule_id,
            ToleranceException.entity_type.in_(types),
            ToleranceException.status == ExceptionStatus.ACTIVE.value
        )
    )
    result = await db.execute(query)
    return {(entity_type, entity_id) for entity_type, entity_id in result.all()}


async def create_exception(
    db: AsyncSession,
    data: ExceptionCreate
) -> Optional[ToleranceException]:
    """
    Create an active exception unless the subject already has one.

    The insert runs inside a SAVEPOINT so that losing a race against a
    concurrent evaluation (unique index violation) leaves the surrounding
    transaction usable.

    Args:
        db (AsyncSession): Database session
        data (ExceptionCreate): Exception attributes

    Returns:
        Optional[ToleranceException]: Created exception, or None if an active
                                      one already exists for the subject
    """
    existing = await find_active_exception(
        db, data.rule_id, data.entity_type, data.entity_id
    )
    if existing is not None:
        return None

    exception = ToleranceException(
        organization_id=data.organization_id,
        rule_id=data.rule_id,
        entity_type=data.entity_type.value,
        entity_id=data.entity_id,
        severity=data.severity.value,
        message=data.message,
        status=ExceptionStatus.ACTIVE.value,
        context_data=data.context_data,
    )

    try:
        async with db.begin_nested():
            db.add(exception)
            await db.flush()
    except IntegrityError:
        logger.info(
            "Active exception created concurrently, skipping",
            rule_id=data.rule_id,
            entity_type=data.entity_type.value,
            entity_id=data.entity_id
        )
        return None

    return exception


async def reconcile_violations(
    db: AsyncSession,
    rule: ToleranceRule,
    violations: Sequence[Violation]
) -> int:
    """
    Persist new violations of a rule as active exceptions.

    Subjects that already have an active exception for the rule are left
    untouched: their message and severity are not refreshed.

    Returns:
        int: Number of exceptions created
    """
    if not violations:
        return 0

    already_active = await get_active_entity_ids(
        db, rule.id, {v.entity_type for v in violations}
    )

    created = 0
    for violation in violations:
        key = (violation.entity_type.value, violation.entity_id)
        if key in already_active:
            continue

        exception = await create_exception(db, ExceptionCreate(
            rule_id=rule.id,
            organization_id=rule.organization_id,
            severity=violation.severity,
            entity_type=violation.entity_type,
            entity_id=violation.entity_id,
            message=violation.message,
            context_data=violation.context_data,
        ))
        # Guards against the same subject appearing twice in one batch
        already_active.add(key)

        if exception is None:
            continue

        created += 1
        tolerance_exceptions_created_total.labels(
            organization=str(rule.organization_id),
            rule_type=rule.rule_type
        ).inc()

    return created


# ==== EXCEPTION QUERIES ==== #


def _to_response(
    exception: ToleranceException,
    rule: Optional[ToleranceRule]
) -> ExceptionResponse:
    response = ExceptionResponse.model_validate(exception)
    summary = ExceptionRuleSummary.model_validate(rule) if rule is not None else None
    return response.model_copy(update={"rule": summary})


def _apply_filters(query, organization_id: int, filters: Optional[ExceptionFilters]):
    query = query.where(ToleranceException.organization_id == organization_id)
    if filters is None:
        return query

    if filters.status is not None:
        query = query.where(ToleranceException.status == filters.status.value)
    if filters.severity is not None:
        query = query.where(ToleranceException.severity == filters.severity.value)
    if filters.rule_id is not None:
        query = query.where(ToleranceException.rule_id == filters.rule_id)
    if filters.rule_type is not None:
        query = query.where(ToleranceRule.rule_type == filters.rule_type.value)
    if filters.entity_type is not None:
        query = query.where(ToleranceException.entity_type == filters.entity_type.value)
    if filters.entity_id is not None:
        query = query.where(ToleranceException.entity_id == filters.entity_id)
    return query


async def get_exceptions(
    db: AsyncSession,
    ctx: CallerContext,
    filters: Optional[ExceptionFilters] = None,
    limit: Optional[int] = None,
    offset: int = 0
) -> List[ExceptionResponse]:
    """
    List exceptions of the caller's organization, newest first.

    Each item carries a summary of the rule that raised it, or None when
    that rule has been deleted.

    Args:
        db (AsyncSession): Database session
        ctx (CallerContext): Caller performing the operation
        filters (Optional[ExceptionFilters]): Optional listing filters
        limit (Optional[int]): Maximum number of items
        offset (int): Number of items to skip

    Returns:
        List[ExceptionResponse]: Matching exceptions

    Raises:
        AuthorizationError: If the caller has no organization
    """
    organization_id = require_organization(ctx, "view exceptions")

    with tracer.start_as_current_span("get_exceptions") as span:
        span.set_attribute("organization_id", organization_id)

        query = select(ToleranceException, ToleranceRule).outerjoin(
            ToleranceRule, _RULE_JOIN
        )
        query = _apply_filters(query, organization_id, filters)
        query = query.order_by(
            ToleranceException.created_at.desc(),
            ToleranceException.id.desc()
        ).offset(offset)
        if limit is not None:
            query = query.limit(limit)

        result = await db.execute(query)
        items = [_to_response(exception, rule) for exception, rule in result.all()]

        span.set_attribute("result_count", len(items))
        return items


async def count_exceptions(
    db: AsyncSession,
    ctx: CallerContext,
    filters: Optional[ExceptionFilters] = None
) -> int:
    """Count exceptions of the caller's organization matching the filters."""
    organization_id = require_organization(ctx, "view exceptions")

    query = select(func.count(ToleranceException.id)).select_from(
        ToleranceException
    ).outerjoin(
        ToleranceRule, _RULE_JOIN
    )
    query = _apply_filters(query, organization_id, filters)

    result = await db.execute(query)
    return result.scalar() or 0


async def _get_scoped_exception(
    db: AsyncSession,
    organization_id: int,
    exception_id: int
) -> Tuple[Optional[ToleranceException], Optional[ToleranceRule]]:
    query = select(ToleranceException, ToleranceRule).outerjoin(
        ToleranceRule, _RULE_JOIN
    ).where(
        and_(
            ToleranceException.id == exception_id,
            ToleranceException.organization_id == organization_id
        )
    )
    row = (await db.execute(query)).first()
    if row is None:
        return None, None
    return row[0], row[1]


async def get_exception_by_id(
    db: AsyncSession,
    ctx: CallerContext,
    exception_id: int
) -> Optional[ExceptionResponse]:
    """Get one exception of the caller's organization, or None."""
    organization_id = require_organization(ctx, "view exceptions")

    exception, rule = await _get_scoped_exception(db, organization_id, exception_id)
    if exception is None:
        return None
    return _to_response(exception, rule)


# ==== STATUS TRANSITIONS ==== #


def _mark(
    exception: ToleranceException,
    status: ExceptionStatus,
    actor: str,
    now: dt.datetime
) -> None:
    at_field, by_field = TRANSITION_FIELDS[status]
    exception.status = status.value
    setattr(exception, at_field, now)
    setattr(exception, by_field, actor)


async def _transition(
    db: AsyncSession,
    ctx: CallerContext,
    exception_id: int,
    target: ExceptionStatus,
    verb: str
) -> ExceptionResponse:
    organization_id = require_organization(ctx, f"{verb} exceptions")

    with tracer.start_as_current_span(f"{verb}_exception") as span:
        span.set_attribute("organization_id", organization_id)
        span.set_attribute("exception_id", exception_id)

        exception, rule = await _get_scoped_exception(db, organization_id, exception_id)
        if exception is None:
            raise NotFoundError(EXCEPTION_NOT_FOUND)

        if exception.status == target.value:
            # Repeating the same transition changes nothing
            return _to_response(exception, rule)

        if exception.status != ExceptionStatus.ACTIVE.value:
            raise InvalidTransitionError(
                f"Cannot {verb} an exception that is already {exception.status}"
            )

        _mark(exception, target, ctx.user_id, dt.datetime.utcnow())
        await db.flush()
        await db.refresh(exception)

        exception_transitions_total.labels(status=target.value, source="user").inc()
        log_business_event(
            f"exception_{target.value}",
            organization_id,
            exception_id=exception.id,
            rule_id=exception.rule_id,
            user_id=ctx.user_id
        )

        return _to_response(exception, rule)


async def acknowledge_exception(
    db: AsyncSession, ctx: CallerContext, exception_id: int
) -> ExceptionResponse:
    """Mark an active exception as seen and being handled."""
    return await _transition(
        db, ctx, exception_id, ExceptionStatus.ACKNOWLEDGED, "acknowledge"
    )


async def ignore_exception(
    db: AsyncSession, ctx: CallerContext, exception_id: int
) -> ExceptionResponse:
    """Dismiss an active exception without acting on it."""
    return await _transition(
        db, ctx, exception_id, ExceptionStatus.IGNORED, "ignore"
    )


async def resolve_exception(
    db: AsyncSession, ctx: CallerContext, exception_id: int
) -> ExceptionResponse:
    """Close an active exception as fixed."""
    return await _transition(
        db, ctx, exception_id, ExceptionStatus.RESOLVED, "resolve"
    )


# ==== AUTOMATIC RESOLUTION ==== #


async def _resolve_active(db: AsyncSession, organization_id: int, *conditions) -> int:
    query = select(ToleranceException).where(
        ToleranceException.organization_id == organization_id,
        ToleranceException.status == ExceptionStatus.ACTIVE.value,
        *conditions
    )
    exceptions = (await db.execute(query)).scalars().all()
    if not exceptions:
        return 0

    now = dt.datetime.utcnow()
    for exception in exceptions:
        _mark(exception, ExceptionStatus.RESOLVED, SYSTEM_ACTOR, now)
    await db.flush()

    exception_transitions_total.labels(
        status=ExceptionStatus.RESOLVED.value, source="system"
    ).inc(len(exceptions))
    logger.info(
        "Exceptions resolved automatically",
        organization_id=organization_id,
        exception_ids=[e.id for e in exceptions]
    )
    return len(exceptions)


async def resolve_one_on_one_exceptions(
    db: AsyncSession,
    organization_id: int,
    manager_id: int,
    report_id: int
) -> int:
    """Resolve 1:1 exceptions of a pair after a one-on-one was recorded.

    The pair key is matched in both directions.
    """
    return await _resolve_active(
        db,
        organization_id,
        ToleranceException.entity_type == EntityType.ONE_ON_ONE.value,
        ToleranceException.entity_id.in_([
            pair_entity_id(manager_id, report_id),
            pair_entity_id(report_id, manager_id),
        ])
    )


async def resolve_initiative_exceptions(
    db: AsyncSession,
    organization_id: int,
    initiative_id: int
) -> int:
    """Resolve check-in exceptions of an initiative after a check-in."""
    return await _resolve_active(
        db,
        organization_id,
        ToleranceException.entity_type == EntityType.INITIATIVE.value,
        ToleranceException.entity_id == str(initiative_id)
    )


async def resolve_feedback_360_exceptions(
    db: AsyncSession,
    organization_id: int,
    person_id: int
) -> int:
    """Resolve 360 feedback exceptions of a person after a campaign started."""
    feedback_rule_ids = select(ToleranceRule.id).where(
        ToleranceRule.organization_id == organization_id,
        ToleranceRule.rule_type == RuleType.FEEDBACK_360.value
    )
    return await _resolve_active(
        db,
        organization_id,
        ToleranceException.entity_type == EntityType.PERSON.value,
        ToleranceException.entity_id == str(person_id),
        ToleranceException.rule_id.in_(feedback_rule_ids)
    )


async def resolve_manager_span_exceptions(
    db: AsyncSession,
    organization_id: int,
    manager_id: int
) -> int:
    """
    Resolve span of control exceptions of a manager whose team shrank.

    Only exceptions of enabled manager_span rules whose maximum the manager
    now respects are resolved.
    """
    counts = await count_active_reports(db, organization_id, manager_id)
    current_count = counts[0][1] if counts else 0

    rules = (await db.execute(
        select(ToleranceRule).where(
            ToleranceRule.organization_id == organization_id,
            ToleranceRule.rule_type == RuleType.MANAGER_SPAN.value,
            ToleranceRule.is_enabled.is_(True)
        )
    )).scalars().all()

    satisfied_rule_ids = [
        rule.id for rule in rules
        if isinstance((rule.config or {}).get("maxDirectReports"), int)
        and current_count <= rule.config["maxDirectReports"]
    ]
    if not satisfied_rule_ids:
        return 0

    return await _resolve_active(
        db,
        organization_id,
        ToleranceException.entity_type == EntityType.PERSON.value,
        ToleranceException.entity_id == str(manager_id),
        ToleranceException.rule_id.in_(satisfied_rule_ids)
    )


# ==== STATISTICS ==== #


async def get_exception_stats(
    db: AsyncSession,
    ctx: CallerContext
) -> ExceptionStatsResponse:
    """
    Get exception counts of the caller's organization.

    Returns:
        ExceptionStatsResponse: Totals by status, severity and rule type
    """
    organization_id = require_organization(ctx, "view exceptions")

    with tracer.start_as_current_span("get_exception_stats") as span:
        span.set_attribute("organization_id", organization_id)

        by_status = {status.value: 0 for status in ExceptionStatus}
        status_rows = await db.execute(
            select(ToleranceException.status, func.count(ToleranceException.id))
            .where(ToleranceException.organization_id == organization_id)
            .group_by(ToleranceException.status)
        )
        for status, count in status_rows.all():
            by_status[status] = count

        by_severity = {severity.value: 0 for severity in ExceptionSeverity}
        severity_rows = await db.execute(
            select(ToleranceException.severity, func.count(ToleranceException.id))
            .where(ToleranceException.organization_id == organization_id)
            .group_by(ToleranceException.severity)
        )
        for severity, count in severity_rows.all():
            by_severity[severity] = count

        by_rule_type = {}
        rule_type_rows = await db.execute(
            select(ToleranceRule.rule_type, func.count(ToleranceException.id))
            .select_from(ToleranceException)
            .join(ToleranceRule, _RULE_JOIN)
            .where(ToleranceException.organization_id == organization_id)
            .group_by(ToleranceRule.rule_type)
        )
        for rule_type, count in rule_type_rows.all():
            by_rule_type[rule_type] = count

        return ExceptionStatsResponse(
            total_exceptions=sum(by_status.values()),
            active_exceptions=by_status[ExceptionStatus.ACTIVE.value],
            by_status=by_status,
            by_severity=by_severity,
            by_rule_type=by_rule_type
        )
