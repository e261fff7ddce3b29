# ==== TOLERANCE EVALUATOR SERVICE ==== #

"""
Tolerance rule evaluator for ManagerOS.

Runs every enabled rule of an organization against current people,
one-on-one, initiative and feedback state and turns violations into active
exceptions. Each rule is evaluated inside its own SAVEPOINT: a failing rule
is rolled back and reported in the result while the others still run.
"""

import datetime as dt
import time
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from manageros.observability.logging import get_logger, log_business_event
from manageros.observability.metrics import (
    tolerance_evaluation_duration_seconds,
    tolerance_rule_errors_total
)
from manageros.observability.tracing import get_tracer
from manageros.schemas.tolerance_rule import EvaluationResult
from manageros.security.auth import CallerContext, require_admin_or_owner
from manageros.services.exception_store import reconcile_violations
from manageros.services.rule_registry import get_rule_module, parse_rule_config
from manageros.services.rules.base import as_naive_utc
from manageros.storage.models import ToleranceRule


# ==== MODULE INITIALIZATION ==== #


tracer = get_tracer(__name__)
logger = get_logger(__name__)


async def get_enabled_rules(db: AsyncSession, organization_id: int) -> List[ToleranceRule]:
    """Enabled rules of an organization in creation order."""
    query = select(ToleranceRule).where(
        ToleranceRule.organization_id == organization_id,
        ToleranceRule.is_enabled.is_(True)
    ).order_by(ToleranceRule.created_at, ToleranceRule.id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def evaluate_rule(db: AsyncSession, rule: ToleranceRule, now: dt.datetime) -> int:
    """
    Evaluate one rule and persist its new violations.

    The stored configuration is validated again before the check runs, so a
    rule whose config no longer matches its schema fails like any other
    check error.

    Returns:
        int: Number of exceptions created
    """
    module = get_rule_module(rule.rule_type)
    config = parse_rule_config(rule.rule_type, rule.config)

    violations = await module.evaluate(db, rule, config, now)
    return await reconcile_violations(db, rule, violations)


async def evaluate_all_rules(
    db: AsyncSession,
    organization_id: int,
    now: Optional[dt.datetime] = None
) -> EvaluationResult:
    """
    Evaluate all enabled tolerance rules of an organization.

    Args:
        db (AsyncSession): Database session
        organization_id (int): Organization to evaluate
        now (Optional[dt.datetime]): Evaluation time, defaults to current UTC

    Returns:
        EvaluationResult: Number of exceptions created and per-rule errors
    """
    now = as_naive_utc(now or dt.datetime.utcnow())

    with tracer.start_as_current_span("evaluate_all_rules") as span:
        span.set_attribute("organization_id", organization_id)
        start_time = time.perf_counter()

        result = EvaluationResult()

        try:
            rules = await get_enabled_rules(db, organization_id)
            span.set_attribute("rules_count", len(rules))

            for rule in rules:
                # Read before evaluating, a rollback expires the instance
                rule_id, rule_name, rule_type = rule.id, rule.name, rule.rule_type

                with tracer.start_as_current_span("evaluate_rule") as rule_span:
                    rule_span.set_attribute("rule_id", rule_id)
                    rule_span.set_attribute("rule_type", rule_type)

                    try:
                        async with db.begin_nested():
                            created = await evaluate_rule(db, rule, now)
                    except Exception as e:
                        result.errors.append(
                            f"Error evaluating rule {rule_name} ({rule_id}): {e}"
                        )
                        rule_span.record_exception(e)
                        tolerance_rule_errors_total.labels(
                            organization=str(organization_id),
                            rule_type=rule_type
                        ).inc()
                        logger.warning(
                            "Tolerance rule evaluation failed",
                            organization_id=organization_id,
                            rule_id=rule_id,
                            rule_type=rule_type,
                            error=str(e)
                        )
                        continue

                    rule_span.set_attribute("exceptions_created", created)
                    result.exceptions_created += created

            span.set_attribute("exceptions_created", result.exceptions_created)
            span.set_attribute("errors_count", len(result.errors))

            log_business_event(
                "tolerance_check_completed",
                organization_id,
                rules_evaluated=len(rules),
                exceptions_created=result.exceptions_created,
                errors=len(result.errors)
            )
            return result

        finally:
            duration = time.perf_counter() - start_time
            tolerance_evaluation_duration_seconds.labels(
                organization=str(organization_id)
            ).observe(duration)


async def run_tolerance_check(
    db: AsyncSession,
    ctx: CallerContext,
    now: Optional[dt.datetime] = None
) -> EvaluationResult:
    """Evaluate the caller's organization on demand (admins and owners)."""
    organization_id = require_admin_or_owner(ctx, "run tolerance checks")
    return await evaluate_all_rules(db, organization_id, now)
