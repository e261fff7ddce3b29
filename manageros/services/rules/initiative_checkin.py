"""Initiative check-in rule: open initiatives reporting progress."""

import datetime as dt
from typing import List

from pydantic import PositiveInt
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from manageros.business.tolerance import (
    ACTIVE_INITIATIVE_STATUSES, EntityType, ExceptionSeverity, RuleType
)
from manageros.services.rules.base import (
    RuleConfig, RuleModule, Violation, days_since
)
from manageros.storage.models import CheckIn, Initiative, ToleranceRule


class InitiativeCheckInConfig(RuleConfig):
    warning_threshold_days: PositiveInt


async def evaluate(
    db: AsyncSession,
    rule: ToleranceRule,
    config: InitiativeCheckInConfig,
    now: dt.datetime
) -> List[Violation]:
    last_check_in = (
        select(
            CheckIn.initiative_id.label("initiative_id"),
            func.max(CheckIn.created_at).label("last_at")
        )
        .group_by(CheckIn.initiative_id)
        .subquery()
    )

    stmt = (
        select(Initiative, last_check_in.c.last_at)
        .outerjoin(last_check_in, last_check_in.c.initiative_id == Initiative.id)
        .where(
            Initiative.organization_id == rule.organization_id,
            Initiative.status.in_(sorted(ACTIVE_INITIATIVE_STATUSES)),
        )
        .order_by(Initiative.id)
    )
    result = await db.execute(stmt)

    threshold = config.warning_threshold_days
    violations: List[Violation] = []

    for initiative, last_at in result.all():
        if last_at is None:
            elapsed = None
            message = (
                f'Initiative "{initiative.title}" has no check-ins '
                f"(threshold: {threshold} days)"
            )
        else:
            elapsed = days_since(now, last_at)
            if elapsed <= threshold:
                continue
            message = (
                f'Initiative "{initiative.title}" has not had a check-in in '
                f"{elapsed} days (threshold: {threshold} days)"
            )

        violations.append(Violation(
            entity_type=EntityType.INITIATIVE,
            entity_id=str(initiative.id),
            severity=ExceptionSeverity.WARNING,
            message=message,
            context_data={
                "initiativeId": initiative.id,
                "initiativeName": initiative.title,
                "thresholdDays": threshold,
                "daysSince": elapsed,
            },
        ))

    return violations


RULE = RuleModule(
    rule_type=RuleType.INITIATIVE_CHECKIN,
    config_model=InitiativeCheckInConfig,
    evaluate=evaluate,
)
