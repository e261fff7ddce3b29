"""Manager span of control rule: too many active direct reports."""

import datetime as dt
from typing import List, Optional, Tuple

from pydantic import PositiveInt
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from manageros.business.tolerance import (
    EntityType, ExceptionSeverity, PersonStatus, RuleType
)
from manageros.services.rules.base import RuleConfig, RuleModule, Violation
from manageros.storage.models import Person, ToleranceRule


class ManagerSpanConfig(RuleConfig):
    max_direct_reports: PositiveInt


async def count_active_reports(
    db: AsyncSession,
    organization_id: int,
    manager_id: Optional[int] = None
) -> List[Tuple[Person, int]]:
    """Active people with their number of active direct reports.

    People without active reports are omitted.
    """
    report = aliased(Person)
    report_count = func.count(report.id)

    stmt = (
        select(Person, report_count)
        .join(report, report.manager_id == Person.id)
        .where(
            Person.organization_id == organization_id,
            Person.status == PersonStatus.ACTIVE.value,
            report.status == PersonStatus.ACTIVE.value,
        )
        .group_by(Person.id)
        .order_by(Person.id)
    )
    if manager_id is not None:
        stmt = stmt.where(Person.id == manager_id)

    result = await db.execute(stmt)
    return [(person, count) for person, count in result.all()]


async def evaluate(
    db: AsyncSession,
    rule: ToleranceRule,
    config: ManagerSpanConfig,
    now: dt.datetime
) -> List[Violation]:
    maximum = config.max_direct_reports
    violations: List[Violation] = []

    for manager, count in await count_active_reports(db, rule.organization_id):
        if count <= maximum:
            continue
        violations.append(Violation(
            entity_type=EntityType.PERSON,
            entity_id=str(manager.id),
            severity=ExceptionSeverity.WARNING,
            message=f"{manager.name} has {count} direct reports (threshold: {maximum})",
            context_data={
                "managerId": manager.id,
                "managerName": manager.name,
                "maxDirectReports": maximum,
                "currentCount": count,
            },
        ))

    return violations


RULE = RuleModule(
    rule_type=RuleType.MANAGER_SPAN,
    config_model=ManagerSpanConfig,
    evaluate=evaluate,
)
