"""One-on-one frequency rule: managers meeting their direct reports."""

import datetime as dt
from typing import Dict, List, Optional, Tuple

from pydantic import PositiveInt
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from manageros.business.tolerance import (
    FULL_TIME_EMPLOYEE_TYPE, EntityType, ExceptionSeverity,
    PersonStatus, RuleType
)
from manageros.services.rules.base import (
    RuleConfig, RuleModule, Violation, days_since
)
from manageros.storage.models import OneOnOne, Person, ToleranceRule


class OneOnOneFrequencyConfig(RuleConfig):
    warning_threshold_days: PositiveInt
    urgent_threshold_days: PositiveInt
    only_full_time_employees: Optional[bool] = None


def pair_entity_id(manager_id: int, report_id: int) -> str:
    """Exception subject key of a manager/report pair."""
    return f"{manager_id}-{report_id}"


async def load_manager_report_pairs(
    db: AsyncSession,
    organization_id: int,
    only_full_time: bool = False
) -> List[Tuple[Person, Person]]:
    """Active managers paired with each of their active direct reports."""
    manager = aliased(Person)
    report = aliased(Person)

    stmt = (
        select(manager, report)
        .join(report, report.manager_id == manager.id)
        .where(
            manager.organization_id == organization_id,
            manager.status == PersonStatus.ACTIVE.value,
            report.organization_id == organization_id,
            report.status == PersonStatus.ACTIVE.value,
        )
        .order_by(manager.id, report.id)
    )
    if only_full_time:
        stmt = stmt.where(report.employee_type == FULL_TIME_EMPLOYEE_TYPE)

    result = await db.execute(stmt)
    return [(row[0], row[1]) for row in result.all()]


async def load_last_one_on_ones(
    db: AsyncSession,
    person_ids: List[int]
) -> Dict[Tuple[int, int], dt.datetime]:
    """Latest scheduled 1:1 per stored (manager_id, report_id) direction."""
    if not person_ids:
        return {}

    stmt = (
        select(
            OneOnOne.manager_id,
            OneOnOne.report_id,
            func.max(OneOnOne.scheduled_at)
        )
        .where(
            OneOnOne.scheduled_at.is_not(None),
            OneOnOne.manager_id.in_(person_ids),
            OneOnOne.report_id.in_(person_ids),
        )
        .group_by(OneOnOne.manager_id, OneOnOne.report_id)
    )
    result = await db.execute(stmt)
    return {(m, r): last for m, r, last in result.all() if last is not None}


def latest_between(
    last_by_direction: Dict[Tuple[int, int], dt.datetime],
    manager_id: int,
    report_id: int
) -> Optional[dt.datetime]:
    """Most recent 1:1 for a pair, whichever way round it was recorded."""
    candidates = [
        last for last in (
            last_by_direction.get((manager_id, report_id)),
            last_by_direction.get((report_id, manager_id)),
        ) if last is not None
    ]
    return max(candidates) if candidates else None


async def evaluate(
    db: AsyncSession,
    rule: ToleranceRule,
    config: OneOnOneFrequencyConfig,
    now: dt.datetime
) -> List[Violation]:
    pairs = await load_manager_report_pairs(
        db, rule.organization_id, bool(config.only_full_time_employees)
    )
    if not pairs:
        return []

    person_ids = sorted({p.id for pair in pairs for p in pair})
    last_by_direction = await load_last_one_on_ones(db, person_ids)

    violations: List[Violation] = []
    for manager, report in pairs:
        last = latest_between(last_by_direction, manager.id, report.id)

        if last is None:
            # Never met counts as past the urgent threshold
            severity = ExceptionSeverity.URGENT
            threshold = config.urgent_threshold_days
            elapsed = None
            message = (
                f"{manager.name} has never had a one on one with {report.name} "
                f"(threshold: {threshold} days)"
            )
        else:
            elapsed = days_since(now, last)
            if elapsed > config.urgent_threshold_days:
                severity = ExceptionSeverity.URGENT
                threshold = config.urgent_threshold_days
            elif elapsed > config.warning_threshold_days:
                severity = ExceptionSeverity.WARNING
                threshold = config.warning_threshold_days
            else:
                continue
            message = (
                f"{manager.name} has not had a 1:1 with {report.name} in "
                f"{elapsed} days (threshold: {threshold} days)"
            )

        violations.append(Violation(
            entity_type=EntityType.ONE_ON_ONE,
            entity_id=pair_entity_id(manager.id, report.id),
            severity=severity,
            message=message,
            context_data={
                "managerId": manager.id,
                "reportId": report.id,
                "managerName": manager.name,
                "reportName": report.name,
                "thresholdDays": threshold,
                "daysSince": elapsed,
            },
        ))

    return violations


RULE = RuleModule(
    rule_type=RuleType.ONE_ON_ONE_FREQUENCY,
    config_model=OneOnOneFrequencyConfig,
    evaluate=evaluate,
)
