"""Max reports rule: people carrying more direct reports than allowed."""

import datetime as dt
from typing import List

from pydantic import PositiveInt
from sqlalchemy.ext.asyncio import AsyncSession

from manageros.business.tolerance import EntityType, ExceptionSeverity, RuleType
from manageros.services.rules.base import RuleConfig, RuleModule, Violation
from manageros.services.rules.manager_span import count_active_reports
from manageros.storage.models import ToleranceRule


class MaxReportsConfig(RuleConfig):
    max_reports: PositiveInt


async def evaluate(
    db: AsyncSession,
    rule: ToleranceRule,
    config: MaxReportsConfig,
    now: dt.datetime
) -> List[Violation]:
    maximum = config.max_reports

    return [
        Violation(
            entity_type=EntityType.PERSON,
            entity_id=str(person.id),
            severity=ExceptionSeverity.WARNING,
            message=f"{person.name} has {count} direct reports (threshold: {maximum})",
            context_data={
                "personId": person.id,
                "personName": person.name,
                "maxReports": maximum,
                "currentCount": count,
            },
        )
        for person, count in await count_active_reports(db, rule.organization_id)
        if count > maximum
    ]


RULE = RuleModule(
    rule_type=RuleType.MAX_REPORTS,
    config_model=MaxReportsConfig,
    evaluate=evaluate,
)
