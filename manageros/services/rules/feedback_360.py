"""360 feedback rule: active people receiving periodic feedback campaigns."""

import datetime as dt
from typing import List

from pydantic import PositiveInt
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from manageros.business.tolerance import (
    EntityType, ExceptionSeverity, PersonStatus, RuleType
)
from manageros.services.rules.base import (
    RuleConfig, RuleModule, Violation, months_since
)
from manageros.storage.models import FeedbackCampaign, Person, ToleranceRule


class Feedback360Config(RuleConfig):
    warning_threshold_months: PositiveInt


def last_campaign_subquery():
    """Latest campaign creation time per target person."""
    return (
        select(
            FeedbackCampaign.target_person_id.label("person_id"),
            func.max(FeedbackCampaign.created_at).label("last_at")
        )
        .group_by(FeedbackCampaign.target_person_id)
        .subquery()
    )


async def evaluate(
    db: AsyncSession,
    rule: ToleranceRule,
    config: Feedback360Config,
    now: dt.datetime
) -> List[Violation]:
    last_campaign = last_campaign_subquery()

    stmt = (
        select(Person, last_campaign.c.last_at)
        .outerjoin(last_campaign, last_campaign.c.person_id == Person.id)
        .where(
            Person.organization_id == rule.organization_id,
            Person.status == PersonStatus.ACTIVE.value,
        )
        .order_by(Person.id)
    )
    result = await db.execute(stmt)

    threshold = config.warning_threshold_months
    violations: List[Violation] = []

    for person, last_at in result.all():
        if last_at is None:
            elapsed = None
            message = (
                f"{person.name} has not had a 360 feedback campaign "
                f"(threshold: {threshold} months)"
            )
        else:
            elapsed = months_since(now, last_at)
            if elapsed <= threshold:
                continue
            message = (
                f"{person.name} has not had a 360 feedback campaign in "
                f"{elapsed} months (threshold: {threshold} months)"
            )

        violations.append(Violation(
            entity_type=EntityType.PERSON,
            entity_id=str(person.id),
            severity=ExceptionSeverity.WARNING,
            message=message,
            context_data={
                "personId": person.id,
                "personName": person.name,
                "thresholdMonths": threshold,
                "monthsSince": elapsed,
            },
        ))

    return violations


RULE = RuleModule(
    rule_type=RuleType.FEEDBACK_360,
    config_model=Feedback360Config,
    evaluate=evaluate,
)
