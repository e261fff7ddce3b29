# ==== RULE CHECK BUILDING BLOCKS ==== #

"""
Shared types for tolerance rule check modules.

Every rule type contributes a configuration model and an ``evaluate``
coroutine. The coroutine only reads entity state and returns the violations
it found; persisting them as exceptions is the evaluator's job.
"""

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Type

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from manageros.business.tolerance import (
    DAYS_PER_MONTH, EntityType, ExceptionSeverity, RuleType
)
from manageros.storage.models import ToleranceRule


class RuleConfig(BaseModel):
    """Base for rule configuration models.

    Keys are camelCase on the wire and in storage, values are strict
    (no string or float coercion) and unknown keys are dropped.
    """

    model_config = ConfigDict(
        strict=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


@dataclass(frozen=True)
class Violation:
    """A subject that breaches a rule threshold."""

    entity_type: EntityType
    entity_id: str
    severity: ExceptionSeverity
    message: str
    context_data: Dict[str, Any] = field(default_factory=dict)


RuleEvaluate = Callable[
    [AsyncSession, ToleranceRule, Any, dt.datetime],
    Awaitable[List[Violation]]
]


@dataclass(frozen=True)
class RuleModule:
    """Configuration model and check coroutine for one rule type."""

    rule_type: RuleType
    config_model: Type[RuleConfig]
    evaluate: RuleEvaluate


# ==== TIME HELPERS ==== #

def days_since(now: dt.datetime, then: dt.datetime) -> int:
    """Whole days elapsed between ``then`` and ``now``, floored."""
    return (now - then).days


def months_since(now: dt.datetime, then: dt.datetime) -> int:
    """Whole 30-day months elapsed between ``then`` and ``now``, floored."""
    return days_since(now, then) // DAYS_PER_MONTH


def as_naive_utc(moment: dt.datetime) -> dt.datetime:
    """Normalize to the naive UTC datetimes stored in the database."""
    if moment.tzinfo is not None:
        return moment.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return moment
