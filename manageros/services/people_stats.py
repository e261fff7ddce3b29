# ==== PEOPLE STATISTICS SERVICE ==== #

"""
People statistics for the ManagerOS dashboard.

Aggregates headcount breakdowns for the caller's organization and counts
the caller's direct reports lacking a recent one-on-one or 360 feedback,
using the thresholds of the organization's enabled tolerance rules.
"""

import datetime as dt
from typing import Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from manageros.business.tolerance import DAYS_PER_MONTH, PersonStatus, RuleType
from manageros.observability.tracing import get_tracer
from manageros.schemas.stats import (
    JobRoleCount, PeopleStats, PersonSummary, StatusCount, TeamCount
)
from manageros.security.auth import CallerContext, require_organization
from manageros.services.policy_loader import get_default_threshold
from manageros.services.rules.base import as_naive_utc
from manageros.services.rules.feedback_360 import last_campaign_subquery
from manageros.services.rules.manager_span import count_active_reports
from manageros.storage.models import (
    JobRole, OneOnOne, Person, Team, ToleranceRule
)


tracer = get_tracer(__name__)


# ==== THRESHOLDS ==== #


async def _enabled_rule_config(
    db: AsyncSession,
    organization_id: int,
    rule_type: RuleType
) -> Optional[Dict]:
    query = select(ToleranceRule.config).where(
        ToleranceRule.organization_id == organization_id,
        ToleranceRule.rule_type == rule_type.value,
        ToleranceRule.is_enabled.is_(True)
    ).order_by(ToleranceRule.created_at, ToleranceRule.id).limit(1)
    return (await db.execute(query)).scalar_one_or_none()


def _positive(value) -> Optional[int]:
    return value if isinstance(value, int) and not isinstance(value, bool) and value > 0 else None


async def one_on_one_threshold_days(db: AsyncSession, organization_id: int) -> int:
    """Warning threshold of the enabled 1:1 rule, else its urgent one, else the default."""
    default = get_default_threshold(RuleType.ONE_ON_ONE_FREQUENCY, "warningThresholdDays", 14)
    config = await _enabled_rule_config(db, organization_id, RuleType.ONE_ON_ONE_FREQUENCY)
    if not config:
        return default
    return (
        _positive(config.get("warningThresholdDays"))
        or _positive(config.get("urgentThresholdDays"))
        or default
    )


async def feedback_360_threshold_months(db: AsyncSession, organization_id: int) -> int:
    default = get_default_threshold(RuleType.FEEDBACK_360, "warningThresholdMonths", 6)
    config = await _enabled_rule_config(db, organization_id, RuleType.FEEDBACK_360)
    if not config:
        return default
    return _positive(config.get("warningThresholdMonths")) or default


async def max_direct_reports(db: AsyncSession, organization_id: int) -> Optional[int]:
    """Maximum of the enabled manager_span rule, None without one."""
    config = await _enabled_rule_config(db, organization_id, RuleType.MANAGER_SPAN)
    if not config:
        return None
    return _positive(config.get("maxDirectReports"))


# ==== DIRECT REPORT QUERIES ==== #


async def _active_direct_report_ids(
    db: AsyncSession,
    organization_id: int,
    manager_id: int
) -> List[int]:
    query = select(Person.id).where(
        Person.organization_id == organization_id,
        Person.manager_id == manager_id,
        Person.status == PersonStatus.ACTIVE.value
    ).order_by(Person.id)
    return list((await db.execute(query)).scalars().all())


async def _reports_without_recent_one_on_one(
    db: AsyncSession,
    organization_id: int,
    manager_id: int,
    cutoff: dt.datetime
) -> List[int]:
    report_ids = await _active_direct_report_ids(db, organization_id, manager_id)
    if not report_ids:
        return []

    query = select(
        OneOnOne.manager_id, OneOnOne.report_id, OneOnOne.scheduled_at
    ).where(
        OneOnOne.scheduled_at.is_not(None),
        or_(
            (OneOnOne.manager_id == manager_id) & OneOnOne.report_id.in_(report_ids),
            OneOnOne.manager_id.in_(report_ids) & (OneOnOne.report_id == manager_id),
        )
    )

    last_by_report: Dict[int, dt.datetime] = {}
    for meeting_manager, meeting_report, scheduled_at in (await db.execute(query)).all():
        report_id = meeting_report if meeting_manager == manager_id else meeting_manager
        if report_id not in last_by_report or scheduled_at > last_by_report[report_id]:
            last_by_report[report_id] = scheduled_at

    return [
        report_id for report_id in report_ids
        if report_id not in last_by_report or last_by_report[report_id] < cutoff
    ]


async def _reports_without_recent_feedback_360(
    db: AsyncSession,
    organization_id: int,
    manager_id: int,
    cutoff: dt.datetime
) -> List[int]:
    report_ids = await _active_direct_report_ids(db, organization_id, manager_id)
    if not report_ids:
        return []

    last_campaign = last_campaign_subquery()
    query = select(last_campaign.c.person_id, last_campaign.c.last_at).where(
        last_campaign.c.person_id.in_(report_ids)
    )
    last_by_report = {person_id: last_at for person_id, last_at in (await db.execute(query)).all()}

    return [
        report_id for report_id in report_ids
        if last_by_report.get(report_id) is None or last_by_report[report_id] < cutoff
    ]


async def _managers_exceeding(
    db: AsyncSession,
    organization_id: int,
    maximum: int
) -> Dict[int, int]:
    return {
        person.id: count
        for person, count in await count_active_reports(db, organization_id)
        if count > maximum
    }


def _cutoffs(now: Optional[dt.datetime], days: int, months: int):
    now = as_naive_utc(now or dt.datetime.utcnow())
    return (
        now - dt.timedelta(days=days),
        now - dt.timedelta(days=months * DAYS_PER_MONTH),
    )


# ==== DASHBOARD ROLLUP ==== #


async def get_people_stats(
    db: AsyncSession,
    ctx: CallerContext,
    now: Optional[dt.datetime] = None
) -> Optional[PeopleStats]:
    """
    Get people statistics of the caller's organization.

    Direct report counts refer to the caller's linked person and are zero
    when the caller has none.

    Args:
        db (AsyncSession): Database session
        ctx (CallerContext): Caller performing the operation
        now (Optional[dt.datetime]): Reference time, defaults to current UTC

    Returns:
        Optional[PeopleStats]: Statistics, or None without an organization
    """
    organization_id = ctx.organization_id
    if organization_id is None:
        return None

    with tracer.start_as_current_span("get_people_stats") as span:
        span.set_attribute("organization_id", organization_id)

        threshold_days = await one_on_one_threshold_days(db, organization_id)
        threshold_months = await feedback_360_threshold_months(db, organization_id)
        one_on_one_cutoff, feedback_cutoff = _cutoffs(now, threshold_days, threshold_months)

        total_people = (await db.execute(
            select(func.count(Person.id)).where(Person.organization_id == organization_id)
        )).scalar() or 0

        direct_reports = 0
        without_one_on_one: List[int] = []
        without_feedback: List[int] = []
        if ctx.person_id is not None:
            direct_reports = (await db.execute(
                select(func.count(Person.id)).where(
                    Person.organization_id == organization_id,
                    Person.manager_id == ctx.person_id
                )
            )).scalar() or 0
            without_one_on_one = await _reports_without_recent_one_on_one(
                db, organization_id, ctx.person_id, one_on_one_cutoff
            )
            without_feedback = await _reports_without_recent_feedback_360(
                db, organization_id, ctx.person_id, feedback_cutoff
            )

        maximum = await max_direct_reports(db, organization_id)
        exceeding = (
            await _managers_exceeding(db, organization_id, maximum)
            if maximum is not None else {}
        )

        # --► BREAKDOWNS
        status_rows = await db.execute(
            select(Person.status, func.count(Person.id))
            .where(Person.organization_id == organization_id)
            .group_by(Person.status)
            .order_by(Person.status)
        )
        team_rows = await db.execute(
            select(Team.name, func.count(Person.id))
            .select_from(Person)
            .outerjoin(Team, Team.id == Person.team_id)
            .where(Person.organization_id == organization_id)
            .group_by(Person.team_id, Team.name)
            .order_by(Team.name)
        )
        job_role_rows = await db.execute(
            select(JobRole.title, func.count(Person.id))
            .select_from(Person)
            .outerjoin(JobRole, JobRole.id == Person.job_role_id)
            .where(Person.organization_id == organization_id)
            .group_by(Person.job_role_id, JobRole.title)
            .order_by(JobRole.title)
        )

        return PeopleStats(
            total_people=total_people,
            direct_reports=direct_reports,
            reports_without_recent_one_on_one=len(without_one_on_one),
            reports_without_recent_feedback_360=len(without_feedback),
            managers_exceeding_max_reports=len(exceeding),
            has_max_reports_rule=maximum is not None,
            status_breakdown=[
                StatusCount(status=status, count=count) for status, count in status_rows.all()
            ],
            team_breakdown=[
                TeamCount(team_name=name, count=count) for name, count in team_rows.all()
            ],
            job_role_breakdown=[
                JobRoleCount(job_role_title=title, count=count)
                for title, count in job_role_rows.all()
            ],
        )


# ==== DRILL-DOWN LISTS ==== #


async def _summaries(
    db: AsyncSession,
    organization_id: int,
    person_ids: List[int],
    report_counts: Optional[Dict[int, int]] = None
) -> List[PersonSummary]:
    if not person_ids:
        return []

    team = aliased(Team)
    job_role = aliased(JobRole)
    query = (
        select(Person, team.name, job_role.title)
        .outerjoin(team, team.id == Person.team_id)
        .outerjoin(job_role, job_role.id == Person.job_role_id)
        .where(Person.organization_id == organization_id, Person.id.in_(person_ids))
        .order_by(Person.name, Person.id)
    )
    rows = (await db.execute(query)).all()

    return [
        PersonSummary(
            id=person.id,
            name=person.name,
            email=person.email,
            status=person.status,
            team_name=team_name,
            job_role_title=job_role_title,
            direct_report_count=(report_counts or {}).get(person.id),
        )
        for person, team_name, job_role_title in rows
    ]


async def get_reports_without_recent_one_on_one(
    db: AsyncSession,
    ctx: CallerContext,
    now: Optional[dt.datetime] = None
) -> List[PersonSummary]:
    """Caller's active direct reports lacking a recent one-on-one."""
    organization_id = require_organization(ctx, "view people statistics")
    if ctx.person_id is None:
        return []

    threshold_days = await one_on_one_threshold_days(db, organization_id)
    cutoff, _ = _cutoffs(now, threshold_days, 0)
    report_ids = await _reports_without_recent_one_on_one(
        db, organization_id, ctx.person_id, cutoff
    )
    return await _summaries(db, organization_id, report_ids)


async def get_reports_without_recent_feedback_360(
    db: AsyncSession,
    ctx: CallerContext,
    now: Optional[dt.datetime] = None
) -> List[PersonSummary]:
    """Caller's active direct reports lacking a recent 360 feedback campaign."""
    organization_id = require_organization(ctx, "view people statistics")
    if ctx.person_id is None:
        return []

    threshold_months = await feedback_360_threshold_months(db, organization_id)
    _, cutoff = _cutoffs(now, 0, threshold_months)
    report_ids = await _reports_without_recent_feedback_360(
        db, organization_id, ctx.person_id, cutoff
    )
    return await _summaries(db, organization_id, report_ids)


async def get_managers_exceeding_max_reports(
    db: AsyncSession,
    ctx: CallerContext
) -> List[PersonSummary]:
    """Active managers above the enabled manager_span maximum."""
    organization_id = require_organization(ctx, "view people statistics")

    maximum = await max_direct_reports(db, organization_id)
    if maximum is None:
        return []

    exceeding = await _managers_exceeding(db, organization_id, maximum)
    return await _summaries(db, organization_id, list(exceeding), exceeding)
