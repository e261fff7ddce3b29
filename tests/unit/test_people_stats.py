"""Unit tests for people statistics."""

from dataclasses import replace
from datetime import timedelta

import pytest

from manageros.business.errors import AuthorizationError
from manageros.business.tolerance import RuleType
from manageros.services.people_stats import (
    get_managers_exceeding_max_reports,
    get_people_stats,
    get_reports_without_recent_feedback_360,
    get_reports_without_recent_one_on_one,
    one_on_one_threshold_days,
)
from tests.factories.data_factories import MANAGER_SPAN_CONFIG


@pytest.mark.unit
class TestPeopleStats:
    """Test cases for the dashboard rollup."""

    @pytest.mark.asyncio
    async def test_caller_without_organization_gets_nothing(self, db_session, orphan_ctx):
        assert await get_people_stats(db_session, orphan_ctx) is None

    @pytest.mark.asyncio
    async def test_counts_for_a_manager(self, db_session, org, user_ctx, now):
        platform = await org.team("Platform")
        engineer = await org.job_role("Engineer")
        manager = await org.person("Dana Lee", team=platform)
        met_recently = await org.person("Sam Park", manager=manager, team=platform, job_role=engineer)
        never_met = await org.person("Kim Roe", manager=manager, job_role=engineer)
        await org.person("Old Hand", manager=manager, status="inactive")
        await org.one_on_one(met_recently, manager, now - timedelta(days=3))
        await org.feedback_campaign(met_recently, now - timedelta(days=200))
        await org.feedback_campaign(never_met, now - timedelta(days=20))
        ctx = replace(user_ctx, person_id=manager.id)

        stats = await get_people_stats(db_session, ctx, now)

        assert stats.total_people == 4
        assert stats.direct_reports == 3
        assert stats.reports_without_recent_one_on_one == 1
        assert stats.reports_without_recent_feedback_360 == 1
        assert stats.has_max_reports_rule is False
        assert stats.managers_exceeding_max_reports == 0
        assert {(s.status, s.count) for s in stats.status_breakdown} == {
            ("active", 3), ("inactive", 1)
        }
        assert {(t.team_name, t.count) for t in stats.team_breakdown} == {
            ("Platform", 2), (None, 2)
        }
        assert {(j.job_role_title, j.count) for j in stats.job_role_breakdown} == {
            ("Engineer", 2), (None, 2)
        }

    @pytest.mark.asyncio
    async def test_caller_without_person_has_no_report_counts(self, db_session, org, user_ctx):
        manager = await org.person("Dana Lee")
        await org.person("Sam Park", manager=manager)

        stats = await get_people_stats(db_session, user_ctx)

        assert stats.total_people == 2
        assert stats.direct_reports == 0
        assert stats.reports_without_recent_one_on_one == 0

    @pytest.mark.asyncio
    async def test_manager_span_rule_drives_exceeding_count(self, db_session, org, user_ctx):
        manager = await org.person("Dana Lee")
        for name in ("A", "B", "C"):
            await org.person(f"{name} Report", manager=manager)
        await org.rule(RuleType.MANAGER_SPAN, MANAGER_SPAN_CONFIG)

        stats = await get_people_stats(db_session, user_ctx)

        assert stats.has_max_reports_rule is True
        assert stats.managers_exceeding_max_reports == 1

    @pytest.mark.asyncio
    async def test_threshold_follows_enabled_rule(self, db_session, org):
        assert await one_on_one_threshold_days(db_session, org.id) == 14

        await org.rule(
            RuleType.ONE_ON_ONE_FREQUENCY,
            {"warningThresholdDays": 5, "urgentThresholdDays": 9}
        )
        assert await one_on_one_threshold_days(db_session, org.id) == 5


@pytest.mark.unit
class TestDrillDownLists:
    """Test cases for the people lists behind the rollup."""

    @pytest.mark.asyncio
    async def test_reports_without_recent_one_on_one(self, db_session, org, user_ctx, now):
        manager = await org.person("Dana Lee")
        stale = await org.person("Sam Park", manager=manager)
        fresh = await org.person("Kim Roe", manager=manager)
        await org.one_on_one(manager, stale, now - timedelta(days=15))
        await org.one_on_one(manager, fresh, now - timedelta(days=1))

        people = await get_reports_without_recent_one_on_one(
            db_session, replace(user_ctx, person_id=manager.id), now
        )

        assert [p.name for p in people] == ["Sam Park"]
        assert people[0].email == "sam.park@example.com"

    @pytest.mark.asyncio
    async def test_reports_without_recent_feedback(self, db_session, org, user_ctx, now):
        manager = await org.person("Dana Lee")
        await org.person("Sam Park", manager=manager)

        people = await get_reports_without_recent_feedback_360(
            db_session, replace(user_ctx, person_id=manager.id), now
        )
        assert [p.name for p in people] == ["Sam Park"]

        assert await get_reports_without_recent_feedback_360(db_session, user_ctx, now) == []

    @pytest.mark.asyncio
    async def test_managers_exceeding_max_reports(self, db_session, org, user_ctx):
        busy = await org.person("Dana Lee")
        for name in ("A", "B", "C"):
            await org.person(f"{name} Report", manager=busy)

        assert await get_managers_exceeding_max_reports(db_session, user_ctx) == []

        await org.rule(RuleType.MANAGER_SPAN, MANAGER_SPAN_CONFIG)
        people = await get_managers_exceeding_max_reports(db_session, user_ctx)

        assert [(p.id, p.direct_report_count) for p in people] == [(busy.id, 3)]

    @pytest.mark.asyncio
    async def test_lists_require_organization(self, db_session, orphan_ctx):
        with pytest.raises(AuthorizationError):
            await get_managers_exceeding_max_reports(db_session, orphan_ctx)
