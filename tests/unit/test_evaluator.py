"""Unit tests for the tolerance evaluator."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from manageros.business.errors import AuthorizationError
from manageros.business.tolerance import (
    EntityType, ExceptionSeverity, ExceptionStatus, RuleType
)
from manageros.services import exception_store
from manageros.services.evaluator import evaluate_all_rules, run_tolerance_check
from manageros.services.rule_registry import RULE_MODULES
from manageros.services.rules.base import RuleModule
from manageros.storage.models import ToleranceException
from tests.factories.data_factories import (
    FEEDBACK_CONFIG, INITIATIVE_CONFIG, MANAGER_SPAN_CONFIG, MAX_REPORTS_CONFIG,
    ONE_ON_ONE_CONFIG
)


async def all_exceptions(db, organization_id):
    result = await db.execute(
        select(ToleranceException)
        .where(ToleranceException.organization_id == organization_id)
        .order_by(ToleranceException.id)
    )
    return list(result.scalars().all())


@pytest.mark.unit
class TestEvaluateAllRules:
    """Test cases for organization wide evaluation."""

    @pytest.mark.asyncio
    async def test_creates_one_exception_per_violation(self, db_session, org, now):
        manager = await org.person("Dana Lee")
        report = await org.person("Sam Park", manager=manager)
        await org.one_on_one(manager, report, now - timedelta(days=20))
        await org.feedback_campaign(manager, now - timedelta(days=10))
        await org.feedback_campaign(report, now - timedelta(days=10))
        rule = await org.rule(RuleType.ONE_ON_ONE_FREQUENCY, ONE_ON_ONE_CONFIG)
        await org.rule(RuleType.FEEDBACK_360, FEEDBACK_CONFIG)

        result = await evaluate_all_rules(db_session, org.id, now)

        assert result.exceptions_created == 1
        assert result.errors == []

        [exception] = await all_exceptions(db_session, org.id)
        assert exception.rule_id == rule.id
        assert exception.status == ExceptionStatus.ACTIVE.value
        assert exception.severity == ExceptionSeverity.WARNING.value
        assert exception.entity_type == EntityType.ONE_ON_ONE.value
        assert exception.entity_id == f"{manager.id}-{report.id}"
        assert exception.context_data["managerName"] == "Dana Lee"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rule_type, config", [
        (RuleType.ONE_ON_ONE_FREQUENCY, ONE_ON_ONE_CONFIG),
        (RuleType.INITIATIVE_CHECKIN, INITIATIVE_CONFIG),
        (RuleType.FEEDBACK_360, FEEDBACK_CONFIG),
        (RuleType.MANAGER_SPAN, MANAGER_SPAN_CONFIG),
        (RuleType.MAX_REPORTS, MAX_REPORTS_CONFIG),
    ])
    async def test_rerun_does_not_duplicate(self, db_session, org, now, rule_type, config):
        manager = await org.person("Dana Lee")
        for name in ("A", "B", "C"):
            await org.person(f"{name} Report", manager=manager)
        await org.initiative("Launch")
        await org.rule(rule_type, config)

        first = await evaluate_all_rules(db_session, org.id, now)
        second = await evaluate_all_rules(db_session, org.id, now + timedelta(days=3))

        assert first.errors == second.errors == []
        assert first.exceptions_created > 0
        assert second.exceptions_created == 0
        assert len(await all_exceptions(db_session, org.id)) == first.exceptions_created

    @pytest.mark.asyncio
    async def test_existing_exception_is_not_refreshed(self, db_session, org, now):
        manager = await org.person("Dana Lee")
        report = await org.person("Sam Park", manager=manager)
        await org.one_on_one(manager, report, now - timedelta(days=20))
        await org.rule(RuleType.ONE_ON_ONE_FREQUENCY, ONE_ON_ONE_CONFIG)

        await evaluate_all_rules(db_session, org.id, now)
        # Now past the urgent threshold, the stored warning stays as it was
        await evaluate_all_rules(db_session, org.id, now + timedelta(days=20))

        [exception] = await all_exceptions(db_session, org.id)
        assert exception.severity == ExceptionSeverity.WARNING.value

    @pytest.mark.asyncio
    async def test_acknowledged_violation_is_raised_again(self, db_session, org, admin_ctx, now):
        manager = await org.person("Dana Lee")
        await org.person("Sam Park", manager=manager)
        await org.rule(RuleType.ONE_ON_ONE_FREQUENCY, ONE_ON_ONE_CONFIG)

        await evaluate_all_rules(db_session, org.id, now)
        [first] = await all_exceptions(db_session, org.id)
        await exception_store.acknowledge_exception(db_session, admin_ctx, first.id)

        result = await evaluate_all_rules(db_session, org.id, now)

        assert result.exceptions_created == 1
        statuses = [e.status for e in await all_exceptions(db_session, org.id)]
        assert statuses == [ExceptionStatus.ACKNOWLEDGED.value, ExceptionStatus.ACTIVE.value]

    @pytest.mark.asyncio
    async def test_disabled_rules_are_skipped(self, db_session, org, now):
        manager = await org.person("Dana Lee")
        await org.person("Sam Park", manager=manager)
        await org.rule(RuleType.ONE_ON_ONE_FREQUENCY, ONE_ON_ONE_CONFIG, is_enabled=False)

        result = await evaluate_all_rules(db_session, org.id, now)

        assert result.exceptions_created == 0
        assert await all_exceptions(db_session, org.id) == []

    @pytest.mark.asyncio
    async def test_organization_without_rules(self, db_session, org, now):
        result = await evaluate_all_rules(db_session, org.id, now)

        assert result.exceptions_created == 0
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_only_the_given_organization_is_evaluated(
        self, db_session, org, other_org, now
    ):
        manager = await other_org.person("Foreign Boss")
        await other_org.person("Foreign Report", manager=manager)
        await other_org.rule(RuleType.ONE_ON_ONE_FREQUENCY, ONE_ON_ONE_CONFIG)
        await org.rule(RuleType.ONE_ON_ONE_FREQUENCY, ONE_ON_ONE_CONFIG)

        result = await evaluate_all_rules(db_session, org.id, now)

        assert result.exceptions_created == 0
        assert await all_exceptions(db_session, other_org.id) == []

    @pytest.mark.asyncio
    async def test_invalid_stored_config_fails_only_that_rule(self, db_session, org, now):
        manager = await org.person("Dana Lee")
        for name in ("A", "B", "C"):
            await org.person(f"{name} Report", manager=manager)
        one_on_one = await org.rule(RuleType.ONE_ON_ONE_FREQUENCY, ONE_ON_ONE_CONFIG)
        broken = await org.rule(
            RuleType.FEEDBACK_360, {"warningThresholdMonths": "soon"}, name="Broken"
        )
        span = await org.rule(RuleType.MANAGER_SPAN, MANAGER_SPAN_CONFIG)

        result = await evaluate_all_rules(db_session, org.id, now)

        assert len(result.errors) == 1
        assert result.errors[0].startswith(f"Error evaluating rule Broken ({broken.id}): ")
        assert "Invalid config" in result.errors[0]

        exceptions = await all_exceptions(db_session, org.id)
        # Three unmet report pairs plus one oversized team
        assert result.exceptions_created == 4
        assert {e.rule_id for e in exceptions} == {one_on_one.id, span.id}
        assert sum(e.rule_id == span.id for e in exceptions) == 1

    @pytest.mark.asyncio
    async def test_failing_check_is_rolled_back_and_reported(
        self, db_session, org, now, monkeypatch
    ):
        manager = await org.person("Dana Lee")
        for name in ("A", "B", "C"):
            await org.person(f"{name} Report", manager=manager)
        failing = await org.rule(RuleType.MAX_REPORTS, {"maxReports": 2}, name="Exploding")
        await org.rule(RuleType.MANAGER_SPAN, MANAGER_SPAN_CONFIG)

        async def explode(db, rule, config, now):
            raise RuntimeError("database went away")

        original = RULE_MODULES[RuleType.MAX_REPORTS]
        monkeypatch.setitem(RULE_MODULES, RuleType.MAX_REPORTS, RuleModule(
            rule_type=RuleType.MAX_REPORTS,
            config_model=original.config_model,
            evaluate=explode,
        ))

        result = await evaluate_all_rules(db_session, org.id, now)

        assert result.errors == [
            f"Error evaluating rule Exploding ({failing.id}): database went away"
        ]
        assert result.exceptions_created == 1
        [exception] = await all_exceptions(db_session, org.id)
        assert exception.rule_id != failing.id


@pytest.mark.unit
class TestRunToleranceCheck:
    """Test cases for on-demand checks."""

    @pytest.mark.asyncio
    async def test_admin_can_run_check(self, db_session, org, admin_ctx, now):
        manager = await org.person("Dana Lee")
        await org.person("Sam Park", manager=manager)
        await org.rule(RuleType.ONE_ON_ONE_FREQUENCY, ONE_ON_ONE_CONFIG)

        result = await run_tolerance_check(db_session, admin_ctx, now)

        assert result.exceptions_created == 1

    @pytest.mark.asyncio
    async def test_regular_user_is_rejected(self, db_session, user_ctx):
        with pytest.raises(AuthorizationError, match="Only administrators"):
            await run_tolerance_check(db_session, user_ctx)

    @pytest.mark.asyncio
    async def test_caller_without_organization_is_rejected(self, db_session, orphan_ctx):
        with pytest.raises(AuthorizationError, match="belong to an organization"):
            await run_tolerance_check(db_session, orphan_ctx)
