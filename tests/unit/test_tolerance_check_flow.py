"""Unit tests for the scheduled tolerance check flow."""

import importlib
import sys
from unittest.mock import MagicMock, patch

import pytest

from manageros.business.tolerance import RuleType
from tests.factories.data_factories import MANAGER_SPAN_CONFIG, OrganizationFactory


def load_flow_module():
    """Import the flow module with Prefect decorators replaced by plain functions."""
    sys.modules.pop("flows.tolerance_check_flow", None)

    with patch("prefect.task", lambda fn: fn), \
         patch("prefect.flow", lambda *args, **kwargs: lambda fn: fn):
        module = importlib.import_module("flows.tolerance_check_flow")
    sys.modules.pop("flows.tolerance_check_flow", None)

    return module


@pytest.fixture
def flow_module():
    module = load_flow_module()
    with patch.object(module, "get_run_logger", lambda: MagicMock()):
        yield module


async def seed_busy_manager(factory):
    manager = await factory.person("Dana Lee")
    for name in ("A", "B", "C"):
        await factory.person(f"{name} Report", manager=manager)
    await factory.rule(RuleType.MANAGER_SPAN, MANAGER_SPAN_CONFIG)


@pytest.mark.unit
class TestToleranceCheckFlow:
    """Test cases for the multi-organization flow."""

    @pytest.mark.asyncio
    async def test_evaluates_every_organization_with_rules(
        self, flow_module, db_session, org, other_org
    ):
        await seed_busy_manager(org)
        await seed_busy_manager(other_org)
        # Organization whose only rule is disabled is not picked up
        idle = await OrganizationFactory.create(db_session, "Initech")
        await idle.rule(RuleType.MANAGER_SPAN, MANAGER_SPAN_CONFIG, is_enabled=False)
        await db_session.commit()

        outcome = await flow_module.tolerance_check_flow()

        assert [r["organization_id"] for r in outcome["results"]] == [org.id, other_org.id]
        assert outcome["summary"] == {
            "organizations_evaluated": 2,
            "organizations_failed": 0,
            "exceptions_created": 2,
            "rule_errors": 0,
        }

    @pytest.mark.asyncio
    async def test_failing_organization_does_not_stop_the_run(
        self, flow_module, db_session, org, other_org
    ):
        await seed_busy_manager(org)
        await seed_busy_manager(other_org)
        await db_session.commit()

        real_evaluate = flow_module.evaluate_all_rules

        async def evaluate(db, organization_id, now=None):
            if organization_id == org.id:
                raise RuntimeError("connection reset")
            return await real_evaluate(db, organization_id, now)

        with patch.object(flow_module, "evaluate_all_rules", evaluate):
            outcome = await flow_module.tolerance_check_flow([org.id, other_org.id])

        failed, succeeded = outcome["results"]
        assert failed == {
            "organization_id": org.id,
            "success": False,
            "exceptions_created": 0,
            "errors": ["connection reset"],
        }
        assert succeeded["success"] is True
        assert succeeded["exceptions_created"] == 1
        assert outcome["summary"]["organizations_failed"] == 1
