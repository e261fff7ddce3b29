"""Integration tests for the tolerance rule, exception and people stats API."""

import pytest

from manageros.business.tolerance import OrganizationRole, RuleType
from tests.factories.data_factories import (
    MANAGER_SPAN_CONFIG, ONE_ON_ONE_CONFIG, auth_headers
)


RULE_PAYLOAD = {
    "rule_type": "one_on_one_frequency",
    "name": "Regular 1:1s",
    "description": "Keep in touch with every report",
    "config": ONE_ON_ONE_CONFIG,
}


@pytest.mark.integration
class TestToleranceRuleApi:
    """Rule management over HTTP."""

    @pytest.mark.asyncio
    async def test_requests_need_a_token(self, client):
        response = await client.get("/api/tolerance-rules")

        assert response.status_code == 401
        assert response.json()["detail"] == "Authorization header required"

    @pytest.mark.asyncio
    async def test_admin_creates_and_lists_rules(self, client, org, db_session):
        await db_session.commit()
        headers = auth_headers(org.id)

        created = await client.post("/api/tolerance-rules", headers=headers, json=RULE_PAYLOAD)

        assert created.status_code == 201
        rule = created.json()
        assert rule["rule_type"] == "one_on_one_frequency"
        assert rule["is_enabled"] is True
        assert rule["config"] == ONE_ON_ONE_CONFIG

        listed = await client.get(
            "/api/tolerance-rules",
            headers=headers,
            params={"ruleType": "one_on_one_frequency", "isEnabled": "all"}
        )
        assert listed.status_code == 200
        body = listed.json()
        assert [item["id"] for item in body["items"]] == [rule["id"]]
        assert body["pagination"]["total_count"] == 1

        fetched = await client.get(f"/api/tolerance-rules/{rule['id']}", headers=headers)
        assert fetched.json()["name"] == "Regular 1:1s"

    @pytest.mark.asyncio
    async def test_regular_user_cannot_create(self, client, org, db_session):
        await db_session.commit()

        response = await client.post(
            "/api/tolerance-rules",
            headers=auth_headers(org.id, role=OrganizationRole.USER),
            json=RULE_PAYLOAD
        )

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_invalid_config_is_unprocessable(self, client, org, db_session):
        await db_session.commit()

        response = await client.post(
            "/api/tolerance-rules",
            headers=auth_headers(org.id),
            json={**RULE_PAYLOAD, "config": {"warningThresholdDays": -1, "urgentThresholdDays": 30}}
        )

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["errors"][0]["loc"] == ["warningThresholdDays"]

    @pytest.mark.asyncio
    async def test_update_toggle_and_delete(self, client, org, db_session):
        rule = await org.rule(RuleType.MANAGER_SPAN, MANAGER_SPAN_CONFIG, name="Span")
        await db_session.commit()
        headers = auth_headers(org.id)

        patched = await client.patch(
            f"/api/tolerance-rules/{rule.id}", headers=headers,
            json={"config": {"maxDirectReports": 5}}
        )
        assert patched.status_code == 200
        assert patched.json()["config"] == {"maxDirectReports": 5}

        toggled = await client.post(
            f"/api/tolerance-rules/{rule.id}/toggle", headers=headers, json={"is_enabled": False}
        )
        assert toggled.json()["is_enabled"] is False

        deleted = await client.delete(f"/api/tolerance-rules/{rule.id}", headers=headers)
        assert deleted.status_code == 204

        missing = await client.get(f"/api/tolerance-rules/{rule.id}", headers=headers)
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_other_organization_rule_is_not_found(self, client, org, other_org, db_session):
        foreign = await other_org.rule(RuleType.MANAGER_SPAN, MANAGER_SPAN_CONFIG)
        await db_session.commit()

        response = await client.patch(
            f"/api/tolerance-rules/{foreign.id}",
            headers=auth_headers(org.id),
            json={"name": "Stolen"}
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "Tolerance rule not found or access denied"

    @pytest.mark.asyncio
    async def test_install_defaults(self, client, org, db_session):
        await db_session.commit()

        response = await client.post("/api/tolerance-rules/defaults", headers=auth_headers(org.id))

        assert response.status_code == 201
        assert {rule["rule_type"] for rule in response.json()} == {t.value for t in RuleType}


@pytest.mark.integration
class TestExceptionReviewApi:
    """Running checks and reviewing the resulting exceptions."""

    @pytest.mark.asyncio
    async def test_check_then_review(self, client, org, db_session):
        manager = await org.person("Dana Lee")
        report = await org.person("Sam Park", manager=manager)
        await org.rule(RuleType.ONE_ON_ONE_FREQUENCY, ONE_ON_ONE_CONFIG)
        await db_session.commit()
        headers = auth_headers(org.id)
        reader = auth_headers(org.id, role=OrganizationRole.USER, user_id="reader-1")

        check = await client.post("/api/tolerance-rules/check", headers=headers)
        assert check.status_code == 200
        assert check.json() == {"exceptions_created": 1, "errors": []}

        again = await client.post("/api/tolerance-rules/check", headers=headers)
        assert again.json()["exceptions_created"] == 0

        listed = await client.get(
            "/api/exceptions", headers=reader, params={"status": "active", "rule_type": "one_on_one_frequency"}
        )
        body = listed.json()
        assert body["total"] == 1
        [exception] = body["items"]
        assert exception["severity"] == "urgent"
        assert exception["entity_id"] == f"{manager.id}-{report.id}"
        assert exception["rule"]["rule_type"] == "one_on_one_frequency"

        acknowledged = await client.post(
            f"/api/exceptions/{exception['id']}/acknowledge", headers=reader
        )
        assert acknowledged.status_code == 200
        assert acknowledged.json()["status"] == "acknowledged"
        assert acknowledged.json()["acknowledged_by"] == "reader-1"

        conflict = await client.post(f"/api/exceptions/{exception['id']}/resolve", headers=reader)
        assert conflict.status_code == 409
        assert conflict.json()["code"] == "INVALID_TRANSITION"

        stats = await client.get("/api/exceptions/stats/summary", headers=reader)
        assert stats.json()["by_status"]["acknowledged"] == 1

    @pytest.mark.asyncio
    async def test_regular_user_cannot_run_check(self, client, org, db_session):
        await db_session.commit()

        response = await client.post(
            "/api/tolerance-rules/check",
            headers=auth_headers(org.id, role=OrganizationRole.USER)
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_other_organization_exception_is_not_found(
        self, client, org, other_org, db_session
    ):
        rule = await other_org.rule(RuleType.MANAGER_SPAN, MANAGER_SPAN_CONFIG)
        foreign = await other_org.exception(rule, "Person", "1")
        await db_session.commit()
        headers = auth_headers(org.id)

        fetched = await client.get(f"/api/exceptions/{foreign.id}", headers=headers)
        ignored = await client.post(f"/api/exceptions/{foreign.id}/ignore", headers=headers)

        assert fetched.status_code == 404
        assert ignored.status_code == 404
        assert ignored.json()["detail"] == "Exception not found or access denied"


@pytest.mark.integration
class TestPeopleStatsApi:
    """People statistics over HTTP."""

    @pytest.mark.asyncio
    async def test_stats_for_linked_manager(self, client, org, db_session):
        manager = await org.person("Dana Lee")
        await org.person("Sam Park", manager=manager)
        await db_session.commit()
        headers = auth_headers(org.id, role=OrganizationRole.USER, person_id=manager.id)

        stats = await client.get("/api/people/stats", headers=headers)
        drill_down = await client.get("/api/people/stats/without-recent-one-on-one", headers=headers)

        assert stats.status_code == 200
        assert stats.json()["direct_reports"] == 1
        assert stats.json()["reports_without_recent_one_on_one"] == 1
        assert [p["name"] for p in drill_down.json()] == ["Sam Park"]

    @pytest.mark.asyncio
    async def test_caller_without_organization_is_forbidden(self, client):
        response = await client.get("/api/people/stats", headers=auth_headers(None))

        assert response.status_code == 403


@pytest.mark.integration
class TestServiceEndpoints:
    """Health checks and request correlation."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/healthz")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    @pytest.mark.asyncio
    async def test_readiness(self, client):
        response = await client.get("/readyz")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    @pytest.mark.asyncio
    async def test_correlation_id_is_echoed(self, client):
        response = await client.get("/healthz", headers={"X-Correlation-Id": "req-123"})

        assert response.headers["X-Correlation-Id"] == "req-123"
