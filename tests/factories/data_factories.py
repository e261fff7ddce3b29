"""Data factories for generating test data."""

from datetime import datetime
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from manageros.business.tolerance import ExceptionStatus, OrganizationRole, RuleType
from manageros.security.auth import create_access_token
from manageros.storage.models import (
    CheckIn, FeedbackCampaign, Initiative, JobRole, OneOnOne, Organization,
    Person, Team, ToleranceException, ToleranceRule
)


@dataclass
class OrganizationFactory:
    """Factory for rows belonging to one organization."""

    db: AsyncSession
    organization: Organization

    @property
    def id(self) -> int:
        return self.organization.id

    @classmethod
    async def create(cls, db: AsyncSession, name: str) -> "OrganizationFactory":
        organization = Organization(name=name)
        db.add(organization)
        await db.flush()
        return cls(db=db, organization=organization)

    async def _add(self, instance):
        self.db.add(instance)
        await self.db.flush()
        return instance

    async def team(self, name: str) -> Team:
        return await self._add(Team(organization_id=self.id, name=name))

    async def job_role(self, title: str) -> JobRole:
        return await self._add(JobRole(organization_id=self.id, title=title))

    async def person(
        self,
        name: str,
        manager: Optional[Person] = None,
        status: str = "active",
        employee_type: Optional[str] = "FULL_TIME",
        team: Optional[Team] = None,
        job_role: Optional[JobRole] = None,
        email: Optional[str] = None
    ) -> Person:
        """Create a person, optionally reporting to a manager."""
        return await self._add(Person(
            organization_id=self.id,
            name=name,
            email=email or f"{name.lower().replace(' ', '.')}@example.com",
            status=status,
            employee_type=employee_type,
            manager_id=manager.id if manager else None,
            team_id=team.id if team else None,
            job_role_id=job_role.id if job_role else None,
        ))

    async def one_on_one(
        self,
        manager: Person,
        report: Person,
        scheduled_at: Optional[datetime]
    ) -> OneOnOne:
        return await self._add(OneOnOne(
            manager_id=manager.id,
            report_id=report.id,
            scheduled_at=scheduled_at,
        ))

    async def initiative(self, title: str, status: str = "in_progress") -> Initiative:
        return await self._add(Initiative(organization_id=self.id, title=title, status=status))

    async def check_in(self, initiative: Initiative, created_at: datetime) -> CheckIn:
        return await self._add(CheckIn(
            initiative_id=initiative.id,
            summary="Progress update",
            created_at=created_at,
        ))

    async def feedback_campaign(self, person: Person, created_at: datetime) -> FeedbackCampaign:
        return await self._add(FeedbackCampaign(
            organization_id=self.id,
            target_person_id=person.id,
            created_at=created_at,
        ))

    async def rule(
        self,
        rule_type: RuleType,
        config: Dict[str, Any],
        name: Optional[str] = None,
        is_enabled: bool = True
    ) -> ToleranceRule:
        """Insert a rule directly, without config validation."""
        return await self._add(ToleranceRule(
            organization_id=self.id,
            rule_type=rule_type.value,
            name=name or rule_type.value,
            is_enabled=is_enabled,
            config=config,
        ))

    async def exception(
        self,
        rule: ToleranceRule,
        entity_type: str,
        entity_id: str,
        status: ExceptionStatus = ExceptionStatus.ACTIVE,
        severity: str = "warning",
        message: str = "Seeded exception"
    ) -> ToleranceException:
        return await self._add(ToleranceException(
            organization_id=self.id,
            rule_id=rule.id,
            entity_type=entity_type,
            entity_id=entity_id,
            severity=severity,
            message=message,
            status=status.value,
        ))


# Common rule configurations
ONE_ON_ONE_CONFIG = {"warningThresholdDays": 14, "urgentThresholdDays": 30}
INITIATIVE_CONFIG = {"warningThresholdDays": 7}
FEEDBACK_CONFIG = {"warningThresholdMonths": 6}
MANAGER_SPAN_CONFIG = {"maxDirectReports": 2}
MAX_REPORTS_CONFIG = {"maxReports": 2}


def auth_headers(
    organization_id: Optional[int],
    role: OrganizationRole = OrganizationRole.ADMIN,
    user_id: str = "user-1",
    person_id: Optional[int] = None
) -> Dict[str, str]:
    """Authorization header carrying a signed token for the given caller."""
    token = create_access_token(user_id, organization_id, role=role, person_id=person_id)
    return {"Authorization": f"Bearer {token}"}
