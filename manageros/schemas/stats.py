"""Pydantic schemas for people statistics."""

from typing import List, Optional

from pydantic import BaseModel


class StatusCount(BaseModel):
    status: str
    count: int


class TeamCount(BaseModel):
    team_name: Optional[str] = None
    count: int


class JobRoleCount(BaseModel):
    job_role_title: Optional[str] = None
    count: int


class PeopleStats(BaseModel):
    """Dashboard rollup of people and tolerance indicators."""

    total_people: int
    direct_reports: int
    reports_without_recent_one_on_one: int
    reports_without_recent_feedback_360: int
    managers_exceeding_max_reports: int
    has_max_reports_rule: bool
    status_breakdown: List[StatusCount]
    team_breakdown: List[TeamCount]
    job_role_breakdown: List[JobRoleCount]


class PersonSummary(BaseModel):
    """Person row for the stats drill-down lists."""

    id: int
    name: str
    email: Optional[str] = None
    status: str
    team_name: Optional[str] = None
    job_role_title: Optional[str] = None
    direct_report_count: Optional[int] = None
