"""SQLAlchemy models for ManagerOS tolerance rules."""

import datetime as dt
from typing import Any, Dict, Optional

from sqlalchemy import (
    String, Integer, JSON, ForeignKey, Boolean,
    Text, DateTime, Index, text
)
from sqlalchemy.orm import Mapped, mapped_column

from manageros.storage.db import Base


class Organization(Base):
    """Organization (tenant) owning people, rules and exceptions."""

    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )


class Team(Base):
    """Team grouping used by people breakdowns."""

    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)


class JobRole(Base):
    """Job role used by people breakdowns."""

    __tablename__ = "job_roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(128), nullable=False)


class Person(Base):
    """Person in an organization, optionally reporting to a manager."""

    __tablename__ = "people"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="active", nullable=False)
    employee_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    manager_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("people.id"), nullable=True, index=True
    )
    team_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("teams.id"), nullable=True
    )
    job_role_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("job_roles.id"), nullable=True
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )

    __table_args__ = (
        Index("ix_people_org_status", "organization_id", "status"),
    )


class OneOnOne(Base):
    """One-on-one meeting between a manager and a report."""

    __tablename__ = "one_on_ones"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    manager_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("people.id"), nullable=False, index=True
    )
    report_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("people.id"), nullable=False, index=True
    )
    scheduled_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )


class Initiative(Base):
    """Initiative expected to report progress through check-ins."""

    __tablename__ = "initiatives"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="planned", nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )


class CheckIn(Base):
    """Progress check-in recorded against an initiative."""

    __tablename__ = "check_ins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    initiative_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("initiatives.id"), nullable=False, index=True
    )
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )


class FeedbackCampaign(Base):
    """360 feedback campaign targeting one person."""

    __tablename__ = "feedback_campaigns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False, index=True
    )
    target_person_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("people.id"), nullable=False, index=True
    )
    start_date: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    end_date: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )


class ToleranceRule(Base):
    """Organization tolerance rule with type specific JSON configuration."""

    __tablename__ = "tolerance_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False, index=True
    )
    rule_type: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    config: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        onupdate=dt.datetime.utcnow,
        nullable=False
    )

    __table_args__ = (
        Index("ix_tolerance_rules_org_type_enabled", "organization_id", "rule_type", "is_enabled"),
        # Deleted rule ids are never reused
        {"sqlite_autoincrement": True},
    )


class ToleranceException(Base):
    """Detected tolerance rule violation with its review lifecycle.

    ``rule_id`` is a plain reference: deleting a rule keeps its exceptions.
    """

    __tablename__ = "tolerance_exceptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False, index=True
    )
    rule_id: Mapped[int] = mapped_column(Integer, nullable=False)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(128), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="active", nullable=False)
    context_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    # Audit fields
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        onupdate=dt.datetime.utcnow,
        nullable=False
    )
    acknowledged_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    acknowledged_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ignored_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    ignored_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    resolved_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        Index("ix_tolerance_exceptions_org_status", "organization_id", "status"),
        Index("ix_tolerance_exceptions_org_created", "organization_id", "created_at"),
        Index("ix_tolerance_exceptions_subject", "rule_id", "entity_type", "entity_id"),
        # One open exception per rule and subject
        Index(
            "uq_tolerance_exceptions_active_subject",
            "rule_id", "entity_type", "entity_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )
