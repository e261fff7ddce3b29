# ==== TOLERANCE RULE AND EXCEPTION VOCABULARY ==== #

"""
Rule types, exception states and organization roles for ManagerOS.

This module defines the closed set of tolerance rule types, the exception
severity and status lifecycle, the subject entity types exceptions refer to,
and the organization roles used for authorization decisions.
"""

from enum import Enum
from typing import Dict, FrozenSet


# ==== ENUMERATION DEFINITIONS ==== #


class RuleType(str, Enum):
    """
    Tolerance rule types supported by the evaluator.

    Each type has its own configuration schema and check function. The set
    is closed: rules of any other type cannot be created.
    """

    ONE_ON_ONE_FREQUENCY = "one_on_one_frequency"
    INITIATIVE_CHECKIN = "initiative_checkin"
    FEEDBACK_360 = "feedback_360"
    MANAGER_SPAN = "manager_span"
    MAX_REPORTS = "max_reports"


class ExceptionSeverity(str, Enum):
    """Exception severity levels."""

    WARNING = "warning"
    URGENT = "urgent"


class ExceptionStatus(str, Enum):
    """
    Exception status lifecycle.

    Status progression: ACTIVE → ACKNOWLEDGED | IGNORED | RESOLVED
    """

    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    IGNORED = "ignored"
    RESOLVED = "resolved"


class EntityType(str, Enum):
    """Subject entity an exception is about."""

    PERSON = "Person"
    INITIATIVE = "Initiative"
    ONE_ON_ONE = "OneOnOne"
    FEEDBACK_CAMPAIGN = "FeedbackCampaign"


class OrganizationRole(str, Enum):
    """Role of a user inside an organization."""

    OWNER = "owner"
    ADMIN = "admin"
    USER = "user"


class PersonStatus(str, Enum):
    """Employment status of a person."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    ON_LEAVE = "on_leave"


class InitiativeStatus(str, Enum):
    """Initiative lifecycle status."""

    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    DONE = "done"
    CANCELED = "canceled"


# ==== BUSINESS RULES CONFIGURATION ==== #


ADMIN_ROLES: FrozenSet[OrganizationRole] = frozenset({
    OrganizationRole.OWNER,
    OrganizationRole.ADMIN,
})

# Initiatives in these states are expected to report progress
ACTIVE_INITIATIVE_STATUSES: FrozenSet[str] = frozenset({
    InitiativeStatus.PLANNED.value,
    InitiativeStatus.IN_PROGRESS.value,
})

FULL_TIME_EMPLOYEE_TYPE = "FULL_TIME"

# Month length used when converting elapsed days to months
DAYS_PER_MONTH = 30

# Target status → (timestamp attribute, actor attribute)
TRANSITION_FIELDS: Dict[ExceptionStatus, tuple[str, str]] = {
    ExceptionStatus.ACKNOWLEDGED: ("acknowledged_at", "acknowledged_by"),
    ExceptionStatus.IGNORED: ("ignored_at", "ignored_by"),
    ExceptionStatus.RESOLVED: ("resolved_at", "resolved_by"),
}
