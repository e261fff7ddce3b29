"""Pydantic schemas for tolerance rule management."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from manageros.business.tolerance import RuleType


class ToleranceRuleCreateRequest(BaseModel):
    """Request schema for creating a tolerance rule."""

    rule_type: RuleType
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    is_enabled: Optional[bool] = None
    config: Dict[str, Any]

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "rule_type": "one_on_one_frequency",
                "name": "Regular 1:1s",
                "description": "Flag manager/report pairs without a recent 1:1",
                "config": {"warningThresholdDays": 14, "urgentThresholdDays": 30}
            }
        }
    )


class ToleranceRuleUpdateRequest(BaseModel):
    """Request schema for updating a tolerance rule.

    The rule type cannot be changed; omitted fields are left untouched.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_enabled: Optional[bool] = None
    config: Optional[Dict[str, Any]] = None


class ToleranceRuleToggleRequest(BaseModel):
    """Request schema for enabling or disabling a rule."""

    is_enabled: bool


class ToleranceRuleResponse(BaseModel):
    """Response schema for tolerance rule details."""

    id: int
    organization_id: int
    rule_type: RuleType
    name: str
    description: Optional[str] = None
    is_enabled: bool
    config: Dict[str, Any]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    """Pagination metadata for list responses."""

    page: int
    limit: int
    total_count: int
    total_pages: int
    has_more: bool


class ToleranceRuleListResponse(BaseModel):
    """Response schema for a page of tolerance rules."""

    items: List[ToleranceRuleResponse]
    pagination: Pagination


class EvaluationResult(BaseModel):
    """Outcome of evaluating all enabled rules of an organization."""

    exceptions_created: int = 0
    errors: List[str] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "exceptions_created": 3,
                "errors": ["Error evaluating rule 360s (7): warningThresholdMonths: Field required"]
            }
        }
    )
