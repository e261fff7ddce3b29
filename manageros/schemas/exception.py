"""Pydantic schemas for tolerance exceptions."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from manageros.business.tolerance import (
    EntityType, ExceptionSeverity, ExceptionStatus, RuleType
)


class ExceptionCreate(BaseModel):
    """Internal schema for exceptions raised by the evaluator."""

    rule_id: int
    organization_id: int
    severity: ExceptionSeverity
    entity_type: EntityType
    entity_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    context_data: Optional[Dict[str, Any]] = None


class ExceptionFilters(BaseModel):
    """Filters accepted by the exception listing."""

    status: Optional[ExceptionStatus] = None
    severity: Optional[ExceptionSeverity] = None
    rule_id: Optional[int] = None
    rule_type: Optional[RuleType] = None
    entity_type: Optional[EntityType] = None
    entity_id: Optional[str] = None


class ExceptionRuleSummary(BaseModel):
    """Rule that produced an exception."""

    id: int
    name: str
    rule_type: RuleType

    model_config = ConfigDict(from_attributes=True)


class ExceptionResponse(BaseModel):
    """Response schema for exception details."""

    id: int
    organization_id: int
    rule_id: int
    entity_type: EntityType
    entity_id: str
    severity: ExceptionSeverity
    message: str
    status: ExceptionStatus
    context_data: Optional[Dict[str, Any]] = None

    # Timestamps
    created_at: datetime
    updated_at: datetime
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    ignored_at: Optional[datetime] = None
    ignored_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None

    # None when the rule has since been deleted
    rule: Optional[ExceptionRuleSummary] = None

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 42,
                "organization_id": 1,
                "rule_id": 3,
                "entity_type": "OneOnOne",
                "entity_id": "12-31",
                "severity": "warning",
                "message": "Dana Lee has not had a 1:1 with Sam Park in 16 days (threshold: 14 days)",
                "status": "active",
                "created_at": "2026-10-01T06:00:00Z",
                "updated_at": "2026-10-01T06:00:00Z",
                "rule": {"id": 3, "name": "Regular 1:1s", "rule_type": "one_on_one_frequency"}
            }
        }
    )


class ExceptionListResponse(BaseModel):
    """Response schema for exception list."""

    items: List[ExceptionResponse]
    total: int
    page: int = 1
    page_size: int = 20
    has_next: bool = False


class ExceptionStatsResponse(BaseModel):
    """Response schema for exception statistics."""

    total_exceptions: int
    active_exceptions: int
    by_status: Dict[str, int]
    by_severity: Dict[str, int]
    by_rule_type: Dict[str, int]
