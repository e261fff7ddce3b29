"""Domain errors raised by tolerance rule services."""

from typing import Any, Dict, List, Optional


class ManagerOSError(Exception):
    """Base class for domain errors surfaced to API callers."""

    code = "MANAGEROS_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthorizationError(ManagerOSError):
    """Caller lacks organization membership or the required role."""

    code = "FORBIDDEN"


class NotFoundError(ManagerOSError):
    """Entity is missing or belongs to another organization.

    Both cases share one message so callers cannot probe other tenants.
    """

    code = "NOT_FOUND"


class RuleValidationError(ManagerOSError):
    """Rule input or configuration failed validation."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []


class InvalidTransitionError(ManagerOSError):
    """Exception status change is not allowed from its current status."""

    code = "INVALID_TRANSITION"
