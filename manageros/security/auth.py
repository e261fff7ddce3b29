# ==== AUTHENTICATION AND CALLER CONTEXT ==== #

"""
Authentication and caller context for ManagerOS.

Requests carry a JWT whose claims identify the user, the organization they
act in, their organization role and their linked person. The decoded claims
become an explicit CallerContext that services receive as an argument,
so authorization decisions never depend on ambient session state.
"""

import datetime as dt
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt
from fastapi import Header, HTTPException

from manageros.business.errors import AuthorizationError
from manageros.business.tolerance import ADMIN_ROLES, OrganizationRole
from manageros.settings import settings


# ==== CALLER CONTEXT ==== #

@dataclass(frozen=True)
class CallerContext:
    """Identity and scope of the user performing an operation."""

    user_id: str
    organization_id: Optional[int]
    role: OrganizationRole = OrganizationRole.USER
    person_id: Optional[int] = None

    @property
    def is_admin_or_owner(self) -> bool:
        return self.role in ADMIN_ROLES


def require_organization(ctx: CallerContext, action: str) -> int:
    """
    Ensure the caller belongs to an organization.

    Args:
        ctx (CallerContext): Caller performing the operation
        action (str): Action phrase used in the error message

    Returns:
        int: Caller's organization id

    Raises:
        AuthorizationError: If the caller has no organization
    """
    if ctx.organization_id is None:
        raise AuthorizationError(f"User must belong to an organization to {action}")
    return ctx.organization_id


def require_admin_or_owner(ctx: CallerContext, action: str) -> int:
    """
    Ensure the caller is an administrator or owner of their organization.

    Args:
        ctx (CallerContext): Caller performing the operation
        action (str): Action phrase used in error messages

    Returns:
        int: Caller's organization id

    Raises:
        AuthorizationError: If the caller has no organization or lacks the role
    """
    organization_id = require_organization(ctx, action)
    if not ctx.is_admin_or_owner:
        raise AuthorizationError(f"Only administrators can {action}")
    return organization_id


# ==== TOKEN HANDLING ==== #

def context_from_claims(payload: Dict[str, Any]) -> CallerContext:
    """Build a caller context from decoded JWT claims."""
    try:
        role = OrganizationRole(payload.get("role", OrganizationRole.USER.value))
    except ValueError:
        role = OrganizationRole.USER

    organization_id = payload.get("org")
    person_id = payload.get("person_id")

    return CallerContext(
        user_id=str(payload["sub"]),
        organization_id=int(organization_id) if organization_id is not None else None,
        role=role,
        person_id=int(person_id) if person_id is not None else None,
    )


def get_caller_context(authorization: Optional[str] = Header(None)) -> CallerContext:
    """
    FastAPI dependency resolving the caller from a Bearer token.

    Args:
        authorization (Optional[str]): Authorization header with Bearer token

    Returns:
        CallerContext: Caller identity and organization scope

    Raises:
        HTTPException: If the token is missing, malformed, expired or invalid
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = authorization.split(" ", 1)[1]

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    if "sub" not in payload:
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        return context_from_claims(payload)
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")


def create_access_token(
    user_id: str,
    organization_id: Optional[int],
    role: OrganizationRole = OrganizationRole.USER,
    person_id: Optional[int] = None,
    expires_in_hours: int = 24
) -> str:
    """Create a signed access token.

    Args:
        user_id: User identifier
        organization_id: Organization the user acts in
        role: Organization role
        person_id: Person record linked to the user
        expires_in_hours: Token expiration time in hours

    Returns:
        JWT token string
    """
    now = dt.datetime.now(dt.timezone.utc)
    payload: Dict[str, Any] = {
        "sub": user_id,
        "role": OrganizationRole(role).value,
        "iat": now,
        "exp": now + dt.timedelta(hours=expires_in_hours),
    }
    if organization_id is not None:
        payload["org"] = organization_id
    if person_id is not None:
        payload["person_id"] = person_id

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
