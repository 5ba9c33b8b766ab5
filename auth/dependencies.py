"""
Authentication dependencies for FastAPI.
"""
from typing import Iterable, Optional

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from auth.security import security_optional, decode_access_token
from core.exceptions import (
    ForbiddenError, InvalidTokenError, MissingTokenError, StaleIdentityError, UnauthenticatedError
)
from database.models import UserRole
from services.identity_resolver import ResolvedIdentity, coerce_role, identity_resolver
import config

VALID_ROLES = {role.value for role in UserRole}


def get_db_session():
    """Get database session."""
    if not config.db:
        raise HTTPException(status_code=503, detail="Database not initialized")
    with config.db.get_session() as session:
        yield session


async def get_current_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security_optional),
    db: Session = Depends(get_db_session)
) -> ResolvedIdentity:
    """
    Get the authenticated identity from the bearer token.

    The identity is looked up only in the variant named by the token's role.
    The result is also stored on ``request.state.identity``.

    Raises:
        MissingTokenError: No bearer token
        InvalidTokenError: Bad signature, expired, wrong type or unknown role
        StaleIdentityError: Identity no longer exists under that role
    """
    if credentials is None or not credentials.credentials:
        raise MissingTokenError()

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise InvalidTokenError()

    identity_id = payload.get("sub")
    role = payload.get("role")
    if not identity_id or role not in VALID_ROLES:
        raise InvalidTokenError()

    resolved = identity_resolver.resolve_by_id(db, identity_id, role_hint=role)
    if resolved is None:
        raise StaleIdentityError()

    request.state.identity = resolved
    return resolved


def authorize(request: Request, allowed_roles: Iterable[UserRole]) -> ResolvedIdentity:
    """
    Check that the identity attached to ``request`` has one of ``allowed_roles``.

    Raises:
        UnauthenticatedError: get_current_identity has not run for this request
        ForbiddenError: Role not allowed
    """
    resolved = getattr(request.state, "identity", None)
    if resolved is None:
        raise UnauthenticatedError()

    allowed = tuple(allowed_roles)
    if resolved.role not in allowed:
        raise ForbiddenError(
            f"Access denied. Required roles: {', '.join(role.value for role in allowed)}"
        )
    return resolved


def require_role(*allowed_roles):
    """
    Dependency factory for role-based access control.

    Args:
        allowed_roles: Roles (UserRole or names) that may pass

    Returns:
        Dependency function
    """
    allowed = tuple(coerce_role(role) for role in allowed_roles)

    async def role_checker(
        request: Request,
        current: ResolvedIdentity = Depends(get_current_identity)
    ) -> ResolvedIdentity:
        return authorize(request, allowed)

    return role_checker


require_staff = require_role(UserRole.FACULTY, UserRole.ADMIN)
