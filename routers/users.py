"""
User management APIs across the student, faculty and admin tables.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from auth.dependencies import get_current_identity, get_db_session, require_role, require_staff
from core.exceptions import ForbiddenError, IdentityNotFoundError, ValidationError
from core.logger import logger
from core.validators import validate_username
from database.models import UserRole
from routers.auth import ProfileUpdate
from services.identity_resolver import ResolvedIdentity, identity_resolver


router = APIRouter(prefix="/api/users", tags=["users"])

require_faculty = require_role(UserRole.FACULTY)


class UserUpdate(ProfileUpdate):
    """Update user request (faculty managing another account)."""


@router.get("")
async def list_users(
    role: Optional[UserRole] = Query(None, description="Limit to one variant"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current: ResolvedIdentity = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    """List users, newest first. Faculty and admin only."""
    items, total = identity_resolver.list_identities(db, role=role, page=page, limit=limit)
    return {
        "data": [resolved.to_dict() for resolved in items],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    current: ResolvedIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db_session)
):
    """Get one user. Students may only view themselves."""
    if current.role == UserRole.STUDENT and current.id != user_id:
        raise ForbiddenError("Students can only view their own account")

    resolved = identity_resolver.resolve_by_id(db, user_id)
    if resolved is None:
        raise IdentityNotFoundError()
    return {"user": resolved.to_dict()}


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    request_data: UserUpdate,
    current: ResolvedIdentity = Depends(require_faculty),
    db: Session = Depends(get_db_session)
):
    """Update another user's profile. Faculty only; role and password cannot change here."""
    patch = request_data.model_dump(exclude_unset=True)
    if "role" in patch:
        raise ValidationError(
            "Changing role via update is not supported; recreate the user in the target role",
            field="role",
        )
    if "password" in patch:
        raise ValidationError("Passwords are changed by their owner via /api/auth/change-password", field="password")

    patch = {field: value for field, value in patch.items() if value is not None}
    if "username" in patch:
        is_valid, error_message = validate_username(patch["username"])
        if not is_valid:
            raise ValidationError(error_message, field="username")

    resolved = identity_resolver.update_identity(db, user_id, patch)
    logger.info(f"{resolved.role.value} {user_id} updated by faculty {current.id}")
    return {"user": resolved.to_dict()}


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    current: ResolvedIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db_session)
):
    """Delete a user. Allowed for the user themselves or an admin."""
    actor_id = current.id
    if actor_id != user_id and current.role != UserRole.ADMIN:
        raise ForbiddenError("You can only delete your own account")

    deleted = identity_resolver.delete_identity(db, user_id)
    logger.info(f"{deleted.role.value} {user_id} deleted by {current.role.value} {actor_id}")
    return {"message": "User deleted successfully", "id": user_id, "role": deleted.role.value}
