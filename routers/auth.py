"""
Authentication endpoints: signup, login, profile, password change and the
three-step admin login (send code, verify code, password login).
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, ConfigDict, EmailStr, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from auth.dependencies import get_current_identity, get_db_session
from auth.security import create_access_token
from core.exceptions import AdminVerificationRequiredError, AuthError, ForbiddenError, ValidationError
from core.logger import logger
from core.validators import validate_code, validate_password, validate_username
from database.models import UserRole
from services.admin_verification import admin_verification
from services.identity_resolver import SEARCH_ORDER, ResolvedIdentity, identity_resolver
import config


router = APIRouter(prefix="/api/auth", tags=["authentication"])


class CamelModel(BaseModel):
    """Accepts camelCase (frontend) or snake_case field names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check(result):
    is_valid, error_message = result
    if not is_valid:
        raise ValueError(error_message)


# Request Models
class ProfileFields(CamelModel):
    """Optional profile attributes shared by signup and profile update."""
    profile_picture: Optional[str] = None
    phone_number: Optional[str] = None
    department: Optional[str] = None
    section: Optional[str] = None
    program: Optional[str] = None
    year_of_study: Optional[str] = None
    student_id: Optional[str] = None
    roll_number: Optional[str] = None
    email_alerts: Optional[bool] = None
    system_messages: Optional[bool] = None


class SignupRequest(ProfileFields):
    """Sign-up request."""
    name: str
    username: str
    email: EmailStr
    password: str
    role: UserRole

    @field_validator("name")
    @classmethod
    def name_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Name is required")
        return value.strip()

    @field_validator("username")
    @classmethod
    def username_valid(cls, value: str) -> str:
        _check(validate_username(value))
        return value

    @field_validator("password")
    @classmethod
    def password_valid(cls, value: str) -> str:
        _check(validate_password(value))
        return value


class LoginRequest(CamelModel):
    """Login request. Username may also be the account email."""
    username: str
    password: str
    role: Optional[UserRole] = None

    @field_validator("username", "password")
    @classmethod
    def not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Username and password are required")
        return value


class ProfileUpdate(ProfileFields):
    """Update profile request. Role and password are rejected with a clear error."""
    name: Optional[str] = None
    username: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[str] = None
    password: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str

    @field_validator("current_password")
    @classmethod
    def current_required(cls, value: str) -> str:
        if not value:
            raise ValueError("Current password is required")
        return value

    @field_validator("new_password")
    @classmethod
    def new_valid(cls, value: str) -> str:
        _check(validate_password(value))
        return value


class SendCodeRequest(BaseModel):
    email: EmailStr


class VerifyCodeRequest(BaseModel):
    email: EmailStr
    code: str

    @field_validator("code")
    @classmethod
    def code_required(cls, value: str) -> str:
        _check(validate_code(value))
        return value.strip()


class AdminLoginRequest(BaseModel):
    email: EmailStr
    password: str
    ticket: Optional[str] = None

    @field_validator("password")
    @classmethod
    def password_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Password is required")
        return value


def _token_response(resolved: ResolvedIdentity, token: str) -> dict:
    return {"token": token, "user": resolved.to_dict()}


# Endpoints
@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    request_data: SignupRequest,
    db: Session = Depends(get_db_session)
):
    """Register a student or faculty member (admins only when ALLOW_ADMIN_SIGNUP is on)."""
    if request_data.role == UserRole.ADMIN and not config.ALLOW_ADMIN_SIGNUP:
        raise ForbiddenError("Admin accounts are created by an administrator")

    data = request_data.model_dump(exclude_none=True, exclude={"role"})
    if request_data.role != UserRole.STUDENT:
        for field in ("year_of_study", "student_id", "roll_number"):
            data.pop(field, None)
    if request_data.role == UserRole.ADMIN:
        for field in ("department", "section", "program"):
            data.pop(field, None)

    resolved = identity_resolver.create_in_variant(db, request_data.role, data)
    token = create_access_token(resolved.id, resolved.role.value)
    return _token_response(resolved, token)


@router.post("/login")
async def login(
    credentials: LoginRequest,
    db: Session = Depends(get_db_session)
):
    """
    Login with username (or email), password and optional role.

    While admin login requires a verified code, admins must use /admin/login.
    """
    roles = SEARCH_ORDER
    if config.ADMIN_LOGIN_REQUIRES_TICKET:
        if credentials.role == UserRole.ADMIN:
            raise AdminVerificationRequiredError("Admins sign in through /api/auth/admin/login")
        roles = tuple(role for role in SEARCH_ORDER if role != UserRole.ADMIN)

    resolved = identity_resolver.resolve_for_login(
        db, credentials.username, role_hint=credentials.role, roles=roles
    )
    if resolved is None:
        logger.info(f"Failed login for {credentials.username!r}: no such user")
        raise AuthError()

    store = identity_resolver.store_for(resolved.role)
    if not store.verify_credential(resolved.identity, credentials.password):
        logger.info(f"Failed login for {credentials.username!r}: wrong password")
        raise AuthError()

    token = create_access_token(resolved.id, resolved.role.value)
    return _token_response(resolved, token)


@router.get("/me")
async def me(current: ResolvedIdentity = Depends(get_current_identity)):
    """Current user."""
    return {"user": current.to_dict()}


@router.put("/profile")
async def update_profile(
    request_data: ProfileUpdate,
    current: ResolvedIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db_session)
):
    """Update the caller's profile. Role and password cannot be changed here."""
    patch = request_data.model_dump(exclude_unset=True)
    if "role" in patch:
        raise ValidationError("Changing role via profile update is not supported", field="role")
    if "password" in patch:
        raise ValidationError("Use /api/auth/change-password to change your password", field="password")

    patch = {field: value for field, value in patch.items() if value is not None}
    if "username" in patch:
        is_valid, error_message = validate_username(patch["username"])
        if not is_valid:
            raise ValidationError(error_message, field="username")

    resolved = identity_resolver.update_identity(db, current.id, patch)
    return {"user": resolved.to_dict()}


@router.post("/change-password")
async def change_password(
    request_data: ChangePasswordRequest,
    current: ResolvedIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db_session)
):
    """Change password after checking the current one."""
    identity_resolver.change_credential(
        db,
        current.id,
        current.role,
        request_data.current_password,
        request_data.new_password,
    )
    return {"message": "Password changed successfully"}


@router.patch("/admin/send-code")
async def admin_send_code(
    request_data: SendCodeRequest,
    request: Request,
    db: Session = Depends(get_db_session)
):
    """Step 1: email a one-time code to an admin."""
    notifications = getattr(request.app.state, "notifications", None)
    admin_verification.request_code(db, request_data.email, notifications=notifications)
    return {"message": "Verification code sent successfully"}


@router.patch("/admin/verify-code")
async def admin_verify_code(
    request_data: VerifyCodeRequest,
    db: Session = Depends(get_db_session)
):
    """Step 2: check the code and return a single-use login ticket."""
    ticket = admin_verification.verify_code(db, request_data.email, request_data.code)
    return {
        "message": "Code verified successfully",
        "ticket": ticket["ticket"],
        "expiresAt": ticket["expires_at"].isoformat(),
    }


@router.post("/admin/login")
async def admin_login(
    request_data: AdminLoginRequest,
    db: Session = Depends(get_db_session)
):
    """Step 3: admin password login."""
    resolved, token = admin_verification.login(
        db, request_data.email, request_data.password, ticket=request_data.ticket
    )
    return _token_response(resolved, token)
