"""
Domain exceptions for the Complaint Box API.

Every error carries a stable machine-readable ``code`` and the HTTP status it
maps to. ``app.py`` turns them into JSON responses; anything that is not a
``ComplaintBoxError`` is reported to clients as a generic server error.

Usage:
    from core.exceptions import DuplicateError

    if email_taken:
        raise DuplicateError("Email already registered", field="email")
"""
from typing import Any, Dict, Optional


class ComplaintBoxError(Exception):
    """Base exception for all Complaint Box errors."""

    status_code = 500
    default_code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "status": "error",
            "code": self.code,
            "error": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


# ============================================
# Input Errors (400-type)
# ============================================

class ValidationError(ComplaintBoxError):
    """Input validation failed"""

    status_code = 400
    default_code = "VALIDATION_ERROR"
    default_message = "Invalid input"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message, details={"field": field} if field else None)


class DuplicateError(ComplaintBoxError):
    """Username or email collision"""

    status_code = 400
    default_code = "DUPLICATE"
    default_message = "Username or email already exists"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message, details={"field": field} if field else None)


class UnsupportedRoleError(ComplaintBoxError):
    """Role outside the closed student/faculty/admin set"""

    status_code = 400
    default_code = "UNSUPPORTED_ROLE"

    def __init__(self, role: Any):
        super().__init__(f"Unsupported role: {role}", details={"role": str(role)})


# ============================================
# Authentication & Authorization Errors
# ============================================

class AuthError(ComplaintBoxError):
    """Bad credentials. The message never says which part was wrong."""

    status_code = 401
    default_code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class UnauthenticatedError(ComplaintBoxError):
    """No usable identity on the request"""

    status_code = 401
    default_code = "UNAUTHENTICATED"
    default_message = "Authentication required"


class MissingTokenError(UnauthenticatedError):
    default_code = "MISSING_TOKEN"
    default_message = "Authentication required"


class InvalidTokenError(UnauthenticatedError):
    default_code = "INVALID_TOKEN"
    default_message = "Invalid or expired token"


class StaleIdentityError(UnauthenticatedError):
    default_code = "STALE_IDENTITY"
    default_message = "User not found"


class AdminVerificationRequiredError(UnauthenticatedError):
    """Admin login attempted without a valid verification ticket"""

    default_code = "ADMIN_VERIFICATION_REQUIRED"
    default_message = "Email verification required. Please verify your code first."


class ForbiddenError(ComplaintBoxError):
    status_code = 403
    default_code = "FORBIDDEN"
    default_message = "Access denied"


# ============================================
# Resource Errors (404-type)
# ============================================

class NotFoundError(ComplaintBoxError):
    status_code = 404
    default_code = "NOT_FOUND"
    default_message = "Resource not found"


class IdentityNotFoundError(NotFoundError):
    default_code = "USER_NOT_FOUND"
    default_message = "User not found"


class AdminNotFoundError(NotFoundError):
    default_code = "ADMIN_NOT_FOUND"
    default_message = "Admin account not found"


# ============================================
# One-Time Code Errors
# ============================================

class CodeNotFoundError(NotFoundError):
    """No live code for the email. Reported as 400 like the other code failures."""

    status_code = 400
    default_code = "CODE_NOT_FOUND"
    default_message = "No verification code found. Please request a new code."


class ExpiredError(ComplaintBoxError):
    status_code = 400
    default_code = "EXPIRED"
    default_message = "Expired"


class CodeExpiredError(ExpiredError):
    default_code = "CODE_EXPIRED"
    default_message = "Verification code has expired. Please request a new code."


class CodeMismatchError(ComplaintBoxError):
    status_code = 400
    default_code = "CODE_MISMATCH"
    default_message = "Invalid verification code"


class CodeAttemptsExceededError(CodeMismatchError):
    status_code = 429
    default_code = "CODE_ATTEMPTS_EXCEEDED"
    default_message = "Too many invalid attempts. Please request a new code."


# ============================================
# Server Errors
# ============================================

class ConfigurationError(ComplaintBoxError):
    """Required server configuration is missing or unsafe"""

    status_code = 500
    default_code = "CONFIGURATION_ERROR"
    default_message = "Server misconfiguration"
