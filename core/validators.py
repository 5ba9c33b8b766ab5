"""
Input validation utilities for the Complaint Box API.
"""
from typing import Tuple, Optional

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6


def normalize_email(email: Optional[str]) -> str:
    """Trim and lowercase an email address."""
    return (email or "").strip().lower()


def normalize_username(username: Optional[str]) -> str:
    """Trim and lowercase a username."""
    return (username or "").strip().lower()


def validate_username(username: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Validate username.

    Requirements:
    - At least 3 characters after trimming
    - No whitespace inside
    """
    if not username or not username.strip():
        return False, "Username is required"
    username = username.strip()
    if len(username) < MIN_USERNAME_LENGTH:
        return False, f"Username must be at least {MIN_USERNAME_LENGTH} characters"
    if any(char.isspace() for char in username):
        return False, "Username cannot contain spaces"
    return True, None


def validate_password(password: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Validate password strength.

    Requirements:
    - Minimum 6 characters
    - Maximum 72 bytes (bcrypt limit)

    Args:
        password: Password to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not password:
        return False, "Password is required"

    if len(password) < MIN_PASSWORD_LENGTH:
        return False, f"Password must be at least {MIN_PASSWORD_LENGTH} characters"

    if len(password.encode("utf-8")) > 72:
        return False, "Password cannot be longer than 72 bytes. Please use a shorter password."

    return True, None


def validate_code(code: Optional[str]) -> Tuple[bool, Optional[str]]:
    """Validate that a one-time verification code was supplied."""
    if not code or not code.strip():
        return False, "Verification code is required"
    if len(code.strip()) > 32:
        return False, "Verification code is too long"
    return True, None
