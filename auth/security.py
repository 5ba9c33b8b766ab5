"""
Security utilities for authentication.
Includes password hashing, signed access tokens and admin verification tickets.
"""
from datetime import timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
import bcrypt
from fastapi.security import HTTPBearer
import secrets

from core.exceptions import ConfigurationError
from core.logger import logger
from core.utils import utcnow
import config

ACCESS_TOKEN_TYPE = "access"
ADMIN_TICKET_TYPE = "admin_ticket"

# auto_error=False so a missing header reaches get_current_identity as MissingTokenError
security_optional = HTTPBearer(auto_error=False)


def get_secret_key() -> str:
    """
    Return the token signing key.

    Raises:
        ConfigurationError: If SECRET_KEY is unset or a known placeholder
    """
    secret_key = (config.SECRET_KEY or "").strip()
    if not secret_key:
        raise ConfigurationError("SECRET_KEY is not set; refusing to sign or verify tokens")
    if secret_key in config.INSECURE_SECRET_KEYS:
        raise ConfigurationError("SECRET_KEY is a well-known placeholder; set a real secret")
    return secret_key


# Password utilities
def verify_password(plain_password: Optional[str], hashed_password: Optional[str]) -> bool:
    """
    Verify a password against a bcrypt hash in constant time.

    Never raises: empty input, a malformed hash or a mismatch all return False.
    """
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    Note: Password validation should be done before calling this function.
    Use core.validators.validate_password() to check password requirements.
    """
    password_bytes = password.encode('utf-8')
    if len(password_bytes) > 72:
        raise ValueError("Password cannot be longer than 72 bytes. Please use a shorter password.")

    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password_bytes, salt).decode('utf-8')


# JWT Token utilities
def create_access_token(
    identity_id: str,
    role: str,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a signed access token carrying the identity id and its role.

    Args:
        identity_id: Identity primary key
        role: Variant the identity lives in
        expires_delta: Optional expiration (default JWT_EXPIRES_DAYS)

    Returns:
        Encoded JWT token
    """
    now = utcnow()
    expire = now + (expires_delta or timedelta(days=config.JWT_EXPIRES_DAYS))
    to_encode = {
        "sub": identity_id,
        "role": role,
        "exp": expire,
        "iat": now,
        "type": ACCESS_TOKEN_TYPE,
    }
    return jwt.encode(to_encode, get_secret_key(), algorithm=config.ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and verify an access token.

    Returns:
        Decoded payload, or None if the signature, expiry or type is wrong
    """
    secret_key = get_secret_key()
    try:
        payload = jwt.decode(token, secret_key, algorithms=[config.ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        return None
    return payload


def create_admin_ticket(email: str, expires_delta: Optional[timedelta] = None) -> Dict[str, Any]:
    """
    Create a signed ticket proving the admin behind ``email`` passed code verification.

    Returns:
        Dict with the encoded ``ticket``, its ``jti`` and ``expires_at``
    """
    now = utcnow()
    expire = now + (expires_delta or timedelta(minutes=config.ADMIN_TICKET_EXPIRE_MINUTES))
    jti = secrets.token_urlsafe(24)
    to_encode = {
        "sub": email,
        "jti": jti,
        "exp": expire,
        "iat": now,
        "type": ADMIN_TICKET_TYPE,
    }
    ticket = jwt.encode(to_encode, get_secret_key(), algorithm=config.ALGORITHM)
    return {"ticket": ticket, "jti": jti, "expires_at": expire}


def decode_admin_ticket(ticket: str) -> Optional[Dict[str, Any]]:
    """Decode an admin verification ticket; None if invalid, expired or of another type."""
    secret_key = get_secret_key()
    try:
        payload = jwt.decode(ticket, secret_key, algorithms=[config.ALGORITHM])
    except JWTError as e:
        logger.debug(f"Rejected admin ticket: {e}")
        return None
    if payload.get("type") != ADMIN_TICKET_TYPE or not payload.get("jti"):
        return None
    return payload
