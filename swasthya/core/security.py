"""Security utilities for access tokens, password hashing and verification tokens."""

import secrets
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt
from werkzeug.security import check_password_hash, generate_password_hash

from swasthya.core.config import Settings, settings


# =============================================================================
# Access Token (JWT bearer)
# =============================================================================

def create_access_token(
    user_id: UUID,
    role: str,
    config: Settings | None = None,
) -> str:
    """
    Create signed access JWT.

    Always signs with current secret (JWT_SECRET).
    Token carries the user id and the account kind (patient/doctor).
    """
    config = config or settings
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(hours=config.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm="HS256")


def decode_access_token(token: str, config: Settings | None = None) -> dict:
    """
    Decode and verify access JWT.

    Tries current secret first, then previous (for rotation support).

    Raises:
        jwt.InvalidTokenError: If token invalid with all secrets
    """
    config = config or settings
    last_error = None
    for secret in config.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            last_error = e
            continue
    raise last_error  # type: ignore


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an 'Authorization: Bearer <token>' header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


# =============================================================================
# Passwords
# =============================================================================

def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return check_password_hash(password_hash, password)


# =============================================================================
# Email verification
# =============================================================================

def generate_verification_token() -> str:
    """Generate cryptographically random token (32 bytes, hex)."""
    return secrets.token_hex(32)
