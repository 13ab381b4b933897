"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Generator

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from swasthya.core.config import Settings, get_settings
from swasthya.core.security import decode_access_token, extract_bearer_token
from swasthya.db.enums import UserRole
from swasthya.db.session import SessionLocal
from swasthya.schemas.auth import UserSession


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def load_session_from_token(db: Session, token: str, config: Settings) -> UserSession:
    """
    Resolve a bearer token to the caller's identity.

    Shared by the REST dependency and the websocket handshake.

    Raises:
        ValueError: token invalid, malformed, or the account no longer exists
    """
    from swasthya.db.models import model_for_role
    from swasthya.schemas.auth import TokenPayload

    try:
        payload = TokenPayload.model_validate(decode_access_token(token, config))
    except Exception:
        raise ValueError("Invalid token")

    user = db.get(model_for_role(payload.role), payload.sub)
    if not user:
        raise ValueError("User not found")

    return UserSession(
        user_id=user.id,
        role=payload.role,
        name=user.name,
        email=user.email,
        is_verified=user.is_verified,
    )


def get_current_session(
    request: Request,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
) -> UserSession:
    """
    Get authenticated caller from the Authorization header.

    Validates:
    - Bearer token present
    - JWT is valid and not expired
    - Account exists for the token's role

    Raises:
        HTTPException 401: Authentication failed
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    if not token:
        raise HTTPException(status_code=401, detail="Authorization token missing or invalid")

    try:
        return load_session_from_token(db, token, config)
    except ValueError as e:
        raise HTTPException(status_code=401, detail=str(e))


def require_role(role: UserRole):
    """
    Dependency factory for role-based authorization.

    Usage:
        @router.post("/", dependencies=[Depends(require_role(UserRole.PATIENT))])
    """
    def dependency(session: UserSession = Depends(get_current_session)) -> UserSession:
        if session.role != role:
            raise HTTPException(
                status_code=403,
                detail=f"Only {role.value}s can perform this action",
            )
        return session
    return dependency
