"""Authentication endpoints: register, login, email verification, current user."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from swasthya.core.config import Settings, get_settings
from swasthya.core.deps import get_current_session, get_db
from swasthya.core.rate_limit import AUTH_LIMIT, limiter
from swasthya.core.security import create_access_token
from swasthya.core.structured_logging import build_log_context
from swasthya.db.models import model_for_role
from swasthya.schemas.auth import (
    DetailResponse,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    ResendVerificationRequest,
    UserRead,
    UserSession,
    VerifyEmailResponse,
)
from swasthya.services import auth_service, email_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=DetailResponse, status_code=201)
@limiter.limit(AUTH_LIMIT)
async def register(
    request: Request,
    body: RegisterRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    """
    Create a patient or doctor account.

    The account stays unverified until the emailed link is opened; the
    email is sent after the response and its failure does not fail
    registration.
    """
    try:
        account, token = await auth_service.register(db, body, config)
    except auth_service.UserAlreadyExistsError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except auth_service.DatabaseUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))

    background_tasks.add_task(
        email_service.send_verification_email,
        config,
        name=account.name,
        email=account.email,
        token=token,
    )
    logger.info(
        "Account registered",
        extra=build_log_context(user_id=account.id, role=account.role.value),
    )
    return DetailResponse(
        message="Registration successful. Please check your email to verify your account."
    )


@router.post("/login", response_model=LoginResponse)
@limiter.limit(AUTH_LIMIT)
async def login(
    request: Request,
    body: LoginRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    """Exchange credentials for a bearer token. Unverified accounts get a fresh link."""
    try:
        account = await auth_service.login(db, body.email, body.password, body.role, config)
    except auth_service.InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except auth_service.EmailNotVerifiedError as e:
        background_tasks.add_task(
            email_service.send_verification_email,
            config,
            name=e.account.name,
            email=e.account.email,
            token=e.verification_token,
        )
        # Background tasks only run on a returned response
        return JSONResponse(
            status_code=403,
            content={"detail": str(e)},
            background=background_tasks,
        )
    except auth_service.DatabaseUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))

    token = create_access_token(account.id, account.role.value, config)
    return LoginResponse(token=token, user=UserRead.model_validate(account))


@router.get("/verify-email/{token}", response_model=VerifyEmailResponse)
def verify_email(token: str, db: Session = Depends(get_db)):
    try:
        auth_service.verify_email(db, token)
    except auth_service.InvalidVerificationTokenError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return VerifyEmailResponse(verified=True)


@router.post("/resend-verification", response_model=DetailResponse)
@limiter.limit(AUTH_LIMIT)
async def resend_verification(
    request: Request,
    body: ResendVerificationRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    """Always answers the same way so the endpoint never reveals which emails exist."""
    refreshed = auth_service.refresh_verification(db, body.email, config)
    if refreshed:
        account, token = refreshed
        background_tasks.add_task(
            email_service.send_verification_email,
            config,
            name=account.name,
            email=account.email,
            token=token,
        )
    return DetailResponse(
        message="If an unverified account exists for this email, a new verification link has been sent."
    )


@router.get("/me", response_model=UserRead)
def get_me(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    account = db.get(model_for_role(session.role), session.user_id)
    if not account:
        raise HTTPException(status_code=401, detail="User not found")
    return UserRead.model_validate(account)
