"""Account service - registration, login and email verification.

Accounts live in two tables (patients, doctors) but an email address is
unique across both. The account lookup for register/login runs under a fixed
timeout so an unreachable database fails the request fast with 503; the
writes happen afterwards on the request session.
"""

import logging
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from swasthya.core.async_utils import OperationTimeoutError, run_with_timeout
from swasthya.core.config import Settings
from swasthya.core.security import generate_verification_token, hash_password, verify_password
from swasthya.core.structured_logging import build_log_context
from swasthya.db.base import as_utc, utcnow
from swasthya.db.enums import UserRole
from swasthya.db.models import Doctor, Patient, model_for_role
from swasthya.db.session import SessionLocal
from swasthya.schemas.auth import RegisterRequest

logger = logging.getLogger(__name__)

Account = Patient | Doctor

_PROFILE_FIELDS = {
    UserRole.PATIENT: ("age", "gender"),
    UserRole.DOCTOR: (
        "specialization",
        "qualification",
        "registration_number",
        "consultation_fee",
        "experience_years",
    ),
}


class AuthServiceError(Exception):
    """Base exception for account operations."""
    pass


class UserAlreadyExistsError(AuthServiceError):
    """Email is already registered to a verified account (or to the other role)."""
    pass


class InvalidCredentialsError(AuthServiceError):
    """Unknown email for the role, or wrong password."""
    pass


class EmailNotVerifiedError(AuthServiceError):
    """Login refused until the email is verified. Carries a fresh verification token."""

    def __init__(self, account: Account, verification_token: str):
        self.account = account
        self.verification_token = verification_token
        super().__init__("Please verify your email before logging in")


class InvalidVerificationTokenError(AuthServiceError):
    """Verification token unknown or expired."""
    pass


class DatabaseUnavailableError(AuthServiceError):
    """Account lookup timed out or the database refused the connection."""
    pass


# =============================================================================
# Lookups
# =============================================================================

def find_account_by_email(db: Session, email: str) -> Account | None:
    """Find the account holding an email in either table."""
    normalized = email.strip().lower()
    for model in (Patient, Doctor):
        account = db.scalar(select(model).where(model.email == normalized))
        if account:
            return account
    return None


def find_account_for_role(db: Session, email: str, role: UserRole) -> Account | None:
    model = model_for_role(role)
    return db.scalar(select(model).where(model.email == email.strip().lower()))


def find_account_by_verification_token(db: Session, token: str) -> Account | None:
    for model in (Patient, Doctor):
        account = db.scalar(select(model).where(model.verification_token == token))
        if account:
            return account
    return None


def _issue_verification_token(account: Account, config: Settings) -> str:
    token = generate_verification_token()
    account.verification_token = token
    account.verification_expires_at = utcnow() + timedelta(
        minutes=config.EMAIL_VERIFICATION_EXPIRES_MINUTES
    )
    return token


def _lookup(find, *args) -> Account | None:
    """
    Run one read-only lookup on its own short-lived session.

    This is what runs under the deadline. The worker thread may be abandoned
    on timeout, so it must never share the request's session.
    """
    lookup_db = SessionLocal()
    try:
        return find(lookup_db, *args)
    finally:
        lookup_db.close()


async def _with_db_timeout(func, *args, config: Settings):
    try:
        return await run_with_timeout(func, *args, timeout=config.AUTH_DB_TIMEOUT_SECONDS)
    except OperationTimeoutError as exc:
        logger.warning("Account database call timed out after %ss", config.AUTH_DB_TIMEOUT_SECONDS)
        raise DatabaseUnavailableError("Database not available. Please try again later.") from exc
    except OperationalError as exc:
        logger.exception("Account database call failed")
        raise DatabaseUnavailableError("Database not available. Please try again later.") from exc


def _attach(db: Session, found: Account | None) -> Account | None:
    """Reload a looked-up account on the request's session before writing to it."""
    if found is None:
        return None
    return db.get(type(found), found.id)


# =============================================================================
# Registration
# =============================================================================

async def register(db: Session, data: RegisterRequest, config: Settings) -> tuple[Account, str]:
    """
    Create an unverified account, or refresh a still-unverified one.

    Only the email lookup runs under AUTH_DB_TIMEOUT_SECONDS; nothing is
    written unless it finishes in time. Returns the account and the
    verification token to mail out.

    Raises:
        UserAlreadyExistsError: email taken by a verified account or the other role
        DatabaseUnavailableError: database timed out or is unreachable
    """
    email = data.email.strip().lower()
    found = await _with_db_timeout(_lookup, find_account_by_email, email, config=config)

    if found and (found.is_verified or found.role != data.role):
        raise UserAlreadyExistsError("Email already registered")

    existing = _attach(db, found)
    account = existing or model_for_role(data.role)(email=email)
    account.name = data.name
    account.password_hash = await run_in_threadpool(hash_password, data.password)
    account.phone = data.phone
    account.city = data.city
    for field in _PROFILE_FIELDS[data.role]:
        setattr(account, field, getattr(data, field))

    token = _issue_verification_token(account, config)
    if existing is None:
        db.add(account)
    db.commit()
    db.refresh(account)
    return account, token


# =============================================================================
# Login
# =============================================================================

async def login(
    db: Session, email: str, password: str, role: UserRole, config: Settings
) -> Account:
    """
    Check credentials for one role.

    Raises:
        InvalidCredentialsError: unknown email for this role or wrong password
        EmailNotVerifiedError: credentials valid but email unverified (token refreshed)
        DatabaseUnavailableError: database timed out or is unreachable
    """
    found = await _with_db_timeout(_lookup, find_account_for_role, email, role, config=config)
    if not found or not await run_in_threadpool(verify_password, password, found.password_hash):
        raise InvalidCredentialsError("Invalid email or password")

    account = _attach(db, found)
    if account is None:
        raise InvalidCredentialsError("Invalid email or password")

    if not account.is_verified:
        token = _issue_verification_token(account, config)
        db.commit()
        raise EmailNotVerifiedError(account, token)

    return account


# =============================================================================
# Verification
# =============================================================================

def verify_email(db: Session, token: str) -> Account:
    """
    Mark the account owning `token` as verified and clear the token.

    Raises:
        InvalidVerificationTokenError: token unknown or expired
    """
    account = find_account_by_verification_token(db, token)
    if not account:
        raise InvalidVerificationTokenError("Verification link is invalid or has expired")

    expires_at = as_utc(account.verification_expires_at)
    if expires_at is None or expires_at < utcnow():
        raise InvalidVerificationTokenError("Verification link is invalid or has expired")

    account.is_verified = True
    account.verification_token = None
    account.verification_expires_at = None
    db.commit()
    logger.info("Email verified", extra=build_log_context(user_id=account.id, role=account.role.value))
    return account


def refresh_verification(db: Session, email: str, config: Settings) -> tuple[Account, str] | None:
    """
    Issue a new verification token for an unverified account.

    Returns None when there is nothing to send (unknown or already verified),
    so callers can answer generically without revealing which.
    """
    account = find_account_by_email(db, email)
    if not account or account.is_verified:
        return None
    token = _issue_verification_token(account, config)
    db.commit()
    return account, token
