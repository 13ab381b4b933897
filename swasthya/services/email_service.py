"""Transactional email sender (account verification, appointment updates).

Delivery goes through the Resend HTTP API. Every public send_* helper is
best-effort: failures are logged and swallowed so the request that triggered
the email never fails because of it.
"""

from __future__ import annotations

import html as html_module
import logging
from datetime import date

import httpx

from swasthya.core.config import Settings
from swasthya.services.http_service import DEFAULT_RETRY_STATUSES, request_with_retries

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_MAX_ATTEMPTS = 3
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0
RESEND_TIMEOUT_SECONDS = 20.0


class EmailDeliveryError(Exception):
    """Provider rejected the email or could not be reached."""


async def send_email(
    config: Settings,
    *,
    to_email: str,
    subject: str,
    html: str,
    text: str | None = None,
) -> str:
    """
    Send one email via Resend and return the provider message id.

    Raises:
        EmailDeliveryError: sender not configured, provider error, or network failure
    """
    if not config.email_enabled:
        raise EmailDeliveryError("Email sender not configured (missing RESEND_API_KEY)")

    payload: dict[str, object] = {
        "from": config.EMAIL_FROM,
        "to": [to_email],
        "subject": subject,
        "html": html,
    }
    if text:
        payload["text"] = text

    headers = {
        "Authorization": f"Bearer {config.RESEND_API_KEY}",
        "Content-Type": "application/json",
    }

    try:
        async with httpx.AsyncClient(timeout=RESEND_TIMEOUT_SECONDS) as client:

            async def request_fn() -> httpx.Response:
                return await client.post(RESEND_SEND_URL, headers=headers, json=payload)

            response = await request_with_retries(
                request_fn,
                max_attempts=RESEND_MAX_ATTEMPTS,
                base_delay=RESEND_RETRY_BASE_DELAY,
                max_delay=RESEND_RETRY_MAX_DELAY,
                retry_statuses=DEFAULT_RETRY_STATUSES,
            )
    except httpx.RequestError as exc:
        raise EmailDeliveryError(f"Email provider unreachable: {exc}") from exc

    if not 200 <= response.status_code < 300:
        raise EmailDeliveryError(f"Email provider returned {response.status_code}")

    message_id = response.json().get("id")
    if not isinstance(message_id, str) or not message_id:
        raise EmailDeliveryError("Email provider returned success without message id")
    return message_id


async def _send_quietly(config: Settings, **kwargs) -> bool:
    try:
        await send_email(config, **kwargs)
    except EmailDeliveryError as exc:
        logger.warning("Email not delivered: %s", exc)
        return False
    except Exception:
        logger.exception("Unexpected error sending email")
        return False
    return True


# =============================================================================
# Templates
# =============================================================================

def build_verification_url(config: Settings, token: str) -> str:
    return f"{config.FRONTEND_URL.rstrip('/')}/verify-email/{token}"


async def send_verification_email(
    config: Settings,
    *,
    name: str,
    email: str,
    token: str,
) -> bool:
    """Send the account verification link. Never raises."""
    url = build_verification_url(config, token)
    minutes = config.EMAIL_VERIFICATION_EXPIRES_MINUTES
    safe_name = html_module.escape(name)
    body = (
        f"<h2>Hi {safe_name},</h2>"
        "<p>Thank you for registering with SwasthyaConnect! "
        "Please verify your email address to complete your registration.</p>"
        f'<p><a href="{url}">Verify Email Address</a></p>'
        f"<p>This link will expire in {minutes} minutes.</p>"
        "<p>If you didn't create an account with SwasthyaConnect, please ignore this email.</p>"
    )
    text = (
        "Welcome to SwasthyaConnect! Please verify your email by opening this link: "
        f"{url}. This link will expire in {minutes} minutes."
    )
    return await _send_quietly(
        config,
        to_email=email,
        subject="Verify Your SwasthyaConnect Account",
        html=body,
        text=text,
    )


async def send_appointment_status_email(
    config: Settings,
    *,
    patient_name: str,
    patient_email: str,
    doctor_name: str,
    appointment_date: date,
    time_slot: str,
    status: str,
) -> bool:
    """Tell the patient their appointment changed status. Never raises."""
    when = f"{appointment_date.isoformat()} at {time_slot}"
    body = (
        f"<h2>Hi {html_module.escape(patient_name)},</h2>"
        f"<p>Your appointment with Dr. {html_module.escape(doctor_name)} on {when} "
        f"is now <strong>{status}</strong>.</p>"
    )
    if status == "confirmed":
        body += "<p>You can now chat with your doctor from the Messages page.</p>"
    return await _send_quietly(
        config,
        to_email=patient_email,
        subject=f"Appointment {status}: {when}",
        html=body,
        text=f"Your appointment with Dr. {doctor_name} on {when} is now {status}.",
    )
