"""Structured logging helpers (PHI-safe)."""

from typing import Any
from uuid import UUID


def build_log_context(
    *,
    user_id: str | UUID | None = None,
    role: str | None = None,
    conversation_id: str | UUID | None = None,
    appointment_id: str | UUID | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PHI-safe log context dict.

    Only identifiers go in here; message text, emails and tokens never do.
    """
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = str(user_id)
    if role:
        context["role"] = role
    if conversation_id:
        context["conversation_id"] = str(conversation_id)
    if appointment_id:
        context["appointment_id"] = str(appointment_id)
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
