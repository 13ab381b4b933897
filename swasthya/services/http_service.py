"""Outbound HTTP with retry/backoff (used for the email provider)."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

DEFAULT_RETRY_STATUSES = {429, 500, 502, 503, 504}

# Upper bound on a provider-supplied Retry-After, in seconds
MAX_RETRY_AFTER = 30.0


def _backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Exponential backoff with up to 50% jitter."""
    delay = min(max_delay, base_delay * (2**attempt))
    if delay:
        delay += random.uniform(0, delay / 2)
    return delay


def _retry_after(response: httpx.Response) -> float | None:
    """Seconds from a numeric Retry-After header, if the provider sent one."""
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    if seconds < 0:
        return None
    return min(seconds, MAX_RETRY_AFTER)


async def request_with_retries(
    request_fn: Callable[[], Awaitable[httpx.Response]],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    retry_statuses: set[int] | None = None,
) -> httpx.Response:
    """
    Call `request_fn` until it returns a non-retryable response.

    Network errors and `retry_statuses` are retried up to `max_attempts` in
    total. A Retry-After header on a retryable response replaces the computed
    backoff. The last response is returned as is; the last network error is
    re-raised.
    """
    statuses = retry_statuses or DEFAULT_RETRY_STATUSES
    response: httpx.Response | None = None

    for attempt in range(max_attempts):
        is_last = attempt >= max_attempts - 1
        try:
            response = await request_fn()
        except httpx.RequestError as exc:
            if is_last:
                raise
            logger.warning("HTTP request failed (attempt %d), retrying", attempt + 1, exc_info=exc)
            delay = _backoff_delay(attempt, base_delay, max_delay)
        else:
            if response.status_code not in statuses or is_last:
                return response
            logger.warning(
                "HTTP request returned %s (attempt %d), retrying",
                response.status_code,
                attempt + 1,
            )
            delay = _retry_after(response)
            if delay is None:
                delay = _backoff_delay(attempt, base_delay, max_delay)

        if delay:
            await asyncio.sleep(delay)

    return response
