from __future__ import annotations

from typing import Callable, TypeVar

import anyio

T = TypeVar("T")


class OperationTimeoutError(TimeoutError):
    """A blocking call did not finish within its deadline."""


async def run_with_timeout(func: Callable[..., T], *args, timeout: float) -> T:
    """
    Run a blocking callable in the threadpool and fail fast after `timeout` seconds.

    The worker thread is abandoned, not interrupted; the caller just stops waiting.
    Used for the account lookups on register/login so a slow or unreachable
    database returns 503 instead of hanging the request.
    """
    try:
        with anyio.fail_after(timeout):
            return await anyio.to_thread.run_sync(func, *args, abandon_on_cancel=True)
    except TimeoutError as exc:
        raise OperationTimeoutError(f"Operation timed out after {timeout}s") from exc
