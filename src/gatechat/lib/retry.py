"""Retry utilities for OAuth HTTP calls using tenacity.

Only transient failures are retried: timeouts, connection errors and 5xx
responses. A 4xx response is an answer, not a glitch (a 404 during
metadata discovery just means "try the next well-known URL"), so it is
raised immediately.

Examples:
    Retry a metadata fetch with exponential backoff::

        >>> @with_retry(max_attempts=3)
        ... async def fetch_metadata(client: httpx.AsyncClient, url: str) -> dict[str, object]:
        ...     response = await client.get(url)
        ...     response.raise_for_status()
        ...     return response.json()
"""

from collections.abc import Callable

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)


def is_transient(exc: BaseException) -> bool:
    """True for network-level failures and server-side (5xx) errors."""
    if isinstance(exc, (httpx.TimeoutException, httpx.ConnectError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


def with_retry[T](
    max_attempts: int = 3,
    min_wait: float = 0.5,
    max_wait: float = 4,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for retrying async functions with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts, including the first.
        min_wait: Minimum wait time between retries in seconds.
        max_wait: Maximum wait time between retries in seconds.

    Returns:
        Decorator that wraps the function with retry logic. The last
        exception is re-raised once attempts are exhausted.
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=0.5, min=min_wait, max=max_wait),
        retry=retry_if_exception(is_transient),
        reraise=True,
    )
