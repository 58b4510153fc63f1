"""HTTP utilities providing retry/backoff semantics."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)


class RetryConfig:
    def __init__(self, *, attempts: int = 3, backoff_seconds: float = 0.5) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds


def _is_retryable(response: httpx.Response) -> bool:
    return response.status_code >= 500


async def request_with_retry(
    func: Callable[..., Awaitable[httpx.Response]],
    *args,
    retry_config: RetryConfig | None = None,
    **kwargs,
) -> httpx.Response:
    """Call ``func`` until it yields a non-5xx response or attempts run out.

    Client errors (4xx) are returned as-is so callers can read the platform's
    error envelope. The last transport error is re-raised when every attempt
    fails without a response.
    """
    config = retry_config or RetryConfig()
    last_exception: Exception | None = None
    response: httpx.Response | None = None

    for attempt in range(1, config.attempts + 1):
        try:
            response = await func(*args, **kwargs)
        except httpx.TransportError as exc:
            last_exception = exc
            response = None
            logger.debug("Attempt %d/%d failed: %s", attempt, config.attempts, exc)
        else:
            if not _is_retryable(response):
                return response
            logger.debug(
                "Attempt %d/%d returned HTTP %d", attempt, config.attempts, response.status_code
            )
        if attempt < config.attempts:
            await asyncio.sleep(config.backoff_seconds * attempt)

    if response is not None:
        return response
    if last_exception is not None:
        raise last_exception
    raise RuntimeError("Request failed without raising an exception")


__all__ = ["RetryConfig", "request_with_retry"]
