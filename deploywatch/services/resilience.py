from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx

from deploywatch.core.config import get_settings


logger = logging.getLogger(__name__)


TransientException = (TimeoutError, OSError, httpx.TimeoutException, httpx.NetworkError)


def default_retryable(exc: Exception) -> bool:
    # Retry only transient network/timeout failures and upstream 5xx responses.
    if isinstance(exc, TransientException):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    status = getattr(exc, "status_code", None)
    return isinstance(status, int) and status >= 500


@dataclass(frozen=True)
class RetryPolicy:
    # Shared by every outbound side effect (notifications, cache purges); control-plane reads never retry.
    timeout_ms: int
    max_attempts: int
    backoff_ms: int


def default_retry_policy() -> RetryPolicy:
    settings = get_settings()
    return RetryPolicy(
        timeout_ms=settings.ext_call_timeout_ms,
        max_attempts=settings.ext_retry_max_attempts,
        backoff_ms=settings.ext_retry_backoff_ms,
    )


async def retry_async(
    func: Callable[[], Awaitable[Any]],
    *,
    policy: RetryPolicy | None = None,
    retryable: Callable[[Exception], bool] | None = None,
) -> Any:
    # Retry helper with jittered exponential backoff for transient failures only.
    policy = policy or default_retry_policy()
    retryable = retryable or default_retryable
    attempt = 1
    while True:
        try:
            return await asyncio.wait_for(func(), timeout=policy.timeout_ms / 1000.0)
        except Exception as exc:  # noqa: BLE001 - caller handles non-transient failures
            if attempt >= max(policy.max_attempts, 1) or not retryable(exc):
                raise
            jitter = random.uniform(0.5, 1.5)
            sleep_s = (policy.backoff_ms / 1000.0) * (2 ** (attempt - 1)) * jitter
            logger.debug("outbound_retry attempt=%s sleep_s=%.3f", attempt, sleep_s)
            await asyncio.sleep(sleep_s)
            attempt += 1
