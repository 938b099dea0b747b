from __future__ import annotations

import asyncio

import httpx
import pytest

from deploywatch.core.config import get_settings
from deploywatch.services.resilience import RetryPolicy, default_retry_policy, default_retryable, retry_async


@pytest.mark.asyncio
async def test_retry_async_retries_transient() -> None:
    calls = {"count": 0}

    async def flaky() -> str:
        calls["count"] += 1
        if calls["count"] < 2:
            raise TimeoutError("timeout")
        return "ok"

    result = await retry_async(flaky, policy=RetryPolicy(timeout_ms=100, max_attempts=2, backoff_ms=1))
    assert result == "ok"
    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_retry_async_does_not_retry_permanent_errors() -> None:
    calls = {"count": 0}

    async def broken() -> None:
        calls["count"] += 1
        raise ValueError("bad payload")

    with pytest.raises(ValueError):
        await retry_async(broken, policy=RetryPolicy(timeout_ms=100, max_attempts=3, backoff_ms=1))
    assert calls["count"] == 1


@pytest.mark.asyncio
async def test_retry_async_enforces_timeout() -> None:
    async def slow() -> None:
        await asyncio.sleep(1)

    with pytest.raises(asyncio.TimeoutError):
        await retry_async(slow, policy=RetryPolicy(timeout_ms=10, max_attempts=1, backoff_ms=1))


def test_default_retryable_only_for_server_errors() -> None:
    request = httpx.Request("POST", "https://hooks.test/x")
    server_error = httpx.HTTPStatusError("boom", request=request, response=httpx.Response(502, request=request))
    client_error = httpx.HTTPStatusError("nope", request=request, response=httpx.Response(400, request=request))

    assert default_retryable(server_error) is True
    assert default_retryable(client_error) is False
    assert default_retryable(httpx.ConnectError("refused", request=request)) is True


def test_default_policy_reads_settings(monkeypatch) -> None:
    monkeypatch.setenv("EXT_RETRY_MAX_ATTEMPTS", "4")
    get_settings.cache_clear()

    assert default_retry_policy().max_attempts == 4
