from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import time
from typing import Any, Protocol

import httpx

from deploywatch.core.config import get_settings
from deploywatch.core.errors import NotificationChannelError
from deploywatch.services.notifications.policy import setting_flag
from deploywatch.services.resilience import RetryPolicy, retry_async
from deploywatch.services.telemetry import record_external_call


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryResult:
    # Summarize channel delivery for run stats and logs.
    sent: bool
    status_code: int | None
    message: str


class NotificationChannel(Protocol):
    async def send(self, payload: dict[str, Any]) -> DeliveryResult:
        ...


@dataclass(frozen=True)
class SlackConfig:
    enabled: bool
    webhook_url: str
    bot_token: str
    channel_id: str

    @property
    def uses_bot_api(self) -> bool:
        return bool(self.bot_token and self.channel_id)

    @property
    def usable(self) -> bool:
        # Either an incoming webhook or a bot token with a target channel.
        return self.enabled and (bool(self.webhook_url) or self.uses_bot_api)

    @classmethod
    def from_settings(cls, settings: dict[str, Any] | None) -> SlackConfig:
        settings = settings or {}
        return cls(
            enabled=setting_flag(settings, "slack_enabled", False),
            webhook_url=str(settings.get("slack_webhook_url") or ""),
            bot_token=str(settings.get("slack_bot_token") or ""),
            channel_id=str(settings.get("slack_channel_id") or ""),
        )


class SlackChannel:
    """Deliver Block Kit messages through the bot API or an incoming webhook.

    Failures are logged and reported in the result; ``send`` never raises.
    """

    def __init__(
        self,
        config: SlackConfig,
        *,
        api_url: str | None = None,
        policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not config.usable:
            raise NotificationChannelError("Slack channel is not configured")
        self._config = config
        self._api_url = api_url or get_settings().slack_api_url
        self._policy = policy
        self._transport = transport

    def _client(self, timeout_s: float) -> httpx.AsyncClient:
        if self._transport is not None:
            return httpx.AsyncClient(timeout=timeout_s, transport=self._transport)
        return httpx.AsyncClient(timeout=timeout_s)

    async def send(self, payload: dict[str, Any]) -> DeliveryResult:
        timeout_s = get_settings().ext_call_timeout_ms / 1000.0
        if self._config.uses_bot_api:
            url = self._api_url
            body = {**payload, "channel": self._config.channel_id}
            headers = {
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._config.bot_token}",
            }
        else:
            url = self._config.webhook_url
            body = payload
            headers = {"Content-Type": "application/json"}
        content = json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

        async def _call() -> httpx.Response:
            async with self._client(timeout_s) as client:
                response = await client.post(url, content=content, headers=headers)
            if response.status_code >= 500:
                response.raise_for_status()
            return response

        start = time.monotonic()
        try:
            response = await retry_async(_call, policy=self._policy)
        except Exception as exc:  # noqa: BLE001 - notification failures are non-fatal
            record_external_call(
                integration="slack",
                latency_ms=(time.monotonic() - start) * 1000.0,
                success=False,
            )
            logger.warning("slack_send_failed", exc_info=exc)
            return DeliveryResult(sent=False, status_code=None, message=str(exc))

        result = self._interpret(response)
        record_external_call(
            integration="slack",
            latency_ms=(time.monotonic() - start) * 1000.0,
            success=result.sent,
        )
        if not result.sent:
            logger.warning("slack_send_rejected status=%s reason=%s", response.status_code, result.message)
        return result

    def _interpret(self, response: httpx.Response) -> DeliveryResult:
        if not response.is_success:
            return DeliveryResult(
                sent=False,
                status_code=response.status_code,
                message=f"Slack responded with status {response.status_code}: {response.text[:200]}",
            )
        if not self._config.uses_bot_api:
            return DeliveryResult(sent=True, status_code=response.status_code, message="Delivered via webhook")
        # The bot API answers 200 even on failure; the verdict lives in the body.
        try:
            data = response.json()
        except ValueError:
            data = {}
        if isinstance(data, dict) and data.get("ok"):
            return DeliveryResult(sent=True, status_code=response.status_code, message="Delivered via bot API")
        error = data.get("error") if isinstance(data, dict) else None
        return DeliveryResult(
            sent=False,
            status_code=response.status_code,
            message=f"Slack API error: {error or 'unknown'}",
        )
