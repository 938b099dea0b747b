from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Any

import httpx

from deploywatch.core.config import get_settings
from deploywatch.core.errors import CachePurgeError
from deploywatch.services.resilience import RetryPolicy, retry_async
from deploywatch.services.telemetry import record_external_call


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurgeResult:
    domain: str
    zone_id: str
    zone_name: str


class CloudflareClient:
    """Minimal Cloudflare v4 client covering zone lookup and cache purges."""

    def __init__(
        self,
        api_token: str,
        *,
        base_url: str | None = None,
        policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_token:
            raise CachePurgeError("Cloudflare API token is missing")
        self._api_token = api_token
        self._base_url = (base_url or get_settings().cloudflare_api_base_url).rstrip("/")
        self._policy = policy
        self._transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_token}",
        }
        timeout_s = get_settings().ext_call_timeout_ms / 1000.0
        kwargs: dict[str, Any] = {"timeout": timeout_s}
        if self._transport is not None:
            kwargs["transport"] = self._transport

        async def _call() -> httpx.Response:
            async with httpx.AsyncClient(**kwargs) as client:
                response = await client.request(
                    method, f"{self._base_url}{path}", params=params, json=json_body, headers=headers
                )
            if response.status_code >= 500:
                response.raise_for_status()
            return response

        start = time.monotonic()
        try:
            response = await retry_async(_call, policy=self._policy)
            payload = response.json()
        except (httpx.HTTPError, ValueError, TimeoutError) as exc:
            record_external_call(
                integration="cloudflare",
                latency_ms=(time.monotonic() - start) * 1000.0,
                success=False,
            )
            raise CachePurgeError(f"Cloudflare request failed: {exc}") from exc

        success = isinstance(payload, dict) and bool(payload.get("success"))
        record_external_call(
            integration="cloudflare",
            latency_ms=(time.monotonic() - start) * 1000.0,
            success=success,
        )
        if not success:
            errors = payload.get("errors") if isinstance(payload, dict) else None
            messages = [str(item.get("message")) for item in errors or [] if isinstance(item, dict)]
            raise CachePurgeError(", ".join(messages) or f"Cloudflare API error: {response.status_code}")
        return payload.get("result")

    async def get_zone_by_name(self, name: str) -> dict[str, Any] | None:
        zones = await self._request("GET", "/zones", params={"name": name})
        if isinstance(zones, list) and zones and isinstance(zones[0], dict):
            return zones[0]
        return None

    async def purge_zone(self, zone_id: str) -> dict[str, Any]:
        result = await self._request(
            "POST", f"/zones/{zone_id}/purge_cache", json_body={"purge_everything": True}
        )
        return result if isinstance(result, dict) else {}

    async def purge_domain(self, domain: str) -> PurgeResult:
        """Purge the whole zone serving ``domain``.

        Walks from the full host towards the apex (``a.b.example.com`` -> ``b.example.com`` ->
        ``example.com``) and purges the first zone found.
        """
        labels = domain.strip(".").lower().split(".")
        zone: dict[str, Any] | None = None
        while len(labels) >= 2 and zone is None:
            zone = await self.get_zone_by_name(".".join(labels))
            if zone is None:
                labels = labels[1:]
        if zone is None:
            raise CachePurgeError(f"Zone not found for domain: {domain}")
        await self.purge_zone(str(zone["id"]))
        return PurgeResult(domain=domain, zone_id=str(zone["id"]), zone_name=str(zone.get("name") or ""))
