from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import Any, Protocol

from deploywatch.domain.deployments import ControlPlaneServer, TrackableUnit
from deploywatch.services.cache.cloudflare import PurgeResult
from deploywatch.services.control_plane.client import ControlPlaneClient
from deploywatch.services.notifications.policy import setting_flag


logger = logging.getLogger(__name__)


class CachePurger(Protocol):
    async def purge_domain(self, domain: str) -> PurgeResult:
        ...


@dataclass(frozen=True)
class CachePurgeConfig:
    enabled: bool
    api_token: str
    purge_on_deploy: bool

    @property
    def active(self) -> bool:
        return self.enabled and self.purge_on_deploy and bool(self.api_token)

    @classmethod
    def from_settings(cls, settings: dict[str, Any] | None) -> CachePurgeConfig:
        settings = settings or {}
        return cls(
            enabled=setting_flag(settings, "cloudflare_enabled", False),
            api_token=str(settings.get("cloudflare_api_token") or ""),
            purge_on_deploy=setting_flag(settings, "cloudflare_purge_on_deploy", True),
        )


@dataclass
class PurgeOutcome:
    purged: list[PurgeResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


async def invalidate_unit_cache(
    unit: TrackableUnit,
    *,
    server: ControlPlaneServer,
    client: ControlPlaneClient,
    purger: CachePurger,
) -> PurgeOutcome:
    """Purge the edge cache for every public domain of a single-application unit.

    Compose groups are skipped. Each domain is purged independently; one failure is recorded and
    does not block the others.
    """
    outcome = PurgeOutcome()
    if unit.kind != "application":
        return outcome
    domains = await client.get_application_domains(server, unit.unit_id)
    if not domains:
        return outcome
    results = await asyncio.gather(
        *(purger.purge_domain(domain) for domain in domains),
        return_exceptions=True,
    )
    for domain, result in zip(domains, results):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            outcome.errors.append(f"{domain}: {result}")
            logger.warning("cache_purge_failed unit=%s domain=%s reason=%s", unit.name, domain, result)
            continue
        outcome.purged.append(result)
        logger.info("cache_purged unit=%s domain=%s zone=%s", unit.name, domain, result.zone_name)
    return outcome
