from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from deploywatch.core.config import get_settings
from deploywatch.persistence.db import SessionLocal
from deploywatch.persistence.repos.control_planes import list_active_servers
from deploywatch.persistence.repos.tenant_settings import get_tenant_settings
from deploywatch.services.cache.cloudflare import CloudflareClient
from deploywatch.services.cache.invalidation import CachePurgeConfig
from deploywatch.services.control_plane.client import ControlPlaneClient
from deploywatch.services.monitor.engine import MonitorConfig, MonitorSummary, run_reconciliation
from deploywatch.services.notifications.policy import NotificationPolicy
from deploywatch.services.notifications.slack import SlackChannel, SlackConfig
from deploywatch.services.reconciliation.store import TenantSettingsStateStore
from deploywatch.services.telemetry import record_monitor_run


logger = logging.getLogger(__name__)


async def run_deployment_monitor(
    tenant_id: str | None = None,
    *,
    session_factory: Callable[[], Any] | None = None,
    client: ControlPlaneClient | None = None,
) -> MonitorSummary:
    """Run one reconciliation cycle for a tenant using its stored settings and servers."""
    tenant_id = tenant_id or get_settings().monitor_tenant_id
    session_factory = session_factory or SessionLocal
    start = time.monotonic()

    async with session_factory() as session:
        tenant_settings = await get_tenant_settings(session, tenant_id)
        servers = await list_active_servers(session, tenant_id)

    policy = NotificationPolicy.from_settings(tenant_settings)
    if not policy.enabled:
        summary = MonitorSummary(success=False, message="Deployment notifications disabled")
        _record(summary, start)
        return summary

    slack = SlackConfig.from_settings(tenant_settings)
    if not slack.usable:
        logger.info("deployment_monitor_skipped tenant_id=%s reason=slack_not_configured", tenant_id)
        summary = MonitorSummary(success=False, message="Slack not configured")
        _record(summary, start)
        return summary

    purge_config = CachePurgeConfig.from_settings(tenant_settings)
    purger = CloudflareClient(purge_config.api_token) if purge_config.active else None

    summary = await run_reconciliation(
        servers=servers,
        policy=policy,
        channel=SlackChannel(slack),
        purger=purger,
        store=TenantSettingsStateStore(tenant_id, session_factory),
        client=client or ControlPlaneClient(),
        config=MonitorConfig.from_settings(),
    )
    _record(summary, start)
    return summary


def _record(summary: MonitorSummary, start: float) -> None:
    record_monitor_run(
        duration_ms=(time.monotonic() - start) * 1000.0,
        success=summary.success,
        stats=summary.stats_dict(),
    )


async def run_monitor_loop(
    tenant_id: str | None = None,
    *,
    iterations: int | None = None,
    runner: Callable[..., Any] | None = None,
) -> None:
    # Fixed cadence; a failed cycle is logged and the next one still runs.
    interval = max(1, int(get_settings().monitor_loop_interval_s))
    runner = runner or run_deployment_monitor
    completed = 0
    while iterations is None or completed < iterations:
        try:
            summary = await runner(tenant_id)
            logger.info("monitor_loop_cycle success=%s message=%s", summary.success, summary.message)
        except Exception:  # noqa: BLE001 - keep loop alive while surfacing errors in logs.
            logger.exception("monitor_loop_cycle_failed")
        completed += 1
        if iterations is None or completed < iterations:
            await asyncio.sleep(interval)
