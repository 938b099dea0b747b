from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Awaitable, Callable, Sequence

from deploywatch.core.config import get_settings
from deploywatch.domain.deployments import ControlPlaneServer, DeploymentTransition
from deploywatch.services.cache.invalidation import CachePurger, invalidate_unit_cache
from deploywatch.services.control_plane.client import ControlPlaneClient
from deploywatch.services.control_plane.fetcher import fetch_recent_deployments, list_all_units
from deploywatch.services.notifications.dispatcher import MonitorEvent, dispatch
from deploywatch.services.notifications.policy import NotificationPolicy
from deploywatch.services.notifications.slack import NotificationChannel
from deploywatch.services.reconciliation.detector import detect_transition
from deploywatch.services.reconciliation.error_scanner import scan_app_errors
from deploywatch.services.reconciliation.store import ReconciliationStateStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonitorConfig:
    batch_size: int
    lookback: timedelta
    app_error_cooldown: timedelta
    app_error_retention: timedelta
    max_tracked_deployments: int

    @classmethod
    def from_settings(cls) -> MonitorConfig:
        settings = get_settings()
        return cls(
            batch_size=settings.monitor_batch_size,
            lookback=timedelta(seconds=settings.monitor_lookback_s),
            app_error_cooldown=timedelta(seconds=settings.app_error_cooldown_s),
            app_error_retention=timedelta(seconds=settings.app_error_retention_s),
            max_tracked_deployments=settings.deployment_state_max_entries,
        )


@dataclass
class MonitorStats:
    deployments_checked: int = 0
    apps_in_error: int = 0
    notifications_sent: int = 0
    caches_purged: int = 0
    servers_checked: int = 0

    def to_json(self) -> dict[str, int]:
        return {
            "deploymentsChecked": self.deployments_checked,
            "appsInError": self.apps_in_error,
            "notificationsSent": self.notifications_sent,
            "cachesPurged": self.caches_purged,
            "serversChecked": self.servers_checked,
        }


@dataclass
class MonitorSummary:
    success: bool
    message: str
    stats: MonitorStats | None = None
    state_saved: bool = field(default=False, repr=False)

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.stats is not None:
            payload["stats"] = self.stats.to_json()
        return payload

    def stats_dict(self) -> dict[str, int]:
        return asdict(self.stats) if self.stats is not None else {}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def _gather_side_effects(effects: Sequence[Awaitable[tuple[int, int]]]) -> tuple[int, int]:
    # Each effect reports (notifications_sent, caches_purged); one failure never cancels the rest.
    sent = 0
    purged = 0
    for outcome in await asyncio.gather(*effects, return_exceptions=True):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.warning("monitor_side_effect_failed", exc_info=outcome)
            continue
        sent += outcome[0]
        purged += outcome[1]
    return sent, purged


async def run_reconciliation(
    *,
    servers: Sequence[ControlPlaneServer],
    policy: NotificationPolicy,
    channel: NotificationChannel | None,
    store: ReconciliationStateStore,
    client: ControlPlaneClient,
    purger: CachePurger | None = None,
    config: MonitorConfig | None = None,
    clock: Callable[[], datetime] | None = None,
) -> MonitorSummary:
    """Run one poll-compare-notify-persist cycle across every control plane.

    A disabled policy or a missing channel short-circuits with ``success=False`` before any
    remote call. State is loaded once, mutated in memory, evicted, and saved as one snapshot
    at the end; a failed save is logged and the next run starts from the previous snapshot.
    """
    if not policy.enabled:
        logger.info("deployment_monitor_skipped reason=disabled")
        return MonitorSummary(success=False, message="Deployment notifications disabled")
    if channel is None:
        logger.info("deployment_monitor_skipped reason=channel_not_configured")
        return MonitorSummary(success=False, message="Notification channel not configured")

    config = config or MonitorConfig.from_settings()
    now = (clock or _utc_now)()
    stats = MonitorStats(servers_checked=len(servers))
    state = (await store.load()).copy()
    servers_by_id = {server.id: server for server in servers}

    units = await list_all_units(client, servers)
    fetched = await fetch_recent_deployments(client, servers, units, batch_size=config.batch_size)

    async def _purge(transition: DeploymentTransition) -> tuple[int, int]:
        server = servers_by_id.get(transition.unit.server_id)
        if purger is None or server is None:
            return 0, 0
        outcome = await invalidate_unit_cache(transition.unit, server=server, client=client, purger=purger)
        return 0, len(outcome.purged)

    async def _on_event(event: MonitorEvent) -> tuple[int, int]:
        return int(await dispatch(event, policy, channel)), 0

    effects: list[Awaitable[tuple[int, int]]] = []
    for item in fetched:
        stats.deployments_checked += 1
        transition = detect_transition(state, item, now=now, lookback=config.lookback)
        if transition is not None:
            logger.info(
                "deployment_transition kind=%s unit=%s server=%s deployment=%s from=%s",
                transition.kind,
                transition.unit.name,
                transition.unit.server_name,
                transition.deployment.deployment_id,
                transition.previous_status,
            )
            # Purge and alert are independent effects; a failed purge leaves the alert intact.
            if transition.kind == "success":
                effects.append(_purge(transition))
            effects.append(_on_event(transition))

    if policy.notify_on_app_error:
        events, in_error = scan_app_errors(state, units, now=now, cooldown=config.app_error_cooldown)
        stats.apps_in_error = in_error
        effects.extend(_on_event(event) for event in events)

    stats.notifications_sent, stats.caches_purged = await _gather_side_effects(effects)

    state.evict(
        now=now,
        notified_retention_s=int(config.app_error_retention.total_seconds()),
        max_deployments=config.max_tracked_deployments,
    )
    message = f"Monitor complete: {stats.notifications_sent} notifications sent, {stats.caches_purged} caches purged"
    saved = True
    try:
        await store.save(state)
    except Exception as exc:  # noqa: BLE001 - the next run re-derives from the last good snapshot
        saved = False
        logger.error("reconciliation_state_save_failed", exc_info=exc)
        message = f"{message} (state not persisted)"

    logger.info(
        "deployment_monitor_complete deployments=%s apps_in_error=%s notifications=%s caches_purged=%s servers=%s",
        stats.deployments_checked,
        stats.apps_in_error,
        stats.notifications_sent,
        stats.caches_purged,
        stats.servers_checked,
    )
    return MonitorSummary(success=True, message=message, stats=stats, state_saved=saved)
