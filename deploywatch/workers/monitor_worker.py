from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from deploywatch.core.config import get_settings
from deploywatch.core.logging import configure_logging
from deploywatch.services.monitor.service import run_deployment_monitor

logger = logging.getLogger(__name__)


def schedule_minutes(every: int) -> set[int]:
    # arq cron matches explicit minute values; 60 or more collapses to the top of the hour.
    step = max(1, int(every))
    if step >= 60:
        return {0}
    return set(range(0, 60, step))


async def deployment_monitor_job(ctx) -> dict:
    summary = await run_deployment_monitor(ctx.get("tenant_id"))
    logger.info("deployment_monitor_job success=%s message=%s", summary.success, summary.message)
    return summary.to_json()


async def _startup(ctx) -> None:
    configure_logging()
    ctx["tenant_id"] = get_settings().monitor_tenant_id


class WorkerSettings:
    # Keep worker settings as class attributes for ARQ CLI compatibility.
    settings = get_settings()
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.monitor_queue_name
    functions = [deployment_monitor_job]
    # Overlapping runs would double-notify; unique keeps one cycle in flight.
    cron_jobs = [
        cron(
            deployment_monitor_job,
            minute=schedule_minutes(settings.monitor_schedule_minutes),
            run_at_startup=False,
            unique=True,
            max_tries=1,
        )
    ]
    on_startup = _startup
