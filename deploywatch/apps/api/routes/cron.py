from __future__ import annotations

import logging
from typing import Awaitable, Callable

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from deploywatch.services.monitor.engine import MonitorSummary
from deploywatch.services.monitor.service import run_deployment_monitor


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])

MonitorRunner = Callable[[], Awaitable[MonitorSummary]]


def get_monitor_runner() -> MonitorRunner:
    # Tests swap the runner through dependency_overrides.
    return run_deployment_monitor


@router.get("/deployment-monitor")
async def deployment_monitor(runner: MonitorRunner = Depends(get_monitor_runner)) -> JSONResponse:
    """Run one reconciliation cycle on demand, typically from an external scheduler.

    Disabled or unconfigured tenants are a normal outcome and still answer 200 with
    ``success: false``.
    """
    try:
        summary = await runner()
    except Exception as exc:  # noqa: BLE001 - schedulers only need a stable failure body
        logger.exception("deployment_monitor_failed")
        return JSONResponse(content={"success": False, "message": str(exc)}, status_code=500)
    return JSONResponse(content=summary.to_json(), status_code=200)
