from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel

from deploywatch.apps.api.response import Envelope, envelope
from deploywatch.services.telemetry import (
    counters_snapshot,
    external_latency_by_integration,
    last_monitor_run,
)


router = APIRouter(prefix="/ops", tags=["ops"])


class MetricsResponse(BaseModel):
    last_run: dict[str, Any] | None
    counters: dict[str, int]
    external_calls: dict[str, dict[str, float | int | None]]


@router.get("/metrics", response_model=Envelope[MetricsResponse])
async def metrics(request: Request, window_s: int = Query(default=3600, ge=60, le=86400)) -> dict:
    # In-process view only; each worker or API replica reports its own samples.
    payload = MetricsResponse(
        last_run=last_monitor_run(),
        counters=counters_snapshot(),
        external_calls=external_latency_by_integration(window_s),
    )
    return envelope(request, payload)
