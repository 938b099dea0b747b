from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable

from deploywatch.domain.deployments import AppErrorEvent, TrackableUnit
from deploywatch.services.reconciliation.state import ReconciliationState, to_epoch_ms


def scan_app_errors(
    state: ReconciliationState,
    units: Iterable[TrackableUnit],
    *,
    now: datetime,
    cooldown: timedelta,
) -> tuple[list[AppErrorEvent], int]:
    """Return app-error events past their cool-down plus the number of units in error.

    Emitting an event stamps the unit in state immediately, whether or not the alert is later
    delivered, so a unit produces at most one event per cool-down window.
    """
    now_ms = to_epoch_ms(now)
    cooldown_ms = int(cooldown.total_seconds() * 1000)
    events: list[AppErrorEvent] = []
    in_error = 0
    for unit in units:
        if not unit.in_error:
            continue
        in_error += 1
        last_notified = state.last_notified_at_by_unit.get(unit.key)
        if last_notified is not None and now_ms - last_notified <= cooldown_ms:
            continue
        state.last_notified_at_by_unit[unit.key] = now_ms
        events.append(AppErrorEvent(unit=unit, detected_at=now))
    return events, in_error
