from __future__ import annotations

import logging
from typing import Union

from deploywatch.domain.deployments import AppErrorEvent, DeploymentTransition
from deploywatch.services.notifications.messages import (
    build_app_error_message,
    build_failure_message,
    build_success_message,
)
from deploywatch.services.notifications.policy import EventKind, NotificationPolicy
from deploywatch.services.notifications.slack import NotificationChannel


logger = logging.getLogger(__name__)

MonitorEvent = Union[DeploymentTransition, AppErrorEvent]


def event_kind(event: MonitorEvent) -> EventKind:
    if isinstance(event, AppErrorEvent):
        return "app_error"
    return event.kind


async def dispatch(event: MonitorEvent, policy: NotificationPolicy, channel: NotificationChannel) -> bool:
    """Send one alert if the policy enables its kind; return whether it was delivered.

    Disabled kinds are an intentional no-op. Delivery failures are already logged by the
    channel and never undo state changes made during detection.
    """
    kind = event_kind(event)
    if not policy.allows(kind):
        return False
    if isinstance(event, AppErrorEvent):
        payload = build_app_error_message(event)
    elif kind == "success":
        payload = build_success_message(event)
    else:
        payload = build_failure_message(event)
    result = await channel.send(payload)
    if result.sent:
        logger.info(
            "notification_sent kind=%s unit=%s server=%s",
            kind,
            event.unit.name,
            event.unit.server_name,
        )
    return result.sent
