from deploywatch.services.notifications.dispatcher import MonitorEvent, dispatch, event_kind
from deploywatch.services.notifications.policy import NotificationPolicy
from deploywatch.services.notifications.slack import (
    DeliveryResult,
    NotificationChannel,
    SlackChannel,
    SlackConfig,
)

__all__ = [
    "DeliveryResult",
    "MonitorEvent",
    "NotificationChannel",
    "NotificationPolicy",
    "SlackChannel",
    "SlackConfig",
    "dispatch",
    "event_kind",
]
