from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal


EventKind = Literal["success", "failure", "app_error"]


_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off", ""})


def setting_flag(settings: dict[str, Any], key: str, default: bool) -> bool:
    # Settings blobs written by forms may hold "false"; unknown values keep the default.
    value = settings.get(key)
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUE_STRINGS:
            return True
        if normalized in _FALSE_STRINGS:
            return False
    return default


@dataclass(frozen=True)
class NotificationPolicy:
    enabled: bool
    notify_on_success: bool
    notify_on_failure: bool
    notify_on_app_error: bool

    @classmethod
    def disabled(cls) -> NotificationPolicy:
        return cls(enabled=False, notify_on_success=False, notify_on_failure=True, notify_on_app_error=True)

    @classmethod
    def from_settings(cls, settings: dict[str, Any] | None) -> NotificationPolicy:
        # A tenant that never saved settings has not opted in.
        if settings is None:
            return cls.disabled()
        return cls(
            enabled=setting_flag(settings, "deployment_notifications_enabled", True),
            notify_on_success=setting_flag(settings, "deployment_notify_on_success", False),
            notify_on_failure=setting_flag(settings, "deployment_notify_on_failure", True),
            notify_on_app_error=setting_flag(settings, "deployment_notify_on_app_error", True),
        )

    def allows(self, kind: EventKind) -> bool:
        if not self.enabled:
            return False
        if kind == "success":
            return self.notify_on_success
        if kind == "failure":
            return self.notify_on_failure
        return self.notify_on_app_error
