from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from deploywatch.core.errors import StateCorruptError


def to_epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


@dataclass
class ReconciliationState:
    """Everything the monitor remembers between runs.

    ``last_status_by_deployment`` maps deployment keys to the last observed status. Dict
    insertion order is the eviction order: updating an existing key keeps its slot.
    ``last_notified_at_by_unit`` maps unit keys to the epoch-millisecond time of the last
    app-error alert.
    """

    last_status_by_deployment: dict[str, str] = field(default_factory=dict)
    last_notified_at_by_unit: dict[str, int] = field(default_factory=dict)

    def copy(self) -> ReconciliationState:
        return ReconciliationState(
            last_status_by_deployment=dict(self.last_status_by_deployment),
            last_notified_at_by_unit=dict(self.last_notified_at_by_unit),
        )

    def evict(self, *, now: datetime, notified_retention_s: int, max_deployments: int) -> None:
        # Runs after detection so this cycle still saw the stale entries.
        cutoff_ms = to_epoch_ms(now) - notified_retention_s * 1000
        self.last_notified_at_by_unit = {
            key: ts for key, ts in self.last_notified_at_by_unit.items() if ts >= cutoff_ms
        }
        overflow = len(self.last_status_by_deployment) - max(0, max_deployments)
        if overflow > 0:
            for key in list(self.last_status_by_deployment)[:overflow]:
                del self.last_status_by_deployment[key]

    def to_json(self) -> dict[str, Any]:
        # JSONB reorders object keys, so deployment order travels as a list of pairs.
        return {
            "last_status_by_deployment": [
                [key, status] for key, status in self.last_status_by_deployment.items()
            ],
            "last_notified_at_by_unit": dict(self.last_notified_at_by_unit),
        }

    @classmethod
    def from_json(cls, raw: Any) -> ReconciliationState:
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise StateCorruptError("deployment_state must be an object")
        statuses = raw.get("last_status_by_deployment") or []
        notified = raw.get("last_notified_at_by_unit") or {}
        # Accept a plain mapping for hand-edited blobs; its order is taken as written.
        if isinstance(statuses, dict):
            statuses = list(statuses.items())
        if not isinstance(statuses, list) or not isinstance(notified, dict):
            raise StateCorruptError("deployment_state has an unexpected shape")
        state = cls()
        for entry in statuses:
            if not isinstance(entry, (list, tuple)) or len(entry) != 2:
                raise StateCorruptError(f"invalid deployment status entry: {entry!r}")
            key, status = entry
            state.last_status_by_deployment[str(key)] = str(status)
        for key, value in notified.items():
            try:
                state.last_notified_at_by_unit[str(key)] = int(value)
            except (TypeError, ValueError) as exc:
                raise StateCorruptError(f"invalid notification timestamp for {key!r}") from exc
        return state
