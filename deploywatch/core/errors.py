from __future__ import annotations


class DeployWatchError(Exception):
    """Base error for deploywatch."""


class ControlPlaneError(DeployWatchError):
    """Control plane returned an envelope that could not be parsed."""


class NotificationChannelError(DeployWatchError):
    """Notification channel missing configuration or rejected a delivery."""


class CachePurgeError(DeployWatchError):
    """Edge cache provider failure, including unresolvable zones."""


class StateCorruptError(DeployWatchError):
    """Persisted reconciliation state could not be parsed."""


class DatabaseError(DeployWatchError):
    """Database layer failure."""
