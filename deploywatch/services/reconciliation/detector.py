from __future__ import annotations

from datetime import datetime, timedelta, timezone

from deploywatch.domain.deployments import (
    DEPLOYMENT_DONE,
    DEPLOYMENT_ERROR,
    DeploymentTransition,
    UnitDeployment,
)
from deploywatch.services.reconciliation.state import ReconciliationState


def _aware(moment: datetime) -> datetime:
    # Control planes occasionally emit naive timestamps; treat them as UTC.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def detect_transition(
    state: ReconciliationState,
    item: UnitDeployment,
    *,
    now: datetime,
    lookback: timedelta,
) -> DeploymentTransition | None:
    """Compare one fetched deployment with its recorded status and update the state.

    Deployments created before the look-back window are ignored entirely. A deployment seen for
    the first time is recorded without an event. Only a change into ``done`` or ``error`` is
    reported; other changes just refresh the recorded status.
    """
    deployment = item.deployment
    if _aware(deployment.created_at) < _aware(now) - lookback:
        return None

    key = item.key
    previous = state.last_status_by_deployment.get(key)
    state.last_status_by_deployment[key] = deployment.status
    if previous is None or previous == deployment.status:
        return None
    if deployment.status == DEPLOYMENT_DONE:
        kind = "success"
    elif deployment.status == DEPLOYMENT_ERROR:
        kind = "failure"
    else:
        return None
    return DeploymentTransition(kind=kind, unit=item.unit, deployment=deployment, previous_status=previous)
