from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal


UnitKind = Literal["application", "compose"]
TransitionKind = Literal["success", "failure"]

DEPLOYMENT_DONE = "done"
DEPLOYMENT_ERROR = "error"
APPLICATION_ERROR = "error"


@dataclass(frozen=True, slots=True)
class ControlPlaneServer:
    # Connection details for one control plane; reachability is re-derived every run.
    id: str
    name: str
    url: str
    api_token: str


@dataclass(frozen=True, slots=True)
class SourceInfo:
    repository: str | None = None
    owner: str | None = None
    branch: str | None = None

    @property
    def display_repository(self) -> str | None:
        if not self.repository:
            return None
        if self.owner:
            return f"{self.owner}/{self.repository}"
        return self.repository


@dataclass(frozen=True, slots=True)
class TrackableUnit:
    # One deployable thing on one server, flattened from the project/environment tree.
    server_id: str
    server_name: str
    server_url: str
    project_name: str
    unit_id: str
    name: str
    app_name: str
    kind: UnitKind
    status: str
    source: SourceInfo = field(default_factory=SourceInfo)

    @property
    def key(self) -> str:
        return unit_key(self.server_id, self.unit_id)

    @property
    def in_error(self) -> bool:
        return self.status == APPLICATION_ERROR


@dataclass(frozen=True, slots=True)
class DeploymentRecord:
    deployment_id: str
    title: str
    status: str
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error_message: str | None = None

    @property
    def duration_s(self) -> int | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return round((self.finished_at - self.started_at).total_seconds())


@dataclass(frozen=True, slots=True)
class UnitDeployment:
    unit: TrackableUnit
    deployment: DeploymentRecord

    @property
    def key(self) -> str:
        return deployment_key(self.unit.server_id, self.deployment.deployment_id)


@dataclass(frozen=True, slots=True)
class DeploymentTransition:
    kind: TransitionKind
    unit: TrackableUnit
    deployment: DeploymentRecord
    previous_status: str


@dataclass(frozen=True, slots=True)
class AppErrorEvent:
    unit: TrackableUnit
    detected_at: datetime


def deployment_key(server_id: str, deployment_id: str) -> str:
    return f"{server_id}-{deployment_id}"


def unit_key(server_id: str, unit_id: str) -> str:
    return f"{server_id}-{unit_id}"
