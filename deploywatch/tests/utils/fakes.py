from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
from typing import Any

import httpx

from deploywatch.core.errors import CachePurgeError
from deploywatch.domain.deployments import ControlPlaneServer
from deploywatch.services.cache.cloudflare import PurgeResult
from deploywatch.services.notifications.slack import DeliveryResult


def iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def make_server(server_id: str = "1", name: str = "prod", host: str = "cp-prod.test") -> ControlPlaneServer:
    return ControlPlaneServer(id=server_id, name=name, url=f"https://{host}", api_token=f"token-{server_id}")


def application(app_id: str, name: str, *, status: str = "done", **extra: Any) -> dict[str, Any]:
    return {"applicationId": app_id, "name": name, "appName": f"{name}-app", "applicationStatus": status, **extra}


def compose(compose_id: str, name: str, *, status: str = "done") -> dict[str, Any]:
    return {"composeId": compose_id, "name": name, "appName": f"{name}-compose", "composeStatus": status}


def project(name: str, *, applications: list[dict] | None = None, composes: list[dict] | None = None) -> dict:
    return {
        "projectId": f"proj-{name}",
        "name": name,
        "environments": [
            {"environmentId": f"env-{name}", "applications": applications or [], "compose": composes or []}
        ],
    }


def deployment(
    deployment_id: str,
    status: str,
    *,
    created_at: datetime,
    started_at: datetime | None = None,
    finished_at: datetime | None = None,
    error_message: str | None = None,
) -> dict[str, Any]:
    return {
        "deploymentId": deployment_id,
        "title": f"deploy {deployment_id}",
        "status": status,
        "createdAt": iso(created_at),
        "startedAt": iso(started_at) if started_at else None,
        "finishedAt": iso(finished_at) if finished_at else None,
        "errorMessage": error_message,
    }


@dataclass
class FakeControlPlane:
    """In-memory RPC backend for one or more control planes, keyed by host."""

    projects: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    deployments: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    domains: dict[str, list[str]] = field(default_factory=dict)
    down_hosts: set[str] = field(default_factory=set)
    raw_bodies: dict[str, Any] = field(default_factory=dict)
    calls: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        method = request.url.path.rsplit("/", 1)[-1]
        params = json.loads(request.url.params.get("input") or "{}").get("json") or {}
        self.calls.append((host, method, params))
        if host in self.down_hosts:
            raise httpx.ConnectError("connection refused", request=request)
        if method in self.raw_bodies:
            return httpx.Response(200, json=self.raw_bodies[method])
        if method == "project.all":
            result: Any = self.projects.get(host, [])
        elif method == "deployment.all":
            unit_id = params.get("applicationId") or params.get("composeId")
            result = self.deployments.get(unit_id, [])
        elif method == "application.one":
            app_id = params.get("applicationId")
            result = {
                "applicationId": app_id,
                "domains": [{"host": host_name} for host_name in self.domains.get(app_id, [])],
            }
        else:
            return httpx.Response(404, json={"error": {"message": "not found"}})
        return httpx.Response(200, json={"result": {"data": {"json": result}}})


class RecordingChannel:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.payloads: list[dict[str, Any]] = []

    async def send(self, payload: dict[str, Any]) -> DeliveryResult:
        self.payloads.append(payload)
        if self.fail:
            return DeliveryResult(sent=False, status_code=500, message="boom")
        return DeliveryResult(sent=True, status_code=200, message="ok")

    @property
    def texts(self) -> list[str]:
        return [payload["text"] for payload in self.payloads]


class FakePurger:
    def __init__(self, *, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.domains: list[str] = []

    async def purge_domain(self, domain: str) -> PurgeResult:
        self.domains.append(domain)
        if domain in self.failing:
            raise CachePurgeError(f"Zone not found for domain: {domain}")
        return PurgeResult(domain=domain, zone_id=f"zone-{domain}", zone_name=domain)
