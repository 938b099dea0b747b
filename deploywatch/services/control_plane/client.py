from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
import json
import logging
from typing import Any, Callable

import httpx

from deploywatch.core.config import get_settings
from deploywatch.core.errors import ControlPlaneError
from deploywatch.domain.deployments import ControlPlaneServer, DeploymentRecord, TrackableUnit
from deploywatch.services.control_plane.topology import flatten_projects


logger = logging.getLogger(__name__)

_DATABASE_KEYS = ("postgres", "mysql", "mongo", "redis", "mariadb")


@dataclass(frozen=True)
class ConnectionCheck:
    # Summarize a reachability check for operator tooling.
    success: bool
    message: str
    project_count: int = 0
    application_count: int = 0
    database_count: int = 0


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_deployment(raw: Any) -> DeploymentRecord:
    # Validate one deployment entry; the rest of the engine only sees typed records.
    if not isinstance(raw, dict):
        raise ControlPlaneError("deployment entry is not an object")
    deployment_id = raw.get("deploymentId")
    status = raw.get("status")
    created_at = _parse_timestamp(raw.get("createdAt"))
    if not deployment_id or not isinstance(status, str) or created_at is None:
        raise ControlPlaneError(f"deployment entry missing required fields: {deployment_id!r}")
    return DeploymentRecord(
        deployment_id=str(deployment_id),
        title=str(raw.get("title") or ""),
        status=status,
        created_at=created_at,
        started_at=_parse_timestamp(raw.get("startedAt")),
        finished_at=_parse_timestamp(raw.get("finishedAt")),
        error_message=str(raw["errorMessage"]) if raw.get("errorMessage") else None,
    )


def unwrap_envelope(payload: Any) -> Any:
    # Results arrive as {"result": {"data": {"json": ...}}}; older servers omit the json layer.
    if not isinstance(payload, dict):
        raise ControlPlaneError("response envelope is not an object")
    result = payload.get("result")
    if not isinstance(result, dict):
        raise ControlPlaneError("response envelope has no result object")
    data = result.get("data")
    if isinstance(data, dict) and "json" in data:
        return data["json"]
    return data


def count_resources(projects: list[Any]) -> tuple[int, int]:
    # Applications and databases may sit on the project itself or on its environments.
    applications = 0
    databases = 0
    for project in projects:
        if not isinstance(project, dict):
            continue
        for container in [project, *(project.get("environments") or [])]:
            if not isinstance(container, dict):
                continue
            applications += len(container.get("applications") or [])
            databases += sum(len(container.get(key) or []) for key in _DATABASE_KEYS)
    return applications, databases


class ControlPlaneClient:
    """RPC client shared across every configured control plane.

    Every call has a hard timeout. Timeouts, network errors, non-2xx responses and malformed
    envelopes degrade to an empty result so one unreachable server never aborts a run. There
    are no retries here; the next scheduled run is the retry.
    """

    def __init__(
        self,
        *,
        timeout_s: float | None = None,
        recent_limit: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        client_factory: Callable[..., httpx.AsyncClient] | None = None,
    ) -> None:
        settings = get_settings()
        self._timeout_s = timeout_s if timeout_s is not None else settings.control_plane_timeout_s
        self._recent_limit = (
            recent_limit if recent_limit is not None else settings.control_plane_recent_deployments
        )
        self._transport = transport
        # Allow tests to inject clients without patching httpx globally.
        self._client_factory = client_factory or httpx.AsyncClient

    async def _get(
        self, server: ControlPlaneServer, method: str, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        query = {"input": json.dumps({"json": params or {}}, separators=(",", ":"))}
        headers = {"x-api-key": server.api_token, "Content-Type": "application/json"}
        kwargs: dict[str, Any] = {"timeout": self._timeout_s}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        url = f"{server.url.rstrip('/')}/api/trpc/{method}"

        async def _request() -> httpx.Response:
            async with self._client_factory(**kwargs) as client:
                return await client.get(url, params=query, headers=headers)

        # httpx timeouts bound each read, not the whole call; a trickling body must still stop here.
        return await asyncio.wait_for(_request(), timeout=self._timeout_s)

    async def call(self, server: ControlPlaneServer, method: str, params: dict[str, Any] | None = None) -> Any:
        """Invoke one RPC method, returning the unwrapped result or None on any failure."""
        try:
            response = await self._get(server, method, params)
            if not response.is_success:
                logger.warning(
                    "control_plane_bad_status server=%s method=%s status=%s",
                    server.name,
                    method,
                    response.status_code,
                )
                return None
            return unwrap_envelope(response.json())
        except (httpx.HTTPError, ValueError, ControlPlaneError, TimeoutError) as exc:
            logger.warning("control_plane_call_failed server=%s method=%s", server.name, method, exc_info=exc)
            return None

    async def list_projects(self, server: ControlPlaneServer) -> list[dict[str, Any]]:
        projects = await self.call(server, "project.all")
        if not isinstance(projects, list):
            return []
        return [project for project in projects if isinstance(project, dict)]

    async def list_trackable_units(self, server: ControlPlaneServer) -> list[TrackableUnit]:
        return flatten_projects(server, await self.list_projects(server))

    async def list_recent_deployments(
        self, server: ControlPlaneServer, unit: TrackableUnit
    ) -> list[DeploymentRecord]:
        if unit.kind == "application":
            params = {"applicationId": unit.unit_id}
        else:
            params = {"composeId": unit.unit_id}
        raw = await self.call(server, "deployment.all", params)
        if not isinstance(raw, list):
            return []
        records: list[DeploymentRecord] = []
        for entry in raw[: self._recent_limit]:
            try:
                records.append(parse_deployment(entry))
            except ControlPlaneError as exc:
                logger.warning(
                    "control_plane_deployment_skipped server=%s unit=%s reason=%s",
                    server.name,
                    unit.unit_id,
                    exc,
                )
        return records

    async def get_application_domains(self, server: ControlPlaneServer, application_id: str) -> list[str]:
        app = await self.call(server, "application.one", {"applicationId": application_id})
        if not isinstance(app, dict):
            return []
        hosts: list[str] = []
        for domain in app.get("domains") or []:
            host = domain.get("host") if isinstance(domain, dict) else None
            if isinstance(host, str) and host.strip():
                hosts.append(host.strip())
        return hosts

    async def check_connection(self, server: ControlPlaneServer) -> ConnectionCheck:
        # Surface the failure reason instead of degrading to an empty listing.
        try:
            response = await self._get(server, "project.all")
            if not response.is_success:
                return ConnectionCheck(
                    success=False,
                    message=f"HTTP {response.status_code}: {response.text[:100]}",
                )
            projects = unwrap_envelope(response.json())
        except (httpx.HTTPError, ValueError, ControlPlaneError, TimeoutError) as exc:
            return ConnectionCheck(success=False, message=f"Connection error: {exc}")
        if not isinstance(projects, list):
            projects = []
        applications, databases = count_resources(projects)
        return ConnectionCheck(
            success=True,
            message="Connected",
            project_count=len(projects),
            application_count=applications,
            database_count=databases,
        )
