from __future__ import annotations

from typing import Any

from deploywatch.domain.deployments import ControlPlaneServer, SourceInfo, TrackableUnit


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def _application_unit(server: ControlPlaneServer, project_name: str, app: dict[str, Any]) -> TrackableUnit | None:
    unit_id = _text(app.get("applicationId"))
    if unit_id is None:
        return None
    return TrackableUnit(
        server_id=server.id,
        server_name=server.name,
        server_url=server.url,
        project_name=project_name,
        unit_id=unit_id,
        name=_text(app.get("name")) or unit_id,
        app_name=_text(app.get("appName")) or "",
        kind="application",
        status=_text(app.get("applicationStatus")) or "idle",
        source=SourceInfo(
            repository=_text(app.get("repository")),
            owner=_text(app.get("owner")),
            branch=_text(app.get("branch")),
        ),
    )


def _compose_unit(server: ControlPlaneServer, project_name: str, compose: dict[str, Any]) -> TrackableUnit | None:
    unit_id = _text(compose.get("composeId"))
    if unit_id is None:
        return None
    # Compose groups carry no source-control metadata.
    return TrackableUnit(
        server_id=server.id,
        server_name=server.name,
        server_url=server.url,
        project_name=project_name,
        unit_id=unit_id,
        name=_text(compose.get("name")) or unit_id,
        app_name=_text(compose.get("appName")) or "",
        kind="compose",
        status=_text(compose.get("composeStatus")) or "idle",
    )


def flatten_projects(server: ControlPlaneServer, projects: list[dict[str, Any]]) -> list[TrackableUnit]:
    """Flatten project -> environment -> application/compose into one ordered unit list.

    Order follows the listing: projects, then environments, then applications before compose
    groups within each environment. Entries without an id are dropped.
    """
    units: list[TrackableUnit] = []
    for project in projects:
        project_name = _text(project.get("name")) or _text(project.get("projectId")) or ""
        for env in project.get("environments") or []:
            if not isinstance(env, dict):
                continue
            for app in env.get("applications") or []:
                if isinstance(app, dict) and (unit := _application_unit(server, project_name, app)):
                    units.append(unit)
            for compose in env.get("compose") or []:
                if isinstance(compose, dict) and (unit := _compose_unit(server, project_name, compose)):
                    units.append(unit)
    return units
