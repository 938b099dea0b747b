from __future__ import annotations

from typing import Any

from deploywatch.domain.deployments import AppErrorEvent, DeploymentTransition, TrackableUnit


ERROR_TEXT_LIMIT = 500


def format_duration(seconds: int | None) -> str | None:
    if seconds is None:
        return None
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"
    minutes, remainder = divmod(seconds, 60)
    return f"{minutes}m {remainder}s"


def truncate(text: str, limit: int = ERROR_TEXT_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def _field(label: str, value: str) -> dict[str, str]:
    return {"type": "mrkdwn", "text": f"*{label}:*\n{value}"}


def _unit_fields(unit: TrackableUnit) -> list[dict[str, str]]:
    fields = [
        _field("Application", unit.name),
        _field("Project", unit.project_name or "-"),
        _field("Server", unit.server_name),
    ]
    repository = unit.source.display_repository
    if repository:
        fields.append(_field("Repository", repository))
    if unit.source.branch:
        fields.append(_field("Branch", unit.source.branch))
    return fields


def _payload(
    *,
    text: str,
    header: str,
    fields: list[dict[str, str]],
    unit: TrackableUnit,
    extra: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    blocks: list[dict[str, Any]] = [
        {"type": "header", "text": {"type": "plain_text", "text": header, "emoji": True}},
        {"type": "section", "fields": fields},
    ]
    blocks.extend(extra or [])
    if unit.server_url:
        blocks.append(
            {
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "Open control plane", "emoji": True},
                        "url": unit.server_url,
                    }
                ],
            }
        )
    # Slack shows the top-level text in push notifications and as the fallback.
    return {"text": text, "blocks": blocks}


def build_success_message(transition: DeploymentTransition) -> dict[str, Any]:
    unit = transition.unit
    fields = _unit_fields(unit)
    duration = format_duration(transition.deployment.duration_s)
    if duration:
        fields.append(_field("Duration", duration))
    return _payload(
        text=f"Deployment succeeded: {unit.name} on {unit.server_name}",
        header=":white_check_mark: Deployment succeeded",
        fields=fields,
        unit=unit,
    )


def build_failure_message(transition: DeploymentTransition) -> dict[str, Any]:
    unit = transition.unit
    fields = _unit_fields(unit)
    duration = format_duration(transition.deployment.duration_s)
    if duration:
        fields.append(_field("Duration", duration))
    extra: list[dict[str, Any]] = []
    if transition.deployment.error_message:
        extra.append(
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"*Error:*\n```{truncate(transition.deployment.error_message)}```",
                },
            }
        )
    return _payload(
        text=f"Deployment failed: {unit.name} on {unit.server_name}",
        header=":x: Deployment failed",
        fields=fields,
        unit=unit,
        extra=extra,
    )


def build_app_error_message(event: AppErrorEvent) -> dict[str, Any]:
    unit = event.unit
    fields = _unit_fields(unit)
    fields.append(_field("Status", unit.status))
    return _payload(
        text=f"Application in error: {unit.name} on {unit.server_name}",
        header=":rotating_light: Application in error state",
        fields=fields,
        unit=unit,
    )
