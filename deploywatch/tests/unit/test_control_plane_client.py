from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
import json
import time

import httpx
import pytest

from deploywatch.core.errors import ControlPlaneError
from deploywatch.services.control_plane.client import (
    ControlPlaneClient,
    parse_deployment,
    unwrap_envelope,
)
from deploywatch.services.control_plane.topology import flatten_projects
from deploywatch.tests.utils.fakes import (
    FakeControlPlane,
    application,
    compose,
    deployment,
    make_server,
    project,
)


NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


def test_unwrap_envelope_prefers_json_layer() -> None:
    assert unwrap_envelope({"result": {"data": {"json": [1, 2]}}}) == [1, 2]
    assert unwrap_envelope({"result": {"data": [3]}}) == [3]
    with pytest.raises(ControlPlaneError):
        unwrap_envelope(["not", "an", "object"])
    with pytest.raises(ControlPlaneError):
        unwrap_envelope({"result": "unexpected"})


def test_parse_deployment_requires_id_status_and_created_at() -> None:
    record = parse_deployment(
        deployment("d1", "done", created_at=NOW, started_at=NOW, finished_at=NOW + timedelta(seconds=42))
    )
    assert record.deployment_id == "d1"
    assert record.created_at == NOW
    assert record.duration_s == 42

    with pytest.raises(ControlPlaneError):
        parse_deployment({"deploymentId": "d2", "status": "done"})
    with pytest.raises(ControlPlaneError):
        parse_deployment("garbage")


@pytest.mark.asyncio
async def test_requests_carry_api_key_and_encoded_input() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"result": {"data": {"json": []}}})

    client = ControlPlaneClient(transport=httpx.MockTransport(handler))
    server = make_server()
    unit = flatten_projects(server, [project("p", composes=[compose("c1", "stack")])])[0]

    assert await client.list_recent_deployments(server, unit) == []

    request = seen[0]
    assert request.url.path == "/api/trpc/deployment.all"
    assert request.headers["x-api-key"] == "token-1"
    assert json.loads(request.url.params["input"]) == {"json": {"composeId": "c1"}}


@pytest.mark.asyncio
async def test_recent_deployments_are_capped_and_malformed_entries_skipped() -> None:
    fake = FakeControlPlane()
    server = make_server()
    fake.projects["cp-prod.test"] = [project("p", applications=[application("a1", "web")])]
    entries = [deployment(f"d{i}", "done", created_at=NOW) for i in range(7)]
    entries[1] = {"deploymentId": "broken"}
    fake.deployments["a1"] = entries
    client = ControlPlaneClient(transport=fake.transport(), recent_limit=5)

    units = await client.list_trackable_units(server)
    records = await client.list_recent_deployments(server, units[0])

    assert [record.deployment_id for record in records] == ["d0", "d2", "d3", "d4"]


@pytest.mark.asyncio
async def test_unreachable_server_degrades_to_empty_results() -> None:
    fake = FakeControlPlane(down_hosts={"cp-prod.test"})
    client = ControlPlaneClient(transport=fake.transport())
    server = make_server()

    assert await client.list_projects(server) == []
    assert await client.get_application_domains(server, "a1") == []


@pytest.mark.asyncio
async def test_non_2xx_and_timeouts_degrade_to_empty_results() -> None:
    def error_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    def timeout_handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    server = make_server()
    assert await ControlPlaneClient(transport=httpx.MockTransport(error_handler)).list_projects(server) == []
    assert await ControlPlaneClient(transport=httpx.MockTransport(timeout_handler)).list_projects(server) == []


@pytest.mark.asyncio
async def test_application_domains_read_hosts() -> None:
    fake = FakeControlPlane(domains={"a1": ["www.example.com", "api.example.com"]})
    client = ControlPlaneClient(transport=fake.transport())

    assert await client.get_application_domains(make_server(), "a1") == ["www.example.com", "api.example.com"]


@pytest.mark.asyncio
async def test_check_connection_reports_counts_and_failures() -> None:
    fake = FakeControlPlane()
    fake.projects["cp-prod.test"] = [
        {
            "projectId": "p1",
            "name": "shop",
            "environments": [
                {"applications": [application("a1", "web"), application("a2", "api")], "postgres": [{"postgresId": "pg"}]}
            ],
        }
    ]
    client = ControlPlaneClient(transport=fake.transport())

    ok = await client.check_connection(make_server())
    assert ok.success is True
    assert ok.project_count == 1
    assert ok.application_count == 2
    assert ok.database_count == 1

    fake.down_hosts.add("cp-prod.test")
    failed = await client.check_connection(make_server())
    assert failed.success is False
    assert failed.message.startswith("Connection error")


def test_parse_deployment_coerces_structured_error_message() -> None:
    raw = deployment("d1", "error", created_at=NOW)
    raw["errorMessage"] = {"code": 137, "reason": "OOMKilled"}

    record = parse_deployment(raw)

    assert isinstance(record.error_message, str)
    assert "OOMKilled" in record.error_message


@pytest.mark.asyncio
async def test_non_object_result_degrades_to_empty_domains() -> None:
    fake = FakeControlPlane(raw_bodies={"application.one": {"result": "unexpected"}})
    client = ControlPlaneClient(transport=fake.transport())

    assert await client.get_application_domains(make_server(), "a1") == []


@pytest.mark.asyncio
async def test_trickling_response_is_cut_off_at_hard_timeout() -> None:
    body = json.dumps({"result": {"data": {"json": []}}}).encode()

    async def drip():
        for byte in body:
            await asyncio.sleep(0.05)
            yield bytes([byte])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=drip())

    client = ControlPlaneClient(timeout_s=0.2, transport=httpx.MockTransport(handler))
    server = make_server()

    start = time.monotonic()
    assert await client.list_projects(server) == []
    assert time.monotonic() - start < 1.0

    check = await client.check_connection(server)
    assert check.success is False
    assert check.message.startswith("Connection error")
