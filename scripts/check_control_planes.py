from __future__ import annotations

import argparse
import asyncio

from deploywatch.core.config import get_settings
from deploywatch.core.logging import configure_logging
from deploywatch.persistence.db import SessionLocal
from deploywatch.persistence.repos.control_planes import list_active_servers, record_connection_check
from deploywatch.services.control_plane.client import ControlPlaneClient


async def check(tenant_id: str) -> None:
    configure_logging()
    client = ControlPlaneClient()
    async with SessionLocal() as session:
        servers = await list_active_servers(session, tenant_id)
    if not servers:
        print(f"no_active_servers tenant_id={tenant_id}")
        return
    results = await asyncio.gather(*(client.check_connection(server) for server in servers))
    async with SessionLocal() as session:
        async with session.begin():
            for server, result in zip(servers, results):
                await record_connection_check(
                    session, tenant_id=tenant_id, server_id=server.id, connected=result.success
                )
    for server, result in zip(servers, results):
        print(
            f"server={server.name} connected={result.success} projects={result.project_count} "
            f"applications={result.application_count} databases={result.database_count} "
            f"message={result.message}"
        )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Check connectivity to every active control plane for a tenant.")
    parser.add_argument("--tenant-id", default=None)
    args = parser.parse_args()
    asyncio.run(check(args.tenant_id or get_settings().monitor_tenant_id))
