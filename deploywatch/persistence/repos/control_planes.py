from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from deploywatch.domain.deployments import ControlPlaneServer
from deploywatch.domain.models import ControlPlaneServerRow


def to_server(row: ControlPlaneServerRow) -> ControlPlaneServer:
    return ControlPlaneServer(
        id=str(row.id),
        name=row.name,
        url=row.url.rstrip("/"),
        api_token=row.api_token,
    )


async def list_active_servers(session: AsyncSession, tenant_id: str) -> list[ControlPlaneServer]:
    result = await session.execute(
        select(ControlPlaneServerRow)
        .where(ControlPlaneServerRow.tenant_id == tenant_id, ControlPlaneServerRow.is_active.is_(True))
        .order_by(ControlPlaneServerRow.name.asc())
    )
    return [to_server(row) for row in result.scalars().all()]


async def record_connection_check(
    session: AsyncSession,
    *,
    tenant_id: str,
    server_id: str,
    connected: bool,
    checked_at: datetime | None = None,
) -> None:
    # Tenant predicate keeps a stray id from touching another tenant's registry.
    await session.execute(
        update(ControlPlaneServerRow)
        .where(
            ControlPlaneServerRow.tenant_id == tenant_id,
            ControlPlaneServerRow.id == int(server_id),
        )
        .values(
            last_check_at=checked_at or datetime.now(timezone.utc),
            last_status="connected" if connected else "error",
        )
    )
