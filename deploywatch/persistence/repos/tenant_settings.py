from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from deploywatch.domain.models import TenantSettings


async def get_tenant_settings(session: AsyncSession, tenant_id: str) -> dict[str, Any] | None:
    # Return None when the tenant never saved settings so callers can apply "absent" defaults.
    result = await session.execute(select(TenantSettings).where(TenantSettings.tenant_id == tenant_id))
    row = result.scalar_one_or_none()
    if row is None or row.settings_json is None:
        return None
    return dict(row.settings_json)


async def merge_tenant_settings(session: AsyncSession, tenant_id: str, values: dict[str, Any]) -> None:
    # Lock the row so concurrent writers merge against the latest blob instead of clobbering it.
    await session.execute(
        insert(TenantSettings)
        .values(tenant_id=tenant_id, settings_json={})
        .on_conflict_do_nothing(index_elements=[TenantSettings.tenant_id])
    )
    result = await session.execute(
        select(TenantSettings).where(TenantSettings.tenant_id == tenant_id).with_for_update()
    )
    row = result.scalar_one()
    merged = dict(row.settings_json or {})
    merged.update(values)
    # Reassign so the JSONB column is flagged dirty.
    row.settings_json = merged
