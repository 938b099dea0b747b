from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError

from deploywatch.core.errors import DatabaseError
from deploywatch.persistence.repos.tenant_settings import get_tenant_settings, merge_tenant_settings
from deploywatch.services.reconciliation.state import ReconciliationState


logger = logging.getLogger(__name__)

STATE_SETTINGS_KEY = "deployment_state"
LAST_CHECK_SETTINGS_KEY = "last_deployment_check"


class ReconciliationStateStore(Protocol):
    async def load(self) -> ReconciliationState:
        ...

    async def save(self, state: ReconciliationState) -> None:
        ...


class InMemoryStateStore:
    def __init__(self, state: ReconciliationState | None = None) -> None:
        # Hold the serialized form so callers never share mutable state with the store.
        self._snapshot: dict[str, Any] | None = state.to_json() if state is not None else None
        self.saves = 0

    async def load(self) -> ReconciliationState:
        return ReconciliationState.from_json(self._snapshot)

    async def save(self, state: ReconciliationState) -> None:
        self._snapshot = state.to_json()
        self.saves += 1

    @property
    def snapshot(self) -> ReconciliationState:
        return ReconciliationState.from_json(self._snapshot)


class TenantSettingsStateStore:
    """Keep reconciliation state inside the tenant settings blob.

    ``save`` replaces the whole snapshot in one transaction, so a failed write leaves the
    previous snapshot intact.
    """

    def __init__(
        self,
        tenant_id: str,
        session_factory: Callable[[], Any],
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._tenant_id = tenant_id
        self._session_factory = session_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def load(self) -> ReconciliationState:
        try:
            async with self._session_factory() as session:
                settings = await get_tenant_settings(session, self._tenant_id)
        except SQLAlchemyError as exc:
            raise DatabaseError(f"failed to load deployment state for tenant {self._tenant_id}") from exc
        if not settings:
            return ReconciliationState()
        # Malformed blobs raise StateCorruptError; the caller surfaces it as an infrastructure fault.
        return ReconciliationState.from_json(settings.get(STATE_SETTINGS_KEY))

    async def save(self, state: ReconciliationState) -> None:
        values = {
            STATE_SETTINGS_KEY: state.to_json(),
            LAST_CHECK_SETTINGS_KEY: self._clock().isoformat(),
        }
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await merge_tenant_settings(session, self._tenant_id, values)
        except SQLAlchemyError as exc:
            raise DatabaseError(f"failed to save deployment state for tenant {self._tenant_id}") from exc
        logger.debug(
            "reconciliation_state_saved tenant_id=%s deployments=%s units=%s",
            self._tenant_id,
            len(state.last_status_by_deployment),
            len(state.last_notified_at_by_unit),
        )
