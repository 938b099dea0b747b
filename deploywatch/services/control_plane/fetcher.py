from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

from deploywatch.domain.deployments import ControlPlaneServer, TrackableUnit, UnitDeployment
from deploywatch.services.control_plane.client import ControlPlaneClient


logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class BatchRunner(Generic[T, R]):
    """Run an async function over items in fixed-size batches.

    Items inside a batch run concurrently and the whole batch is awaited before the next one
    starts, so at most ``batch_size`` calls are ever in flight. A failing item yields ``None``
    for that slot and never cancels its siblings.
    """

    def __init__(self, batch_size: int) -> None:
        self._batch_size = max(1, int(batch_size))

    @property
    def batch_size(self) -> int:
        return self._batch_size

    async def run(self, items: Sequence[T], func: Callable[[T], Awaitable[R]]) -> list[R | None]:
        results: list[R | None] = []
        for start in range(0, len(items), self._batch_size):
            batch = items[start : start + self._batch_size]
            outcomes = await asyncio.gather(*(func(item) for item in batch), return_exceptions=True)
            for item, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    logger.warning("batch_item_failed item=%r", item, exc_info=outcome)
                    results.append(None)
                else:
                    results.append(outcome)
        return results


async def list_all_units(
    client: ControlPlaneClient, servers: Sequence[ControlPlaneServer]
) -> list[TrackableUnit]:
    # One outstanding listing per server; an unreachable server contributes no units.
    listings = await asyncio.gather(
        *(client.list_trackable_units(server) for server in servers),
        return_exceptions=True,
    )
    units: list[TrackableUnit] = []
    for server, listing in zip(servers, listings):
        if isinstance(listing, BaseException):
            if not isinstance(listing, Exception):
                raise listing
            logger.warning("control_plane_listing_failed server=%s", server.name, exc_info=listing)
            continue
        units.extend(listing)
    return units


async def fetch_recent_deployments(
    client: ControlPlaneClient,
    servers: Sequence[ControlPlaneServer],
    units: Sequence[TrackableUnit],
    *,
    batch_size: int,
) -> list[UnitDeployment]:
    servers_by_id = {server.id: server for server in servers}

    async def _fetch(unit: TrackableUnit) -> list[UnitDeployment]:
        server = servers_by_id.get(unit.server_id)
        if server is None:
            return []
        records = await client.list_recent_deployments(server, unit)
        return [UnitDeployment(unit=unit, deployment=record) for record in records]

    runner: BatchRunner[TrackableUnit, list[UnitDeployment]] = BatchRunner(batch_size)
    results = await runner.run(units, _fetch)
    fetched: list[UnitDeployment] = []
    for result in results:
        if result:
            fetched.extend(result)
    return fetched
