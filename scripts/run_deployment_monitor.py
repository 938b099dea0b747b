from __future__ import annotations

import argparse
import asyncio
import json

from deploywatch.core.logging import configure_logging
from deploywatch.services.monitor.service import run_deployment_monitor


async def _main(tenant_id: str | None) -> None:
    configure_logging()
    summary = await run_deployment_monitor(tenant_id)
    print(json.dumps(summary.to_json(), indent=2))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run one deployment reconciliation cycle.")
    parser.add_argument("--tenant-id", default=None)
    args = parser.parse_args()
    asyncio.run(_main(args.tenant_id))
