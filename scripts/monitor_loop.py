from __future__ import annotations

import asyncio

from deploywatch.core.logging import configure_logging
from deploywatch.services.monitor.service import run_monitor_loop


async def _main() -> None:
    # Standalone poller for hosts without redis; the arq worker is the scheduled alternative.
    configure_logging()
    await run_monitor_loop()


if __name__ == "__main__":
    asyncio.run(_main())
