from __future__ import annotations

import asyncio

from vendorshield.core.logging import configure_logging
from vendorshield.services.worker import run_compliance_loop


async def _main() -> None:
    # Dedicated process for the scheduled compliance and alerting pass.
    configure_logging()
    await run_compliance_loop()


if __name__ == "__main__":
    asyncio.run(_main())
