from __future__ import annotations

import argparse
import asyncio
import json
import sys

from vendorshield.core.logging import configure_logging
from vendorshield.persistence.db import engine
from vendorshield.services.batch import run_org_batch


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Evaluate every vendor of one org and refresh its alerts")
    parser.add_argument("--org", required=True, help="Org id")
    parser.add_argument("--concurrency", type=int, default=None, help="Max vendors evaluated at once")
    parser.add_argument("--timeout", type=float, default=None, help="Batch deadline in seconds (0 disables)")
    return parser


async def _run(org_id: str, concurrency: int | None, timeout_s: float | None) -> int:
    try:
        summary = await run_org_batch(org_id, max_concurrency=concurrency, timeout_s=timeout_s)
    finally:
        await engine.dispose()
    print(json.dumps(summary.as_dict(), indent=2, sort_keys=True))
    return 0 if not summary.failures else 2


def main() -> int:
    configure_logging()
    args = _build_parser().parse_args()
    try:
        return asyncio.run(_run(args.org, args.concurrency, args.timeout))
    except Exception as exc:  # noqa: BLE001 - surface failure for CI diagnostics.
        print(f"run_org_batch failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
