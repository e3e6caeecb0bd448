from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from vendorshield.core.config import get_settings
from vendorshield.persistence.db import SessionLocal
from vendorshield.persistence.repos.vendors import list_org_ids
from vendorshield.services.batch import run_org_batch


logger = logging.getLogger(__name__)

_evaluator_lock = asyncio.Lock()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _is_missing_table_error(exc: Exception) -> bool:
    # The worker may boot before the schema exists; treat that as a temporary state.
    message = str(exc).lower()
    return "undefinedtableerror" in message or "does not exist" in message or "no such table" in message


async def run_compliance_cycle(*, now: datetime | None = None) -> dict[str, Any]:
    """Run one scheduled pass over every org; overlapping passes in this process are skipped."""
    settings = get_settings()
    if not settings.compliance_enabled:
        return {"status": "disabled", "orgs_evaluated": 0, "alerts_created": 0}
    if _evaluator_lock.locked():
        return {"status": "skipped_lock", "orgs_evaluated": 0, "alerts_created": 0}

    async with _evaluator_lock:
        timestamp = now or _utc_now()
        try:
            async with SessionLocal() as session:
                org_ids = await list_org_ids(session)
        except SQLAlchemyError as exc:
            if _is_missing_table_error(exc):
                return {"status": "waiting_for_migrations", "orgs_evaluated": 0, "alerts_created": 0}
            raise

        evaluated = 0
        created = 0
        failed_orgs: list[str] = []
        for org_id in org_ids:
            try:
                summary = await run_org_batch(org_id, now=timestamp)
            except Exception:  # noqa: BLE001 - keep the remaining orgs running.
                logger.exception("compliance batch failed org=%s", org_id)
                failed_orgs.append(org_id)
                continue
            evaluated += 1
            created += summary.alerts_created
        return {
            "status": "ok",
            "orgs_evaluated": evaluated,
            "alerts_created": created,
            "failed_orgs": failed_orgs,
        }


async def run_compliance_loop() -> None:
    # Daily by default; the loop survives failed cycles and logs them.
    interval = max(5, int(get_settings().worker_interval_s))
    while True:
        try:
            result = await run_compliance_cycle()
            logger.info("compliance cycle %s", result)
        except Exception:  # noqa: BLE001 - keep loop alive while surfacing errors in logs.
            logger.exception("compliance cycle failed")
        await asyncio.sleep(interval)
