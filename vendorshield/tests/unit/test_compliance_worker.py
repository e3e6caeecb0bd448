from __future__ import annotations

import pytest

from vendorshield.services import worker as worker_module
from vendorshield.services.batch import BatchRunSummary
from vendorshield.tests.utils.fixtures import seed_vendor, utc


NOW = utc(2025, 6, 1)


@pytest.mark.asyncio
async def test_cycle_runs_each_org_and_survives_failures(session_factory, monkeypatch) -> None:
    async with session_factory() as session:
        await seed_vendor(session, org_id="org-a", vendor_id="va", facts={})
        await seed_vendor(session, org_id="org-b", vendor_id="vb", facts={})

    async def _batch(org_id, *, now=None, **kwargs):
        if org_id == "org-a":
            raise RuntimeError("store unavailable")
        return BatchRunSummary(org_id=org_id, status="ok", started_at=NOW, finished_at=NOW, alerts_created=3)

    monkeypatch.setattr(worker_module, "SessionLocal", session_factory)
    monkeypatch.setattr(worker_module, "run_org_batch", _batch)
    result = await worker_module.run_compliance_cycle(now=NOW)
    assert result == {"status": "ok", "orgs_evaluated": 1, "alerts_created": 3, "failed_orgs": ["org-a"]}


@pytest.mark.asyncio
async def test_cycle_skips_while_another_cycle_holds_the_lock(monkeypatch) -> None:
    await worker_module._evaluator_lock.acquire()
    try:
        result = await worker_module.run_compliance_cycle(now=NOW)
    finally:
        worker_module._evaluator_lock.release()
    assert result["status"] == "skipped_lock"


@pytest.mark.asyncio
async def test_cycle_disabled_by_setting(monkeypatch) -> None:
    monkeypatch.setenv("COMPLIANCE_ENABLED", "false")
    result = await worker_module.run_compliance_cycle(now=NOW)
    assert result["status"] == "disabled"
