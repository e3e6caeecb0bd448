from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from vendorshield.domain.models import CoverageSnapshot
from vendorshield.persistence.repos.compliance import mark_compliance_stale


async def get_snapshot(session: AsyncSession, org_id: str, vendor_id: str) -> CoverageSnapshot | None:
    row = await session.get(CoverageSnapshot, vendor_id)
    if row is None or row.org_id != org_id:
        return None
    return row


async def put_snapshot(
    session: AsyncSession, org_id: str, vendor_id: str, facts: dict[str, Any]
) -> CoverageSnapshot:
    # Snapshots are rebuilt wholesale by extraction; replace rather than merge.
    row = await session.get(CoverageSnapshot, vendor_id)
    if row is None:
        row = CoverageSnapshot(vendor_id=vendor_id, org_id=org_id, facts_json=facts)
        session.add(row)
    else:
        row.org_id = org_id
        row.facts_json = facts
    await mark_compliance_stale(session, org_id, vendor_id)
    await session.commit()
    return row
