from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from vendorshield.domain.models import VendorCompliance


async def mark_compliance_stale(session: AsyncSession, org_id: str, vendor_id: str | None = None) -> None:
    # Caller commits; a vendor_id of None marks every cached result in the org.
    query = update(VendorCompliance).where(VendorCompliance.org_id == org_id)
    if vendor_id is not None:
        query = query.where(VendorCompliance.vendor_id == vendor_id)
    await session.execute(query.values(stale=True))
