from __future__ import annotations

from datetime import date
from uuid import uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from vendorshield.core.errors import DatabaseError
from vendorshield.domain.models import Vendor, VendorPolicy


async def list_vendors(session: AsyncSession, org_id: str) -> list[Vendor]:
    result = await session.execute(select(Vendor).where(Vendor.org_id == org_id).order_by(Vendor.id))
    return list(result.scalars().all())


async def get_earliest_expiration(session: AsyncSession, org_id: str, vendor_id: str) -> date | None:
    # Null expirations are unknown, not expired; min() skips them.
    value = await session.scalar(
        select(func.min(VendorPolicy.expiration_date)).where(
            VendorPolicy.org_id == org_id,
            VendorPolicy.vendor_id == vendor_id,
            VendorPolicy.expiration_date.is_not(None),
        )
    )
    return value


async def list_expiration_dates(session: AsyncSession, org_id: str) -> list[date]:
    result = await session.execute(
        select(VendorPolicy.expiration_date).where(
            VendorPolicy.org_id == org_id,
            VendorPolicy.expiration_date.is_not(None),
        )
    )
    return [value for value in result.scalars().all() if value is not None]


async def list_org_ids(session: AsyncSession) -> list[str]:
    result = await session.execute(select(Vendor.org_id).distinct().order_by(Vendor.org_id))
    return [value for value in result.scalars().all() if value]


async def upsert_vendor(session: AsyncSession, org_id: str, vendor_id: str, name: str | None = None) -> Vendor | None:
    # Returns None when the id already belongs to another org.
    vendor = await session.get(Vendor, vendor_id)
    if vendor is None:
        session.add(Vendor(id=vendor_id, org_id=org_id, name=name or vendor_id))
        try:
            await session.flush()
        except IntegrityError:
            # Another request created the vendor first; rollback and reload.
            await session.rollback()
        vendor = await session.get(Vendor, vendor_id)
        if vendor is None:
            raise DatabaseError("vendor insert failed unexpectedly")
    if vendor.org_id != org_id:
        return None
    if name:
        vendor.name = name
    return vendor


async def replace_policies(
    session: AsyncSession, org_id: str, vendor_id: str, policies: list[tuple[str, date | None]]
) -> list[VendorPolicy]:
    await session.execute(
        delete(VendorPolicy).where(VendorPolicy.org_id == org_id, VendorPolicy.vendor_id == vendor_id)
    )
    rows = [
        VendorPolicy(id=uuid4().hex, org_id=org_id, vendor_id=vendor_id, coverage_type=coverage_type, expiration_date=expiration)
        for coverage_type, expiration in policies
    ]
    session.add_all(rows)
    await session.flush()
    return rows
