from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vendorshield.apps.api.deps import get_db, get_session_factory, require_compliance_enabled
from vendorshield.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from vendorshield.apps.api.response import SuccessEnvelope, success_response
from vendorshield.persistence.repos.snapshots import put_snapshot
from vendorshield.persistence.repos.vendors import replace_policies, upsert_vendor
from vendorshield.services.batch import run_org_batch
from vendorshield.services.rules.engine import evaluate_vendor
from vendorshield.services.rules.scoring import get_cached_evaluation, persist_evaluation

router = APIRouter(prefix="/orgs/{org_id}", tags=["vendors"], responses=DEFAULT_ERROR_RESPONSES)


class PolicyItem(BaseModel):
    coverage_type: str | None = None
    expiration_date: date | None = None


class SnapshotPutRequest(BaseModel):
    vendor_name: str | None = Field(default=None, max_length=256)
    facts: dict[str, Any] = Field(default_factory=dict)
    # When provided, replaces the vendor's policy expirations used by alert triggers.
    policies: list[PolicyItem] | None = None


class BatchRunRequest(BaseModel):
    max_concurrency: int | None = Field(default=None, ge=1, le=64)
    timeout_s: float | None = Field(default=None, ge=0)


def _vendor_not_found(vendor_id: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"code": "VENDOR_NOT_FOUND", "message": f"vendor {vendor_id} not found"},
    )


def _compliance_payload(row: Any) -> dict[str, Any]:
    return {
        "vendor_id": row.vendor_id,
        "org_id": row.org_id,
        "status": row.status,
        "passing": row.passing_json,
        "failing": row.failing_json,
        "missing": row.missing_json,
        "global_score": row.global_score,
        "tier": row.tier,
        "total_rules": row.total_rules,
        "evaluated_at": row.evaluated_at.isoformat() if row.evaluated_at else None,
        "stale": bool(row.stale),
    }


@router.put("/vendors/{vendor_id}/snapshot", response_model=SuccessEnvelope[dict[str, Any]])
async def store_snapshot(
    org_id: str,
    vendor_id: str,
    payload: SnapshotPutRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    vendor = await upsert_vendor(db, org_id, vendor_id, payload.vendor_name)
    if vendor is None:
        raise _vendor_not_found(vendor_id)
    if payload.policies is not None:
        await replace_policies(
            db,
            org_id,
            vendor_id,
            [(item.coverage_type, item.expiration_date) for item in payload.policies],
        )
    row = await put_snapshot(db, org_id, vendor_id, payload.facts)
    return success_response(
        request=request,
        data={
            "vendor_id": vendor_id,
            "org_id": org_id,
            "vendor_name": vendor.name,
            "facts": row.facts_json,
            "updated_at": row.updated_at.isoformat() if row.updated_at else None,
        },
    )


@router.post(
    "/vendors/{vendor_id}/evaluate",
    response_model=SuccessEnvelope[dict[str, Any]],
    dependencies=[Depends(require_compliance_enabled)],
)
async def evaluate_single_vendor(
    org_id: str,
    vendor_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    # SnapshotLoadError surfaces as 404 SNAPSHOT_NOT_FOUND via the domain error handler.
    result = await evaluate_vendor(session=db, org_id=org_id, vendor_id=vendor_id)
    await persist_evaluation(db, result)
    return success_response(request=request, data=result.as_dict())


@router.get("/vendors/{vendor_id}/compliance", response_model=SuccessEnvelope[dict[str, Any]])
async def get_vendor_compliance(
    org_id: str,
    vendor_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    row = await get_cached_evaluation(db, org_id, vendor_id)
    if row is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "COMPLIANCE_NOT_FOUND", "message": f"no evaluation cached for vendor {vendor_id}"},
        )
    return success_response(request=request, data=_compliance_payload(row))


@router.post(
    "/compliance/run",
    response_model=SuccessEnvelope[dict[str, Any]],
    dependencies=[Depends(require_compliance_enabled)],
)
async def run_compliance_batch(
    org_id: str,
    request: Request,
    payload: BatchRunRequest | None = None,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> dict[str, Any]:
    options = payload or BatchRunRequest()
    summary = await run_org_batch(
        org_id,
        session_factory=session_factory,
        max_concurrency=options.max_concurrency,
        timeout_s=options.timeout_s,
    )
    return success_response(request=request, data=summary.as_dict())
