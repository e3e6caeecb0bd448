from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from vendorshield.apps.api.deps import get_db
from vendorshield.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from vendorshield.apps.api.response import SuccessEnvelope, list_response, success_response
from vendorshield.domain.rules import AlertStatus
from vendorshield.services.alerts import (
    create_alert_rule,
    critical_vendors,
    ensure_default_alert_rules,
    list_alert_rules,
    list_alert_timeline,
    list_alerts,
    mark_alert_in_review,
    org_alert_aging,
    org_alert_stats,
    org_expiration_summary,
    org_sla_health,
    resolve_alert,
    top_alert_types,
    unresolved_counts_by_vendor,
    vendor_alert_intelligence,
)
from vendorshield.services.alerts.defaults import alert_rule_payload
from vendorshield.services.alerts.intelligence import DEFAULT_CRITICAL_VENDORS_LIMIT, DEFAULT_TOP_TYPES_LIMIT
from vendorshield.services.alerts.lifecycle import alert_payload

router = APIRouter(prefix="/orgs/{org_id}", tags=["alerts"], responses=DEFAULT_ERROR_RESPONSES)


class AlertDefaultsRequest(BaseModel):
    recipients: list[str] | None = None


class AlertReviewRequest(BaseModel):
    action: str = Field(default="request_coi", min_length=1, max_length=64)
    actor_id: str | None = Field(default=None, max_length=128)
    note: str | None = None


class AlertResolveRequest(BaseModel):
    actor_id: str | None = Field(default=None, max_length=128)
    note: str | None = None


def _alert_not_found(alert_id: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"code": "ALERT_NOT_FOUND", "message": f"alert {alert_id} not found"},
    )


def _timeline_payload(row: Any) -> dict[str, Any]:
    return {
        "id": row.id,
        "alert_id": row.alert_id,
        "event_type": row.event_type,
        "actor_id": row.actor_id,
        "note": row.note,
        "metadata": row.metadata_json,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


@router.get("/alert-rules", response_model=SuccessEnvelope[dict[str, list[dict[str, Any]]]])
async def get_alert_rules(org_id: str, request: Request, db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    rows = await list_alert_rules(session=db, org_id=org_id)
    return list_response(request=request, items=(alert_rule_payload(row) for row in rows))


@router.post(
    "/alert-rules",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessEnvelope[dict[str, Any]],
)
async def post_alert_rule(
    org_id: str,
    request: Request,
    payload: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    row = await create_alert_rule(session=db, org_id=org_id, payload=payload)
    return success_response(request=request, data=alert_rule_payload(row))


@router.post("/alert-rules/defaults", response_model=SuccessEnvelope[dict[str, list[dict[str, Any]]]])
async def post_alert_rule_defaults(
    org_id: str,
    request: Request,
    payload: AlertDefaultsRequest | None = None,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    # Repeat calls are no-ops for conditions the org already has.
    recipients = payload.recipients if payload is not None else None
    created = await ensure_default_alert_rules(session=db, org_id=org_id, recipients=recipients)
    return list_response(request=request, items=(alert_rule_payload(row) for row in created), key="created")


@router.get("/alerts", response_model=SuccessEnvelope[dict[str, list[dict[str, Any]]]])
async def get_alerts(
    org_id: str,
    request: Request,
    status_filter: AlertStatus | None = Query(default=None, alias="status"),
    vendor_id: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    rows = await list_alerts(
        session=db,
        org_id=org_id,
        status_filter=status_filter.value if status_filter else None,
        vendor_id=vendor_id,
    )
    return list_response(request=request, items=(alert_payload(row) for row in rows))


@router.get("/alerts/sla", response_model=SuccessEnvelope[dict[str, int]])
async def get_alert_sla(org_id: str, request: Request, db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    health = await org_sla_health(db, org_id)
    return success_response(request=request, data=health.as_dict())


@router.get("/alerts/aging", response_model=SuccessEnvelope[dict[str, int]])
async def get_alert_aging(org_id: str, request: Request, db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    aging = await org_alert_aging(db, org_id)
    return success_response(request=request, data=aging.as_dict())


@router.get("/alerts/expirations", response_model=SuccessEnvelope[dict[str, int]])
async def get_alert_expirations(org_id: str, request: Request, db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    summary = await org_expiration_summary(db, org_id)
    return success_response(request=request, data=summary.as_dict())


@router.get("/alerts/stats", response_model=SuccessEnvelope[dict[str, Any]])
async def get_alert_stats(org_id: str, request: Request, db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    stats = await org_alert_stats(db, org_id)
    return success_response(request=request, data=stats)


@router.get("/alerts/top-types", response_model=SuccessEnvelope[dict[str, list[dict[str, Any]]]])
async def get_top_alert_types(
    org_id: str,
    request: Request,
    limit: int = Query(default=DEFAULT_TOP_TYPES_LIMIT, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    return list_response(request=request, items=await top_alert_types(db, org_id, limit=limit))


@router.get("/alerts/critical-vendors", response_model=SuccessEnvelope[dict[str, list[dict[str, Any]]]])
async def get_critical_vendors(
    org_id: str,
    request: Request,
    limit: int = Query(default=DEFAULT_CRITICAL_VENDORS_LIMIT, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    return list_response(request=request, items=await critical_vendors(db, org_id, limit=limit))


@router.get("/alerts/by-vendor", response_model=SuccessEnvelope[dict[str, int]])
async def get_unresolved_by_vendor(org_id: str, request: Request, db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    return success_response(request=request, data=await unresolved_counts_by_vendor(db, org_id))


@router.get("/vendors/{vendor_id}/alert-intelligence", response_model=SuccessEnvelope[dict[str, Any]])
async def get_vendor_alert_intelligence(
    org_id: str,
    vendor_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    summary = await vendor_alert_intelligence(db, org_id, vendor_id)
    return success_response(request=request, data=summary.as_dict())


@router.post("/alerts/{alert_id}/review", response_model=SuccessEnvelope[dict[str, Any]])
async def review_alert(
    org_id: str,
    alert_id: str,
    request: Request,
    payload: AlertReviewRequest | None = None,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    body = payload or AlertReviewRequest()
    row = await mark_alert_in_review(
        session=db,
        org_id=org_id,
        alert_id=alert_id,
        actor_id=body.actor_id,
        action=body.action,
        note=body.note,
    )
    if row is None:
        raise _alert_not_found(alert_id)
    return success_response(request=request, data=alert_payload(row))


@router.post("/alerts/{alert_id}/resolve", response_model=SuccessEnvelope[dict[str, Any]])
async def resolve_alert_handler(
    org_id: str,
    alert_id: str,
    request: Request,
    payload: AlertResolveRequest | None = None,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    body = payload or AlertResolveRequest()
    row = await resolve_alert(session=db, org_id=org_id, alert_id=alert_id, actor_id=body.actor_id, note=body.note)
    if row is None:
        raise _alert_not_found(alert_id)
    return success_response(request=request, data=alert_payload(row))


@router.get("/alerts/{alert_id}/timeline", response_model=SuccessEnvelope[dict[str, list[dict[str, Any]]]])
async def get_alert_timeline(
    org_id: str,
    alert_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    rows = await list_alert_timeline(session=db, org_id=org_id, alert_id=alert_id)
    if not rows:
        raise _alert_not_found(alert_id)
    return list_response(request=request, items=(_timeline_payload(row) for row in rows))
