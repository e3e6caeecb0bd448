from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from vendorshield.apps.api.deps import get_db
from vendorshield.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from vendorshield.apps.api.response import SuccessEnvelope, list_response, success_response
from vendorshield.services.rules.catalog import ingest_rule_group, list_rule_catalog, rule_group_payload

router = APIRouter(prefix="/orgs/{org_id}", tags=["rules"], responses=DEFAULT_ERROR_RESPONSES)


@router.post(
    "/rule-groups",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessEnvelope[dict[str, Any]],
)
async def create_rule_group(
    org_id: str,
    request: Request,
    payload: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    # Unknown types, conditions or severities are rejected with RULE_VALIDATION_ERROR.
    group, rules = await ingest_rule_group(session=db, org_id=org_id, payload=payload)
    return success_response(request=request, data=rule_group_payload(group, rules))


@router.get("/rule-groups", response_model=SuccessEnvelope[dict[str, list[dict[str, Any]]]])
async def get_rule_groups(
    org_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    items = await list_rule_catalog(session=db, org_id=org_id)
    return list_response(request=request, items=items)
