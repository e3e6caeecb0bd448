from __future__ import annotations

from typing import Any, Iterable, Mapping
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vendorshield.core.config import get_settings
from vendorshield.domain.models import AlertRule
from vendorshield.services.alerts.triggers import parse_alert_condition, parse_alert_rule_payload


TEMPLATE_RENEWAL_REMINDER = "renewal_reminder"
TEMPLATE_NON_COMPLIANCE_NOTICE = "non_compliance_notice"

_BASELINE_TEMPLATES: tuple[tuple[str, str, str, str], ...] = (
    ("Policy Expiring <=30 Days", "expiration<=30", "critical", TEMPLATE_RENEWAL_REMINDER),
    ("Policy Expiring <=60 Days", "expiration<=60", "high", TEMPLATE_RENEWAL_REMINDER),
    ("Policy Expiring <=90 Days", "expiration<=90", "medium", TEMPLATE_RENEWAL_REMINDER),
    ("Vendor Non-Compliant", "non_compliant", "critical", TEMPLATE_NON_COMPLIANCE_NOTICE),
)


def _default_recipients() -> list[str]:
    raw = get_settings().default_alert_recipients
    return [item.strip() for item in raw.split(",") if item.strip()]


async def list_alert_rules(*, session: AsyncSession, org_id: str) -> list[AlertRule]:
    rows = (
        await session.execute(
            select(AlertRule)
            .where(AlertRule.org_id == org_id)
            .order_by(AlertRule.created_at.asc(), AlertRule.id.asc())
        )
    ).scalars().all()
    return list(rows)


async def create_alert_rule(
    *, session: AsyncSession, org_id: str, payload: Mapping[str, Any]
) -> AlertRule:
    # Reject unknown trigger conditions here so they never reach the evaluator.
    fields = parse_alert_rule_payload(payload)
    row = AlertRule(id=uuid4().hex, org_id=org_id, **fields)
    session.add(row)
    await session.commit()
    return row


async def ensure_default_alert_rules(
    *,
    session: AsyncSession,
    org_id: str,
    recipients: Iterable[str] | None = None,
) -> list[AlertRule]:
    """Seed the baseline expiration and non-compliance templates for an org.

    Conditions the org already has (active or not) are left alone, so repeated calls
    return an empty list.
    """
    existing = {
        parse_alert_condition(row.condition).code
        for row in await list_alert_rules(session=session, org_id=org_id)
        if _is_parseable(row.condition)
    }
    recipient_list = list(recipients) if recipients is not None else _default_recipients()
    created: list[AlertRule] = []
    for label, condition, severity, template_key in _BASELINE_TEMPLATES:
        if condition in existing:
            continue
        fields = parse_alert_rule_payload(
            {
                "label": label,
                "condition": condition,
                "severity": severity,
                "recipients": recipient_list,
                "template_key": template_key,
            }
        )
        created.append(AlertRule(id=uuid4().hex, org_id=org_id, **fields))
    if created:
        session.add_all(created)
        await session.commit()
    return created


def _is_parseable(condition: str) -> bool:
    try:
        parse_alert_condition(condition)
    except ValueError:
        return False
    return True


def alert_rule_payload(row: AlertRule) -> dict[str, Any]:
    return {
        "id": row.id,
        "org_id": row.org_id,
        "label": row.label,
        "condition": row.condition,
        "severity": row.severity,
        "recipients": list(row.recipients_json or []),
        "template_key": row.template_key,
        "active": row.active,
    }
