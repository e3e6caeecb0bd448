from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
import re
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vendorshield.core.errors import AlertRuleValidationError, RuleValidationError
from vendorshield.domain.models import AlertRule
from vendorshield.domain.rules import AlertCondition, AlertTemplate, Severity
from vendorshield.services.rules.validation import parse_severity


logger = logging.getLogger(__name__)

KIND_EXPIRATION_WITHIN = "expiration_within"
KIND_NON_COMPLIANT = "non_compliant"
KIND_EXPIRED = "expired"

_EXPIRATION_PATTERN = re.compile(r"^expiration\s*<=\s*(\d+)$")


@dataclass(frozen=True)
class VendorAlertContext:
    """Per-vendor facts the trigger grammar can reference."""

    vendor_id: str
    vendor_name: str | None
    earliest_expiration: date | None
    non_compliant: bool


@dataclass(frozen=True)
class CandidateAlert:
    org_id: str
    vendor_id: str
    vendor_name: str | None
    alert_type: str
    alert_rule_id: str
    severity: Severity
    message: str
    template_key: str | None
    recipients: tuple[str, ...]
    metadata: dict[str, Any]


@dataclass(frozen=True)
class AlertTemplateIssue:
    alert_rule_id: str
    condition: str
    error: str


def parse_alert_condition(raw: Any) -> AlertCondition:
    """Parse the string trigger grammar: ``expiration<=N``, ``non_compliant``, ``expired``."""
    text = str(raw or "").strip().lower()
    if text == KIND_NON_COMPLIANT:
        return AlertCondition(kind=KIND_NON_COMPLIANT)
    if text == KIND_EXPIRED:
        return AlertCondition(kind=KIND_EXPIRED)
    match = _EXPIRATION_PATTERN.match(text)
    if match:
        return AlertCondition(kind=KIND_EXPIRATION_WITHIN, threshold_days=int(match.group(1)))
    raise AlertRuleValidationError(f"unsupported alert condition {raw!r}")


def _parse_recipients(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, (list, tuple)):
        raise AlertRuleValidationError("recipients must be a list of addresses")
    return tuple(str(item).strip() for item in raw if item and str(item).strip())


def parse_alert_rule_payload(payload: Mapping[str, Any]) -> dict[str, Any]:
    # Normalize an alert template payload into column values; raises on anything unknown.
    if not isinstance(payload, Mapping):
        raise AlertRuleValidationError("alert rule must be an object")
    condition = parse_alert_condition(payload.get("condition"))
    try:
        severity = parse_severity(payload.get("severity"))
    except RuleValidationError as exc:
        raise AlertRuleValidationError(str(exc)) from exc
    label = str(payload.get("label") or "").strip() or condition.code
    template_key = payload.get("template_key")
    return {
        "label": label,
        "condition": condition.code,
        "severity": severity.value,
        "recipients_json": list(_parse_recipients(payload.get("recipients"))),
        "template_key": str(template_key).strip() if template_key else None,
        "active": bool(payload.get("active", True)),
    }


def template_from_row(row: AlertRule) -> AlertTemplate:
    fields = parse_alert_rule_payload(
        {
            "label": row.label,
            "condition": row.condition,
            "severity": row.severity,
            "recipients": row.recipients_json,
            "template_key": row.template_key,
        }
    )
    return AlertTemplate(
        id=row.id,
        org_id=row.org_id,
        label=fields["label"],
        condition=parse_alert_condition(fields["condition"]),
        severity=Severity(fields["severity"]),
        recipients=tuple(fields["recipients_json"]),
        template_key=fields["template_key"],
    )


async def load_alert_templates(
    session: AsyncSession, org_id: str
) -> tuple[tuple[AlertTemplate, ...], tuple[AlertTemplateIssue, ...]]:
    rows = (
        await session.execute(
            select(AlertRule)
            .where(AlertRule.org_id == org_id, AlertRule.active.is_(True))
            .order_by(AlertRule.created_at, AlertRule.id)
        )
    ).scalars().all()
    templates: list[AlertTemplate] = []
    issues: list[AlertTemplateIssue] = []
    for row in rows:
        try:
            templates.append(template_from_row(row))
        except AlertRuleValidationError as exc:
            logger.warning("skipping invalid alert rule org=%s rule=%s: %s", org_id, row.id, exc)
            issues.append(AlertTemplateIssue(alert_rule_id=row.id, condition=row.condition, error=str(exc)))
    return tuple(templates), tuple(issues)


def days_until(expiration: date | None, today: date) -> int | None:
    if expiration is None:
        return None
    return (expiration - today).days


def earliest_expiration(dates: Iterable[date | None]) -> date | None:
    known = [value for value in dates if value is not None]
    return min(known) if known else None


def condition_holds(condition: AlertCondition, context: VendorAlertContext, today: date) -> bool:
    if condition.kind == KIND_NON_COMPLIANT:
        return context.non_compliant
    days_left = days_until(context.earliest_expiration, today)
    if days_left is None:
        return False
    if condition.kind == KIND_EXPIRED:
        return days_left < 0
    if condition.kind == KIND_EXPIRATION_WITHIN:
        # Already-expired policies also satisfy <=N.
        return days_left <= int(condition.threshold_days or 0)
    return False


def _message_for(template: AlertTemplate, context: VendorAlertContext) -> str:
    name = context.vendor_name or f"Vendor {context.vendor_id}"
    return f"{template.label}: {name}"


def evaluate_alert_triggers(
    *,
    org_id: str,
    templates: Sequence[AlertTemplate],
    vendors: Iterable[VendorAlertContext],
    today: date,
) -> list[CandidateAlert]:
    """Produce one candidate per (vendor, matching template). Pure; writes nothing."""
    candidates: list[CandidateAlert] = []
    for context in vendors:
        for template in templates:
            if not condition_holds(template.condition, context, today):
                continue
            days_left = days_until(context.earliest_expiration, today)
            candidates.append(
                CandidateAlert(
                    org_id=org_id,
                    vendor_id=context.vendor_id,
                    vendor_name=context.vendor_name,
                    alert_type=template.condition.code,
                    alert_rule_id=template.id,
                    severity=template.severity,
                    message=_message_for(template, context),
                    template_key=template.template_key,
                    recipients=template.recipients,
                    metadata={
                        "label": template.label,
                        "days_left": days_left,
                        "earliest_expiration": (
                            context.earliest_expiration.isoformat() if context.earliest_expiration else None
                        ),
                    },
                )
            )
    return candidates
