from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from vendorshield.domain.models import AlertRule, CoverageSnapshot, Rule, RuleGroup, Vendor, VendorPolicy
from vendorshield.domain.rules import AlertCondition, AlertTemplate, Condition, CoverageRule, RuleType, Severity


def utc(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def make_rule(
    rule_type: RuleType,
    field: str,
    condition: Condition,
    value: Any = None,
    *,
    severity: Severity = Severity.MEDIUM,
    rule_id: str | None = None,
) -> CoverageRule:
    return CoverageRule(
        id=rule_id or uuid4().hex,
        org_id="org-test",
        group_id="group-test",
        rule_type=rule_type,
        field=field,
        condition=condition,
        value=value,
        severity=severity,
        message=f"{field} {condition.value}",
        group_label="Baseline",
    )


def make_template(condition: AlertCondition, severity: Severity = Severity.HIGH, **kwargs: Any) -> AlertTemplate:
    return AlertTemplate(
        id=kwargs.get("template_id", uuid4().hex),
        org_id=kwargs.get("org_id", "org-test"),
        label=kwargs.get("label", condition.code),
        condition=condition,
        severity=severity,
        recipients=tuple(kwargs.get("recipients", ())),
        template_key=kwargs.get("template_key"),
    )


async def seed_vendor(
    session: AsyncSession,
    *,
    org_id: str,
    vendor_id: str,
    facts: dict[str, Any] | None,
    expirations: tuple[date | None, ...] = (),
    name: str | None = None,
) -> Vendor:
    vendor = Vendor(id=vendor_id, org_id=org_id, name=name or vendor_id)
    session.add(vendor)
    if facts is not None:
        session.add(CoverageSnapshot(vendor_id=vendor_id, org_id=org_id, facts_json=facts))
    for expiration in expirations:
        session.add(
            VendorPolicy(
                id=uuid4().hex,
                org_id=org_id,
                vendor_id=vendor_id,
                coverage_type="general_liability",
                expiration_date=expiration,
            )
        )
    await session.commit()
    return vendor


async def seed_rule_group(
    session: AsyncSession,
    *,
    org_id: str,
    rules: list[dict[str, Any]],
    label: str = "Baseline",
) -> RuleGroup:
    group = RuleGroup(id=uuid4().hex, org_id=org_id, label=label, severity="medium", active=True)
    session.add(group)
    for item in rules:
        session.add(
            Rule(
                id=uuid4().hex,
                org_id=org_id,
                group_id=group.id,
                rule_type=item["type"],
                field=item["field"],
                condition=item["condition"],
                value=item.get("value"),
                severity=item.get("severity", "medium"),
                message=item.get("message", f"{item['field']} {item['condition']}"),
                active=item.get("active", True),
            )
        )
    await session.commit()
    return group


async def seed_alert_rule(
    session: AsyncSession,
    *,
    org_id: str,
    condition: str,
    severity: str = "high",
    recipients: list[str] | None = None,
    template_key: str | None = None,
) -> AlertRule:
    row = AlertRule(
        id=uuid4().hex,
        org_id=org_id,
        label=condition,
        condition=condition,
        severity=severity,
        recipients_json=recipients or [],
        template_key=template_key,
        active=True,
    )
    session.add(row)
    await session.commit()
    return row
