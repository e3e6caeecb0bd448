from __future__ import annotations

from typing import Any, Mapping
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from vendorshield.domain.models import Rule, RuleGroup
from vendorshield.persistence.repos.compliance import mark_compliance_stale
from vendorshield.persistence.repos.rules import list_rule_groups, list_rules_for_group
from vendorshield.services.rules.validation import format_rule_value, parse_rule_group_payload


async def ingest_rule_group(
    *,
    session: AsyncSession,
    org_id: str,
    payload: Mapping[str, Any],
) -> tuple[RuleGroup, list[Rule]]:
    # Validate before any write so an invalid payload leaves the store untouched.
    draft = parse_rule_group_payload(payload)
    group = RuleGroup(
        id=uuid4().hex,
        org_id=org_id,
        label=draft.label,
        severity=draft.severity.value,
        active=draft.active,
    )
    session.add(group)
    rules = [
        Rule(
            id=uuid4().hex,
            org_id=org_id,
            group_id=group.id,
            rule_type=item.rule_type.value,
            field=item.field,
            condition=item.condition.value,
            value=format_rule_value(item.value),
            severity=item.severity.value,
            message=item.message,
            active=item.active,
        )
        for item in draft.rules
    ]
    session.add_all(rules)
    await mark_compliance_stale(session, org_id)
    await session.commit()
    return group, rules


def rule_payload(row: Rule) -> dict[str, Any]:
    return {
        "id": row.id,
        "group_id": row.group_id,
        "type": row.rule_type,
        "field": row.field,
        "condition": row.condition,
        "value": row.value,
        "severity": row.severity,
        "message": row.message,
        "active": row.active,
    }


def rule_group_payload(group: RuleGroup, rules: list[Rule]) -> dict[str, Any]:
    return {
        "id": group.id,
        "org_id": group.org_id,
        "label": group.label,
        "severity": group.severity,
        "active": group.active,
        "rules": [rule_payload(row) for row in rules],
    }


async def list_rule_catalog(*, session: AsyncSession, org_id: str) -> list[dict[str, Any]]:
    groups = await list_rule_groups(session, org_id)
    return [
        rule_group_payload(group, await list_rules_for_group(session, org_id, group.id))
        for group in groups
    ]
