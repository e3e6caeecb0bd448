from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vendorshield.domain.models import Rule, RuleGroup


async def list_active_rule_rows(session: AsyncSession, org_id: str) -> list[tuple[Rule, RuleGroup]]:
    # Join on org for both sides so a rule can never pull in another org's group.
    result = await session.execute(
        select(Rule, RuleGroup)
        .join(RuleGroup, Rule.group_id == RuleGroup.id)
        .where(
            Rule.org_id == org_id,
            RuleGroup.org_id == org_id,
            Rule.active.is_(True),
            RuleGroup.active.is_(True),
        )
        .order_by(RuleGroup.label, RuleGroup.id, Rule.created_at, Rule.id)
    )
    return [(rule, group) for rule, group in result.all()]


async def list_rule_groups(session: AsyncSession, org_id: str) -> list[RuleGroup]:
    result = await session.execute(
        select(RuleGroup).where(RuleGroup.org_id == org_id).order_by(RuleGroup.created_at, RuleGroup.id)
    )
    return list(result.scalars().all())


async def list_rules_for_group(session: AsyncSession, org_id: str, group_id: str) -> list[Rule]:
    result = await session.execute(
        select(Rule).where(Rule.org_id == org_id, Rule.group_id == group_id).order_by(Rule.created_at, Rule.id)
    )
    return list(result.scalars().all())