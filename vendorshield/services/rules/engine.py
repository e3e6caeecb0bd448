from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Any, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from vendorshield.core.errors import RuleValidationError, SnapshotLoadError
from vendorshield.domain.rules import CoverageRule, Outcome
from vendorshield.persistence.repos.rules import list_active_rule_rows
from vendorshield.persistence.repos.snapshots import get_snapshot
from vendorshield.services.rules.conditions import evaluate_condition
from vendorshield.services.rules.resolver import resolve_field
from vendorshield.services.rules.scoring import (
    EvaluationResult,
    RuleEvaluation,
    RuleOutcomeEntry,
    aggregate,
)
from vendorshield.services.rules.validation import rule_from_row


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleConfigIssue:
    rule_id: str
    group_id: str
    error: str


@dataclass(frozen=True)
class RuleSet:
    """Immutable org rule set; safe to share across concurrent vendor evaluations."""

    org_id: str
    rules: tuple[CoverageRule, ...]
    issues: tuple[RuleConfigIssue, ...] = field(default=())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def load_rule_set(session: AsyncSession, org_id: str) -> RuleSet:
    # Invalid stored rules are skipped and reported; they never count as pass or fail.
    rules: list[CoverageRule] = []
    issues: list[RuleConfigIssue] = []
    for row, group in await list_active_rule_rows(session, org_id):
        try:
            rules.append(rule_from_row(row, group))
        except RuleValidationError as exc:
            logger.warning("skipping invalid rule org=%s rule=%s: %s", org_id, row.id, exc)
            issues.append(RuleConfigIssue(rule_id=row.id, group_id=row.group_id, error=str(exc)))
    return RuleSet(org_id=org_id, rules=tuple(rules), issues=tuple(issues))


def evaluate_rules(rule_set: RuleSet, snapshot: Mapping[str, Any]) -> RuleEvaluation:
    """Partition every rule into exactly one of passing, failing or missing."""
    buckets: dict[Outcome, list[RuleOutcomeEntry]] = {outcome: [] for outcome in Outcome}
    for rule in rule_set.rules:
        resolved = resolve_field(snapshot, rule.field, rule.value_kind)
        result = evaluate_condition(rule, resolved)
        buckets[result.outcome].append(
            RuleOutcomeEntry(
                rule_id=rule.id,
                group_id=rule.group_id,
                group_label=rule.group_label,
                field=rule.field,
                condition=rule.condition.value,
                message=rule.message,
                severity=rule.severity.value,
                expected=result.expected,
                actual=result.actual,
            )
        )
    return RuleEvaluation(
        passing=tuple(buckets[Outcome.PASS]),
        failing=tuple(buckets[Outcome.FAIL]),
        missing=tuple(buckets[Outcome.MISSING]),
    )


async def load_snapshot_facts(session: AsyncSession, org_id: str, vendor_id: str) -> dict[str, Any]:
    row = await get_snapshot(session, org_id, vendor_id)
    if row is None:
        raise SnapshotLoadError(vendor_id, "no coverage snapshot on file")
    if not isinstance(row.facts_json, dict):
        raise SnapshotLoadError(vendor_id, "snapshot facts are not a key/value map")
    return row.facts_json


def evaluate_snapshot(
    *,
    rule_set: RuleSet,
    vendor_id: str,
    snapshot: Mapping[str, Any],
    now: datetime | None = None,
) -> EvaluationResult:
    evaluation = evaluate_rules(rule_set, snapshot)
    return aggregate(
        vendor_id=vendor_id,
        org_id=rule_set.org_id,
        evaluation=evaluation,
        evaluated_at=now or _utc_now(),
    )


async def evaluate_vendor(
    *,
    session: AsyncSession,
    org_id: str,
    vendor_id: str,
    rule_set: RuleSet | None = None,
    now: datetime | None = None,
) -> EvaluationResult:
    # Raises SnapshotLoadError rather than guessing outcomes for an unreadable snapshot.
    if rule_set is None:
        rule_set = await load_rule_set(session, org_id)
    snapshot = await load_snapshot_facts(session, org_id, vendor_id)
    return evaluate_snapshot(rule_set=rule_set, vendor_id=vendor_id, snapshot=snapshot, now=now)
