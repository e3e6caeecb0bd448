from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from vendorshield.domain.models import VendorCompliance


TIER_ELITE_SAFE = "Elite Safe"
TIER_PREFERRED = "Preferred"
TIER_WATCH = "Watch"
TIER_HIGH_RISK = "High Risk"
TIER_SEVERE = "Severe"

# Lower bound of each tier; a score on a boundary belongs to the safer tier.
TIER_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (85, TIER_ELITE_SAFE),
    (70, TIER_PREFERRED),
    (55, TIER_WATCH),
    (35, TIER_HIGH_RISK),
)

STATUS_COMPLIANT = "compliant"
STATUS_NON_COMPLIANT = "non_compliant"
STATUS_INCOMPLETE = "incomplete"
STATUS_NO_REQUIREMENTS = "no_requirements"


@dataclass(frozen=True)
class RuleOutcomeEntry:
    rule_id: str
    group_id: str
    group_label: str | None
    field: str
    condition: str
    message: str
    severity: str
    expected: Any
    actual: Any

    def as_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "group_id": self.group_id,
            "group_label": self.group_label,
            "field": self.field,
            "condition": self.condition,
            "message": self.message,
            "severity": self.severity,
            "expected": self.expected,
            "actual": self.actual,
        }


@dataclass(frozen=True)
class RuleEvaluation:
    passing: tuple[RuleOutcomeEntry, ...]
    failing: tuple[RuleOutcomeEntry, ...]
    missing: tuple[RuleOutcomeEntry, ...]

    @property
    def total_rules(self) -> int:
        return len(self.passing) + len(self.failing) + len(self.missing)


@dataclass(frozen=True)
class EvaluationResult:
    vendor_id: str
    org_id: str
    passing: tuple[RuleOutcomeEntry, ...]
    failing: tuple[RuleOutcomeEntry, ...]
    missing: tuple[RuleOutcomeEntry, ...]
    global_score: int | None
    tier: str | None
    total_rules: int
    status: str
    evaluated_at: datetime

    @property
    def non_compliant(self) -> bool:
        return bool(self.failing)

    def as_dict(self) -> dict[str, Any]:
        return {
            "vendor_id": self.vendor_id,
            "org_id": self.org_id,
            "passing": [entry.as_dict() for entry in self.passing],
            "failing": [entry.as_dict() for entry in self.failing],
            "missing": [entry.as_dict() for entry in self.missing],
            "global_score": self.global_score,
            "tier": self.tier,
            "total_rules": self.total_rules,
            "status": self.status,
            "evaluated_at": self.evaluated_at.isoformat(),
        }


def _round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; scores round .5 upward.
    return int(value + 0.5)


def score_from_counts(passing: int, total: int) -> int | None:
    if total <= 0:
        return None
    return _round_half_up(100 * passing / total)


def tier_for_score(score: int | None) -> str | None:
    if score is None:
        return None
    for lower_bound, tier in TIER_THRESHOLDS:
        if score >= lower_bound:
            return tier
    return TIER_SEVERE


def _status_for(evaluation: RuleEvaluation) -> str:
    if evaluation.total_rules == 0:
        return STATUS_NO_REQUIREMENTS
    if evaluation.failing:
        return STATUS_NON_COMPLIANT
    if evaluation.missing:
        return STATUS_INCOMPLETE
    return STATUS_COMPLIANT


def aggregate(*, vendor_id: str, org_id: str, evaluation: RuleEvaluation, evaluated_at: datetime) -> EvaluationResult:
    total = evaluation.total_rules
    score = score_from_counts(len(evaluation.passing), total)
    return EvaluationResult(
        vendor_id=vendor_id,
        org_id=org_id,
        passing=evaluation.passing,
        failing=evaluation.failing,
        missing=evaluation.missing,
        global_score=score,
        tier=tier_for_score(score),
        total_rules=total,
        status=_status_for(evaluation),
        evaluated_at=evaluated_at,
    )


async def persist_evaluation(session: AsyncSession, result: EvaluationResult) -> VendorCompliance:
    # Cache the latest result for dashboards; the next evaluation always overwrites it.
    row = await session.get(VendorCompliance, result.vendor_id)
    if row is None:
        row = VendorCompliance(vendor_id=result.vendor_id)
        session.add(row)
    row.org_id = result.org_id
    row.status = result.status
    row.passing_json = [entry.as_dict() for entry in result.passing]
    row.failing_json = [entry.as_dict() for entry in result.failing]
    row.missing_json = [entry.as_dict() for entry in result.missing]
    row.global_score = result.global_score
    row.tier = result.tier
    row.total_rules = result.total_rules
    row.evaluated_at = result.evaluated_at
    row.stale = False
    await session.commit()
    return row


async def get_cached_evaluation(session: AsyncSession, org_id: str, vendor_id: str) -> VendorCompliance | None:
    row = await session.get(VendorCompliance, vendor_id)
    if row is None or row.org_id != org_id:
        return None
    return row
