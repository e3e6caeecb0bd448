from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum


class RuleType(str, Enum):
    COVERAGE = "coverage"
    LIMIT = "limit"
    ENDORSEMENT = "endorsement"
    DATE = "date"


class Condition(str, Enum):
    EXISTS = "exists"
    MISSING = "missing"
    GTE = "gte"
    LTE = "lte"
    REQUIRES = "requires"
    BEFORE = "before"
    AFTER = "after"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class ValueKind(str, Enum):
    NUMBER = "number"
    DATE = "date"
    LIST = "list"
    PRESENCE = "presence"


class Outcome(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    MISSING = "missing"


class AlertStatus(str, Enum):
    OPEN = "open"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"


UNRESOLVED_ALERT_STATUSES = (AlertStatus.OPEN.value, AlertStatus.IN_REVIEW.value)

# Closed rule vocabulary: every (type, condition) pair the evaluator understands.
ALLOWED_CONDITIONS: dict[RuleType, frozenset[Condition]] = {
    RuleType.COVERAGE: frozenset({Condition.EXISTS, Condition.MISSING}),
    RuleType.LIMIT: frozenset({Condition.EXISTS, Condition.MISSING, Condition.GTE, Condition.LTE}),
    RuleType.ENDORSEMENT: frozenset({Condition.EXISTS, Condition.MISSING, Condition.REQUIRES}),
    RuleType.DATE: frozenset({Condition.EXISTS, Condition.MISSING, Condition.BEFORE, Condition.AFTER}),
}

_KIND_BY_TYPE = {
    RuleType.COVERAGE: ValueKind.PRESENCE,
    RuleType.LIMIT: ValueKind.NUMBER,
    RuleType.ENDORSEMENT: ValueKind.LIST,
    RuleType.DATE: ValueKind.DATE,
}


RuleValue = float | str | date | None


@dataclass(frozen=True)
class CoverageRule:
    """A validated, immutable compliance rule ready for evaluation."""

    id: str
    org_id: str
    group_id: str
    rule_type: RuleType
    field: str
    condition: Condition
    value: RuleValue
    severity: Severity
    message: str
    group_label: str | None = None

    @property
    def value_kind(self) -> ValueKind:
        return _KIND_BY_TYPE[self.rule_type]


@dataclass(frozen=True)
class AlertCondition:
    kind: str
    threshold_days: int | None = None

    @property
    def code(self) -> str:
        # Canonical string form doubles as the alert type used for dedup.
        if self.kind == "expiration_within":
            return f"expiration<={self.threshold_days}"
        return self.kind


@dataclass(frozen=True)
class AlertTemplate:
    id: str
    org_id: str
    label: str
    condition: AlertCondition
    severity: Severity
    recipients: tuple[str, ...]
    template_key: str | None
