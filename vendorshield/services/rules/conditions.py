from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any

from vendorshield.domain.rules import Condition, CoverageRule, Outcome
from vendorshield.services.rules.resolver import ABSENT, VALUE, Resolution, normalize_token


@dataclass(frozen=True)
class ConditionResult:
    outcome: Outcome
    expected: Any
    actual: Any


def _display(value: Any) -> Any:
    # Keep detail payloads JSON-friendly for the compliance cache and API.
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, frozenset):
        return sorted(value)
    return value


def _compare(condition: Condition, actual: Any, expected: Any) -> bool:
    if condition is Condition.GTE:
        return actual >= expected
    if condition is Condition.LTE:
        return actual <= expected
    if condition is Condition.BEFORE:
        return actual < expected
    if condition is Condition.AFTER:
        return actual > expected
    raise ValueError(f"not a comparison condition: {condition.value}")


def evaluate_condition(rule: CoverageRule, resolved: Resolution) -> ConditionResult:
    """Map one validated rule and its resolved field to pass, fail or missing.

    Missing means the data needed to judge the rule is not on file; fail means
    the data is on file and falls short. The two drive different remediation.
    """
    condition = rule.condition
    actual = _display(resolved.value) if resolved.state != ABSENT else None
    expected = _display(rule.value)

    if condition is Condition.EXISTS:
        outcome = Outcome.PASS if resolved.state == VALUE else Outcome.MISSING
        return ConditionResult(outcome, expected, actual)

    if condition is Condition.MISSING:
        outcome = Outcome.FAIL if resolved.state == VALUE else Outcome.PASS
        return ConditionResult(outcome, expected, actual)

    if condition is Condition.REQUIRES:
        if resolved.state == ABSENT:
            return ConditionResult(Outcome.MISSING, expected, actual)
        # An empty list is still a list on file: the endorsement is not there.
        required = normalize_token(rule.value)
        outcome = Outcome.PASS if required in resolved.value else Outcome.FAIL
        return ConditionResult(outcome, expected, actual)

    if resolved.state != VALUE:
        return ConditionResult(Outcome.MISSING, expected, actual)
    outcome = Outcome.PASS if _compare(condition, resolved.value, rule.value) else Outcome.FAIL
    return ConditionResult(outcome, expected, actual)
