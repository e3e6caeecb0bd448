from __future__ import annotations

import pytest

from vendorshield.domain.rules import Condition, RuleType
from vendorshield.services.rules.engine import RuleSet, evaluate_rules, evaluate_snapshot
from vendorshield.services.rules.scoring import (
    STATUS_COMPLIANT,
    STATUS_INCOMPLETE,
    STATUS_NO_REQUIREMENTS,
    STATUS_NON_COMPLIANT,
    TIER_ELITE_SAFE,
    TIER_HIGH_RISK,
    TIER_PREFERRED,
    TIER_SEVERE,
    TIER_WATCH,
    score_from_counts,
    tier_for_score,
)
from vendorshield.tests.utils.fixtures import make_rule, utc


@pytest.mark.parametrize(
    ("score", "tier"),
    [
        (100, TIER_ELITE_SAFE),
        (85, TIER_ELITE_SAFE),
        (84, TIER_PREFERRED),
        (70, TIER_PREFERRED),
        (69, TIER_WATCH),
        (55, TIER_WATCH),
        (54, TIER_HIGH_RISK),
        (35, TIER_HIGH_RISK),
        (34, TIER_SEVERE),
        (0, TIER_SEVERE),
        (None, None),
    ],
)
def test_tier_boundaries_belong_to_safer_tier(score, tier) -> None:
    assert tier_for_score(score) == tier


def test_score_rounds_half_up() -> None:
    assert score_from_counts(1, 8) == 13  # 12.5
    assert score_from_counts(2, 3) == 67
    assert score_from_counts(0, 4) == 0
    assert score_from_counts(0, 0) is None


def _rule_set() -> RuleSet:
    return RuleSet(
        org_id="org-test",
        rules=(
            make_rule(RuleType.LIMIT, "gl_limit", Condition.GTE, 1000000.0, rule_id="r-gl"),
            make_rule(RuleType.ENDORSEMENT, "endorsements", Condition.REQUIRES, "Additional Insured", rule_id="r-ai"),
            make_rule(RuleType.COVERAGE, "workers_comp", Condition.EXISTS, rule_id="r-wc"),
            make_rule(RuleType.LIMIT, "auto_limit", Condition.GTE, 500000.0, rule_id="r-auto"),
        ),
    )


def test_every_rule_lands_in_exactly_one_bucket() -> None:
    rule_set = _rule_set()
    evaluation = evaluate_rules(rule_set, {"gl_limit": "2,000,000", "endorsements": ["Primary"], "auto_limit": "n/a"})
    ids = [entry.rule_id for entry in evaluation.passing + evaluation.failing + evaluation.missing]
    assert sorted(ids) == sorted(rule.id for rule in rule_set.rules)
    assert [entry.rule_id for entry in evaluation.passing] == ["r-gl"]
    assert [entry.rule_id for entry in evaluation.failing] == ["r-ai"]
    assert sorted(entry.rule_id for entry in evaluation.missing) == ["r-auto", "r-wc"]


def test_evaluation_is_deterministic() -> None:
    snapshot = {"gl_limit": 500000, "workers_comp": "WC-1"}
    first = evaluate_snapshot(rule_set=_rule_set(), vendor_id="v1", snapshot=snapshot, now=utc(2025, 1, 1))
    second = evaluate_snapshot(rule_set=_rule_set(), vendor_id="v1", snapshot=snapshot, now=utc(2025, 1, 1))
    assert first == second


def test_missing_counts_against_score_but_not_compliance() -> None:
    result = evaluate_snapshot(
        rule_set=_rule_set(),
        vendor_id="v1",
        snapshot={"gl_limit": 1000000, "endorsements": ["additional insured"]},
        now=utc(2025, 1, 1),
    )
    assert result.status == STATUS_INCOMPLETE
    assert result.non_compliant is False
    assert result.global_score == 50
    assert result.tier == TIER_HIGH_RISK


def test_status_reflects_failures_first() -> None:
    failing = evaluate_snapshot(rule_set=_rule_set(), vendor_id="v1", snapshot={"gl_limit": 1}, now=utc(2025, 1, 1))
    assert failing.status == STATUS_NON_COMPLIANT
    passing = evaluate_snapshot(
        rule_set=_rule_set(),
        vendor_id="v1",
        snapshot={
            "gl_limit": 1000000,
            "endorsements": ["Additional Insured"],
            "workers_comp": "WC-1",
            "auto_limit": 750000,
        },
        now=utc(2025, 1, 1),
    )
    assert passing.status == STATUS_COMPLIANT
    assert passing.global_score == 100
    assert passing.tier == TIER_ELITE_SAFE


def test_zero_rules_has_no_score() -> None:
    result = evaluate_snapshot(rule_set=RuleSet(org_id="org-test", rules=()), vendor_id="v1", snapshot={}, now=utc(2025, 1, 1))
    assert result.global_score is None
    assert result.tier is None
    assert result.status == STATUS_NO_REQUIREMENTS
    assert result.as_dict()["total_rules"] == 0
