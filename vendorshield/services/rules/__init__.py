from __future__ import annotations

from vendorshield.services.rules.catalog import ingest_rule_group, list_rule_catalog
from vendorshield.services.rules.conditions import ConditionResult, evaluate_condition
from vendorshield.services.rules.engine import (
    RuleConfigIssue,
    RuleSet,
    evaluate_rules,
    evaluate_snapshot,
    evaluate_vendor,
    load_rule_set,
)
from vendorshield.services.rules.resolver import Resolution, resolve_field
from vendorshield.services.rules.scoring import (
    EvaluationResult,
    RuleEvaluation,
    aggregate,
    get_cached_evaluation,
    persist_evaluation,
    score_from_counts,
    tier_for_score,
)
from vendorshield.services.rules.validation import parse_rule_group_payload, parse_rule_payload


__all__ = [
    "ConditionResult",
    "EvaluationResult",
    "Resolution",
    "RuleConfigIssue",
    "RuleEvaluation",
    "RuleSet",
    "aggregate",
    "evaluate_condition",
    "evaluate_rules",
    "evaluate_snapshot",
    "evaluate_vendor",
    "get_cached_evaluation",
    "ingest_rule_group",
    "list_rule_catalog",
    "load_rule_set",
    "parse_rule_group_payload",
    "parse_rule_payload",
    "persist_evaluation",
    "resolve_field",
    "score_from_counts",
    "tier_for_score",
]
