from __future__ import annotations

from datetime import date

import pytest

from vendorshield.core.errors import ConfigError, RuleValidationError
from vendorshield.domain.models import Rule, RuleGroup
from vendorshield.domain.rules import Condition, RuleType, Severity
from vendorshield.services.rules.validation import (
    format_rule_value,
    parse_rule_group_payload,
    parse_rule_payload,
    rule_from_row,
)


def test_parse_rule_payload_normalizes_closed_vocabulary() -> None:
    draft = parse_rule_payload(
        {"type": "LIMIT", "field": "gl_limit", "condition": "gte", "value": "$1,000,000", "severity": "High"}
    )
    assert draft.rule_type is RuleType.LIMIT
    assert draft.condition is Condition.GTE
    assert draft.value == 1000000.0
    assert draft.severity is Severity.HIGH
    assert draft.message == "gl_limit gte 1000000"


@pytest.mark.parametrize(
    ("payload", "fragment"),
    [
        ({"type": "umbrella", "field": "x", "condition": "exists"}, "type must be one of"),
        ({"type": "limit", "field": "x", "condition": "between"}, "condition must be one of"),
        ({"type": "coverage", "field": "x", "condition": "gte", "value": 1}, "not valid for coverage"),
        ({"type": "limit", "field": "", "condition": "exists"}, "field is required"),
        ({"type": "limit", "field": "x", "condition": "gte", "value": "lots"}, "numeric value"),
        ({"type": "limit", "field": "x", "condition": "gte", "value": 10**400}, "numeric value"),
        ({"type": "date", "field": "x", "condition": "before", "value": "someday"}, "date value"),
        ({"type": "endorsement", "field": "x", "condition": "requires"}, "endorsement name"),
        ({"type": "limit", "field": "x", "condition": "exists", "severity": "urgent"}, "severity must be one of"),
    ],
)
def test_parse_rule_payload_rejects_unknown_values(payload, fragment) -> None:
    with pytest.raises(RuleValidationError) as exc_info:
        parse_rule_payload(payload)
    assert fragment in str(exc_info.value)
    assert isinstance(exc_info.value, ConfigError)


def test_group_payload_reports_rule_index() -> None:
    with pytest.raises(RuleValidationError, match=r"rules\[1\]"):
        parse_rule_group_payload(
            {
                "label": "GL baseline",
                "rules": [
                    {"type": "limit", "field": "gl_limit", "condition": "gte", "value": 1000000},
                    {"type": "limit", "field": "gl_limit", "condition": "requires", "value": "AI"},
                ],
            }
        )


def test_group_payload_defaults_severity_to_medium() -> None:
    draft = parse_rule_group_payload({"label": "Auto", "rules": []})
    assert draft.severity is Severity.MEDIUM
    assert draft.rules == ()


def test_format_rule_value_round_trips_through_storage() -> None:
    assert format_rule_value(1000000.0) == "1000000"
    assert format_rule_value(2.5) == "2.5"
    assert format_rule_value(date(2025, 1, 31)) == "2025-01-31"
    assert format_rule_value(None) is None


def test_rule_from_row_rejects_cross_group_rows() -> None:
    group = RuleGroup(id="g1", org_id="org-a", label="Baseline", severity="medium", active=True)
    row = Rule(
        id="r1",
        org_id="org-b",
        group_id="g1",
        rule_type="limit",
        field="gl_limit",
        condition="gte",
        value="1000",
        severity="low",
        message="GL",
        active=True,
    )
    with pytest.raises(RuleValidationError):
        rule_from_row(row, group)


def test_rule_from_row_revalidates_stored_strings() -> None:
    group = RuleGroup(id="g1", org_id="org-a", label="Baseline", severity="medium", active=True)
    row = Rule(
        id="r1",
        org_id="org-a",
        group_id="g1",
        rule_type="date",
        field="expiration_date",
        condition="after",
        value="2025-01-31",
        severity="critical",
        message="Policy must run past January",
        active=True,
    )
    rule = rule_from_row(row, group)
    assert rule.value == date(2025, 1, 31)
    assert rule.group_label == "Baseline"
