from __future__ import annotations

from datetime import date, timedelta

import pytest

from vendorshield.core.errors import AlertRuleValidationError
from vendorshield.domain.rules import Severity
from vendorshield.services.alerts.triggers import (
    KIND_EXPIRATION_WITHIN,
    VendorAlertContext,
    condition_holds,
    earliest_expiration,
    evaluate_alert_triggers,
    parse_alert_condition,
    parse_alert_rule_payload,
)
from vendorshield.tests.utils.fixtures import make_template


TODAY = date(2025, 6, 1)


def _context(days_out: int | None, *, non_compliant: bool = False, vendor_id: str = "v1") -> VendorAlertContext:
    expiration = TODAY + timedelta(days=days_out) if days_out is not None else None
    return VendorAlertContext(
        vendor_id=vendor_id,
        vendor_name="Acme Roofing",
        earliest_expiration=expiration,
        non_compliant=non_compliant,
    )


def test_parse_alert_condition_grammar() -> None:
    parsed = parse_alert_condition(" Expiration <= 30 ")
    assert parsed.kind == KIND_EXPIRATION_WITHIN
    assert parsed.threshold_days == 30
    assert parsed.code == "expiration<=30"
    assert parse_alert_condition("non_compliant").code == "non_compliant"
    assert parse_alert_condition("expired").code == "expired"


@pytest.mark.parametrize("raw", ["", "expiration<30", "expiration<=-5", "missing_waiver", None])
def test_parse_alert_condition_rejects_unknown(raw) -> None:
    with pytest.raises(AlertRuleValidationError):
        parse_alert_condition(raw)


def test_alert_rule_payload_normalizes_recipients() -> None:
    fields = parse_alert_rule_payload(
        {"condition": "expiration<=60", "severity": "high", "recipients": "ops@example.com, ,risk@example.com"}
    )
    assert fields["recipients_json"] == ["ops@example.com", "risk@example.com"]
    assert fields["label"] == "expiration<=60"
    with pytest.raises(AlertRuleValidationError):
        parse_alert_rule_payload({"condition": "non_compliant", "severity": "sev0"})


def test_earliest_expiration_ignores_unknown_dates() -> None:
    assert earliest_expiration([None, date(2025, 9, 1), date(2025, 7, 1)]) == date(2025, 7, 1)
    assert earliest_expiration([None]) is None


def test_expiration_window_is_inclusive_and_includes_expired() -> None:
    within_30 = parse_alert_condition("expiration<=30")
    assert condition_holds(within_30, _context(30), TODAY)
    assert not condition_holds(within_30, _context(31), TODAY)
    assert condition_holds(within_30, _context(-3), TODAY)
    assert not condition_holds(within_30, _context(None), TODAY)


def test_expired_condition_only_after_expiration() -> None:
    expired = parse_alert_condition("expired")
    assert condition_holds(expired, _context(-1), TODAY)
    assert not condition_holds(expired, _context(0), TODAY)


def test_triggers_one_candidate_per_matching_template() -> None:
    templates = [
        make_template(parse_alert_condition("expiration<=30"), Severity.CRITICAL, template_id="t30"),
        make_template(parse_alert_condition("expiration<=60"), Severity.HIGH, template_id="t60"),
        make_template(parse_alert_condition("non_compliant"), Severity.CRITICAL, template_id="tnc"),
    ]
    candidates = evaluate_alert_triggers(
        org_id="org-test",
        templates=templates,
        vendors=[_context(10), _context(45, vendor_id="v2", non_compliant=True), _context(None, vendor_id="v3")],
        today=TODAY,
    )
    pairs = sorted((candidate.vendor_id, candidate.alert_type) for candidate in candidates)
    assert pairs == [
        ("v1", "expiration<=30"),
        ("v1", "expiration<=60"),
        ("v2", "expiration<=60"),
        ("v2", "non_compliant"),
    ]
    first = next(candidate for candidate in candidates if candidate.alert_rule_id == "t30")
    assert first.metadata["days_left"] == 10
    assert first.severity is Severity.CRITICAL
    assert "Acme Roofing" in first.message
