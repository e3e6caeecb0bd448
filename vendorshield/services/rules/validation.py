from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping

from vendorshield.core.errors import RuleValidationError
from vendorshield.domain.models import Rule, RuleGroup
from vendorshield.domain.rules import (
    ALLOWED_CONDITIONS,
    Condition,
    CoverageRule,
    RuleType,
    RuleValue,
    Severity,
)
from vendorshield.services.rules.resolver import parse_date, parse_number


_NUMERIC_CONDITIONS = {Condition.GTE, Condition.LTE}
_DATE_CONDITIONS = {Condition.BEFORE, Condition.AFTER}


@dataclass(frozen=True)
class RuleDraft:
    # Validated rule fields ready to persist; ids are assigned by the caller.
    rule_type: RuleType
    field: str
    condition: Condition
    value: RuleValue
    severity: Severity
    message: str
    active: bool


@dataclass(frozen=True)
class RuleGroupDraft:
    label: str
    severity: Severity
    active: bool
    rules: tuple[RuleDraft, ...]


def _enum(enum_cls: Any, raw: Any, *, field: str) -> Any:
    try:
        return enum_cls(str(raw).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise RuleValidationError(f"{field} must be one of: {allowed} (got {raw!r})") from exc


def parse_severity(raw: Any, *, default: Severity = Severity.MEDIUM) -> Severity:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    return _enum(Severity, raw, field="severity")


def _parse_value(condition: Condition, raw: Any) -> RuleValue:
    if condition in _NUMERIC_CONDITIONS:
        number = parse_number(raw)
        if number is None:
            raise RuleValidationError(f"{condition.value} requires a non-negative numeric value (got {raw!r})")
        return number
    if condition in _DATE_CONDITIONS:
        parsed = parse_date(raw)
        if parsed is None:
            raise RuleValidationError(f"{condition.value} requires a date value (got {raw!r})")
        return parsed
    if condition is Condition.REQUIRES:
        if raw is None or not str(raw).strip():
            raise RuleValidationError("requires needs the endorsement name as its value")
        return str(raw).strip()
    return None


def format_rule_value(value: RuleValue) -> str | None:
    """Serialize a validated value to the text column used for storage."""
    if value is None:
        return None
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return str(value)


def _default_message(field: str, condition: Condition, value: RuleValue) -> str:
    if condition in (Condition.EXISTS, Condition.MISSING):
        return f"{field} {condition.value}"
    return f"{field} {condition.value} {format_rule_value(value)}"


def parse_rule_payload(payload: Mapping[str, Any]) -> RuleDraft:
    """Validate one rule payload into the closed type/condition vocabulary."""
    if not isinstance(payload, Mapping):
        raise RuleValidationError("rule must be an object")
    rule_type = _enum(RuleType, payload.get("type"), field="type")
    condition = _enum(Condition, payload.get("condition"), field="condition")
    if condition not in ALLOWED_CONDITIONS[rule_type]:
        raise RuleValidationError(f"condition {condition.value} is not valid for {rule_type.value} rules")
    field = str(payload.get("field") or "").strip()
    if not field:
        raise RuleValidationError("field is required")
    value = _parse_value(condition, payload.get("value"))
    message = str(payload.get("message") or "").strip() or _default_message(field, condition, value)
    return RuleDraft(
        rule_type=rule_type,
        field=field,
        condition=condition,
        value=value,
        severity=parse_severity(payload.get("severity")),
        message=message,
        active=bool(payload.get("active", True)),
    )


def parse_rule_group_payload(payload: Mapping[str, Any]) -> RuleGroupDraft:
    if not isinstance(payload, Mapping):
        raise RuleValidationError("rule group must be an object")
    label = str(payload.get("label") or "").strip()
    if not label:
        raise RuleValidationError("label is required")
    raw_rules = payload.get("rules") or []
    if not isinstance(raw_rules, (list, tuple)):
        raise RuleValidationError("rules must be a list")
    drafts = []
    for index, item in enumerate(raw_rules):
        try:
            drafts.append(parse_rule_payload(item))
        except RuleValidationError as exc:
            raise RuleValidationError(f"rules[{index}]: {exc}") from exc
    return RuleGroupDraft(
        label=label,
        severity=parse_severity(payload.get("severity")),
        active=bool(payload.get("active", True)),
        rules=tuple(drafts),
    )


def rule_from_row(row: Rule, group: RuleGroup) -> CoverageRule:
    """Re-validate a stored rule so evaluation never branches on unknown strings."""
    if row.group_id != group.id or row.org_id != group.org_id:
        raise RuleValidationError(f"rule {row.id} references group {row.group_id} outside org {row.org_id}")
    draft = parse_rule_payload(
        {
            "type": row.rule_type,
            "field": row.field,
            "condition": row.condition,
            "value": row.value,
            "severity": row.severity,
            "message": row.message,
        }
    )
    return CoverageRule(
        id=row.id,
        org_id=row.org_id,
        group_id=row.group_id,
        rule_type=draft.rule_type,
        field=draft.field,
        condition=draft.condition,
        value=draft.value,
        severity=draft.severity,
        message=draft.message,
        group_label=group.label,
    )
