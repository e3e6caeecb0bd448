from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
import math
import re
from typing import Any, Mapping

from vendorshield.domain.rules import ValueKind


VALUE = "value"
EMPTY = "empty"
ABSENT = "absent"

_MISSING_KEY = object()
_NUMERIC_NOISE = re.compile(r"[\s,$€£_]")
_US_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


@dataclass(frozen=True)
class Resolution:
    state: str
    value: Any = None

    @property
    def present(self) -> bool:
        return self.state == VALUE


_ABSENT = Resolution(ABSENT)


def _lookup(snapshot: Mapping[str, Any], field: str) -> Any:
    # Exact keys win so flattened snapshots may contain dots in key names.
    if field in snapshot:
        return snapshot[field]
    if "." not in field:
        return _MISSING_KEY
    current: Any = snapshot
    for part in field.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING_KEY
        current = current[part]
    return current


def parse_number(raw: Any) -> float | None:
    """Parse a non-negative limit amount; anything unusable is None, never 0."""
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, (int, float)):
        text: Any = raw
    elif isinstance(raw, str):
        text = _NUMERIC_NOISE.sub("", raw)
        if not text:
            return None
    else:
        return None
    try:
        parsed = float(text)
    except (OverflowError, ValueError):
        # Ints past the float range are unusable amounts, not errors.
        return None
    if math.isnan(parsed) or math.isinf(parsed) or parsed < 0:
        return None
    return parsed


def parse_date(raw: Any) -> date | None:
    """Parse ISO dates/datetimes or US MM/DD/YYYY; None when unparsable."""
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str):
        return None
    text = raw.strip()
    if not text:
        return None
    us_match = _US_DATE.match(text)
    if us_match:
        month, day, year = (int(part) for part in us_match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def normalize_token(raw: Any) -> str:
    return " ".join(str(raw).split()).casefold()


def _parse_list(raw: Any) -> frozenset[str] | None:
    if isinstance(raw, str):
        items: Any = raw.split(",")
    elif isinstance(raw, (list, tuple, set, frozenset)):
        items = raw
    else:
        return None
    normalized = (normalize_token(item) for item in items if item is not None)
    return frozenset(item for item in normalized if item)


def _is_blank(raw: Any) -> bool:
    if raw is None or raw is False:
        return True
    if isinstance(raw, str):
        return not raw.strip()
    if isinstance(raw, (list, tuple, set, frozenset, dict)):
        return len(raw) == 0
    return False


def resolve_field(snapshot: Mapping[str, Any] | None, field: str, kind: ValueKind) -> Resolution:
    """Resolve a logical rule field against a coverage snapshot.

    Never raises. Lists are the one kind where a missing key is EMPTY rather than
    ABSENT: an extracted certificate with no endorsement list has no endorsements.
    """
    try:
        raw = _lookup(snapshot or {}, field)
    except Exception:  # noqa: BLE001 - malformed snapshot shapes resolve to absent.
        return _ABSENT

    if kind is ValueKind.LIST:
        if raw is _MISSING_KEY or raw is None:
            return Resolution(EMPTY, frozenset())
        items = _parse_list(raw)
        if items is None:
            return _ABSENT
        return Resolution(VALUE, items) if items else Resolution(EMPTY, frozenset())

    if raw is _MISSING_KEY or raw is None:
        return _ABSENT

    if kind is ValueKind.NUMBER:
        number = parse_number(raw)
        return Resolution(VALUE, number) if number is not None else _ABSENT

    if kind is ValueKind.DATE:
        parsed = parse_date(raw)
        return Resolution(VALUE, parsed) if parsed is not None else _ABSENT

    if _is_blank(raw):
        return Resolution(EMPTY, raw)
    return Resolution(VALUE, raw)
