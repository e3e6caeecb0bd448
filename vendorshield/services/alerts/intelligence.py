"""Per-vendor alert pressure and org watchlist views over unresolved alerts.

The alert score is informational only. Risk tiers stay a function of the
compliance global score.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from vendorshield.domain.models import VendorAlert
from vendorshield.domain.rules import UNRESOLVED_ALERT_STATUSES, Severity


_ALERT_PENALTIES = {
    Severity.CRITICAL.value: 12,
    Severity.HIGH.value: 8,
    Severity.MEDIUM.value: 4,
}
_DEFAULT_PENALTY = 1

DEFAULT_TOP_TYPES_LIMIT = 8
DEFAULT_CRITICAL_VENDORS_LIMIT = 10


@dataclass(frozen=True)
class VendorAlertIntelligence:
    vendor_id: str
    alert_score: int
    total: int
    counts_by_severity: dict[str, int] = field(default_factory=dict)
    counts_by_type: dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "vendor_id": self.vendor_id,
            "alert_score": self.alert_score,
            "total": self.total,
            "counts_by_severity": dict(self.counts_by_severity),
            "counts_by_type": dict(self.counts_by_type),
        }


def _normalize_severity(severity: str | None) -> str:
    return (severity or "").strip().lower()


def alert_penalty_score(severities: Iterable[str | None]) -> int:
    """100 minus a per-alert penalty by severity, clamped to 0..100."""
    penalty = sum(_ALERT_PENALTIES.get(_normalize_severity(sev), _DEFAULT_PENALTY) for sev in severities)
    return max(0, min(100, 100 - penalty))


def summarize_vendor_alerts(vendor_id: str, alerts: Iterable[tuple[str | None, str]]) -> VendorAlertIntelligence:
    """Fold (severity, alert_type) pairs for one vendor's unresolved alerts."""
    pairs = list(alerts)
    by_severity: Counter[str] = Counter({sev.value: 0 for sev in Severity})
    by_type: Counter[str] = Counter()
    for severity, alert_type in pairs:
        normalized = _normalize_severity(severity)
        # Unknown severities count as low, matching their minimum penalty.
        by_severity[normalized if normalized in _ALERT_PENALTIES else Severity.LOW.value] += 1
        by_type[alert_type] += 1
    return VendorAlertIntelligence(
        vendor_id=vendor_id,
        alert_score=alert_penalty_score(severity for severity, _ in pairs),
        total=len(pairs),
        counts_by_severity=dict(by_severity),
        counts_by_type=dict(sorted(by_type.items())),
    )


def _unresolved(org_id: str):
    return (VendorAlert.org_id == org_id, VendorAlert.status.in_(UNRESOLVED_ALERT_STATUSES))


async def vendor_alert_intelligence(session: AsyncSession, org_id: str, vendor_id: str) -> VendorAlertIntelligence:
    rows = await session.execute(
        select(VendorAlert.severity, VendorAlert.alert_type).where(
            *_unresolved(org_id), VendorAlert.vendor_id == vendor_id
        )
    )
    return summarize_vendor_alerts(vendor_id, rows.tuples().all())


async def unresolved_counts_by_vendor(session: AsyncSession, org_id: str) -> dict[str, int]:
    rows = await session.execute(
        select(VendorAlert.vendor_id, func.count(VendorAlert.id))
        .where(*_unresolved(org_id))
        .group_by(VendorAlert.vendor_id)
        .order_by(VendorAlert.vendor_id)
    )
    return {vendor_id: count for vendor_id, count in rows.all()}


async def top_alert_types(
    session: AsyncSession, org_id: str, limit: int = DEFAULT_TOP_TYPES_LIMIT
) -> list[dict[str, Any]]:
    count = func.count(VendorAlert.id)
    rows = await session.execute(
        select(VendorAlert.alert_type, count)
        .where(*_unresolved(org_id))
        .group_by(VendorAlert.alert_type)
        # Ties break on type so the dashboard order is stable.
        .order_by(count.desc(), VendorAlert.alert_type)
        .limit(limit)
    )
    return [{"type": alert_type, "count": total} for alert_type, total in rows.all()]


async def critical_vendors(
    session: AsyncSession, org_id: str, limit: int = DEFAULT_CRITICAL_VENDORS_LIMIT
) -> list[dict[str, Any]]:
    count = func.count(VendorAlert.id)
    rows = await session.execute(
        select(VendorAlert.vendor_id, count)
        .where(*_unresolved(org_id), func.lower(VendorAlert.severity) == Severity.CRITICAL.value)
        .group_by(VendorAlert.vendor_id)
        .order_by(count.desc(), VendorAlert.vendor_id)
        .limit(limit)
    )
    return [{"vendor_id": vendor_id, "critical_count": total} for vendor_id, total in rows.all()]
