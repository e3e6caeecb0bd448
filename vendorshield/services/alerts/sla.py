from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from vendorshield.domain.models import VendorAlert
from vendorshield.domain.rules import UNRESOLVED_ALERT_STATUSES, AlertStatus, Severity
from vendorshield.persistence.repos.vendors import list_expiration_dates


_SECONDS_PER_DAY = 86400

# Penalty per alert in each cumulative age bucket.
_PENALTY_OVER_24H = 5
_PENALTY_OVER_72H = 10
_PENALTY_OVER_7D = 20

EXPIRY_EXPIRED = "expired"


@dataclass(frozen=True)
class SlaHealth:
    open_alerts: int
    over24: int
    over72: int
    over7d: int
    health: int

    def as_dict(self) -> dict[str, int]:
        return {
            "open_alerts": self.open_alerts,
            "over24": self.over24,
            "over72": self.over72,
            "over7d": self.over7d,
            "health": self.health,
        }


@dataclass(frozen=True)
class AlertAging:
    open_alerts: int
    oldest_days: int
    average_days: int
    over7: int
    over30: int

    def as_dict(self) -> dict[str, int]:
        return {
            "open_alerts": self.open_alerts,
            "oldest_days": self.oldest_days,
            "average_days": self.average_days,
            "over7": self.over7,
            "over30": self.over30,
        }


@dataclass(frozen=True)
class ExpirationSummary:
    total: int
    breached: int
    due_soon: int
    on_track: int

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "breached": self.breached,
            "due_soon": self.due_soon,
            "on_track": self.on_track,
        }


def _as_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes; stored values are always UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def alert_age_days(created_at: datetime, now: datetime) -> int:
    """Whole days since creation, floored; clock skew never yields a negative age."""
    elapsed = (_as_utc(now) - _as_utc(created_at)).total_seconds()
    if elapsed <= 0:
        return 0
    return int(elapsed // _SECONDS_PER_DAY)


def _clamp(value: int, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, value))


def compute_sla(created_ats: Iterable[datetime], now: datetime) -> SlaHealth:
    ages = [alert_age_days(created_at, now) for created_at in created_ats]
    if not ages:
        return SlaHealth(open_alerts=0, over24=0, over72=0, over7d=0, health=100)
    # Buckets overlap: a 10 day old alert counts in all three.
    over24 = sum(1 for age in ages if age >= 1)
    over72 = sum(1 for age in ages if age >= 3)
    over7d = sum(1 for age in ages if age >= 7)
    health = _clamp(
        100 - _PENALTY_OVER_24H * over24 - _PENALTY_OVER_72H * over72 - _PENALTY_OVER_7D * over7d
    )
    return SlaHealth(open_alerts=len(ages), over24=over24, over72=over72, over7d=over7d, health=health)


def compute_aging(created_ats: Iterable[datetime], now: datetime) -> AlertAging:
    ages = [alert_age_days(created_at, now) for created_at in created_ats]
    if not ages:
        return AlertAging(open_alerts=0, oldest_days=0, average_days=0, over7=0, over30=0)
    return AlertAging(
        open_alerts=len(ages),
        oldest_days=max(ages),
        average_days=int(sum(ages) / len(ages) + 0.5),
        over7=sum(1 for age in ages if age > 7),
        over30=sum(1 for age in ages if age > 30),
    )


def summarize_expirations(dates: Iterable[date | None], today: date) -> ExpirationSummary:
    breached = due_soon = on_track = 0
    for value in dates:
        if value is None:
            continue
        days_left = (value - today).days
        if days_left < 0:
            breached += 1
        elif days_left <= 7:
            due_soon += 1
        else:
            on_track += 1
    return ExpirationSummary(
        total=breached + due_soon + on_track,
        breached=breached,
        due_soon=due_soon,
        on_track=on_track,
    )


def expiry_severity(days_left: int | None) -> str | None:
    if days_left is None:
        return None
    if days_left < 0:
        return EXPIRY_EXPIRED
    if days_left <= 30:
        return Severity.HIGH.value
    if days_left <= 60:
        return Severity.MEDIUM.value
    if days_left <= 90:
        return Severity.LOW.value
    return None


async def _unresolved_created_ats(session: AsyncSession, org_id: str) -> list[datetime]:
    rows = await session.execute(
        select(VendorAlert.created_at).where(
            VendorAlert.org_id == org_id,
            VendorAlert.status.in_(UNRESOLVED_ALERT_STATUSES),
        )
    )
    return [value for value in rows.scalars().all() if value is not None]


async def org_sla_health(session: AsyncSession, org_id: str, now: datetime | None = None) -> SlaHealth:
    return compute_sla(await _unresolved_created_ats(session, org_id), now or datetime.now(timezone.utc))


async def org_alert_aging(session: AsyncSession, org_id: str, now: datetime | None = None) -> AlertAging:
    return compute_aging(await _unresolved_created_ats(session, org_id), now or datetime.now(timezone.utc))


async def org_alert_stats(session: AsyncSession, org_id: str) -> dict[str, Any]:
    rows = (
        await session.execute(
            select(VendorAlert.status, VendorAlert.severity, func.count(VendorAlert.id))
            .where(VendorAlert.org_id == org_id)
            .group_by(VendorAlert.status, VendorAlert.severity)
        )
    ).all()
    by_status: Counter[str] = Counter({status.value: 0 for status in AlertStatus})
    open_by_severity: Counter[str] = Counter({severity.value: 0 for severity in Severity})
    total = 0
    for status, severity, count in rows:
        total += count
        by_status[status] += count
        if status in UNRESOLVED_ALERT_STATUSES:
            open_by_severity[severity] += count
    return {
        "total": total,
        "by_status": dict(by_status),
        "open_by_severity": dict(open_by_severity),
    }


async def org_expiration_summary(session: AsyncSession, org_id: str, today: date | None = None) -> ExpirationSummary:
    dates = await list_expiration_dates(session, org_id)
    return summarize_expirations(dates, today or datetime.now(timezone.utc).date())
