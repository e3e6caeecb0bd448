from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Any, Iterable
from uuid import uuid4
import weakref

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from vendorshield.core.errors import AlertTransitionError, ConcurrencyConflict
from vendorshield.domain.models import AlertNotificationJob, AlertTimelineEvent, VendorAlert
from vendorshield.domain.rules import UNRESOLVED_ALERT_STATUSES, AlertStatus, Severity
from vendorshield.services.alerts.notifications import enqueue_alert_notifications
from vendorshield.services.alerts.triggers import CandidateAlert


logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    AlertStatus.OPEN.value: frozenset({AlertStatus.IN_REVIEW.value, AlertStatus.RESOLVED.value}),
    AlertStatus.IN_REVIEW.value: frozenset({AlertStatus.RESOLVED.value}),
    AlertStatus.RESOLVED.value: frozenset(),
}

# Fixed pool of locks per event loop; vendors hash onto a stripe so memory stays bounded.
# An asyncio.Lock must not be shared across loops.
LOCK_STRIPES = 64
_vendor_locks: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, tuple[asyncio.Lock, ...]] = (
    weakref.WeakKeyDictionary()
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _severity_rank(value: str | None) -> int:
    try:
        return Severity(str(value or "").strip().lower()).rank
    except ValueError:
        return 0


def _vendor_lock(org_id: str, vendor_id: str) -> asyncio.Lock:
    # Serialize alert writes per vendor inside this process; the unique index covers other processes.
    loop = asyncio.get_running_loop()
    stripes = _vendor_locks.get(loop)
    if stripes is None:
        stripes = tuple(asyncio.Lock() for _ in range(LOCK_STRIPES))
        _vendor_locks[loop] = stripes
    return stripes[hash((org_id, vendor_id)) % LOCK_STRIPES]


async def _append_timeline_event(
    *,
    session: AsyncSession,
    alert: VendorAlert,
    event_type: str,
    actor_id: str | None,
    note: str | None = None,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> AlertTimelineEvent:
    row = AlertTimelineEvent(
        alert_id=alert.id,
        org_id=alert.org_id,
        event_type=event_type,
        actor_id=actor_id,
        note=note,
        metadata_json=metadata,
        created_at=now or _utc_now(),
    )
    session.add(row)
    await session.flush()
    return row


async def find_unresolved_alert(
    *, session: AsyncSession, org_id: str, vendor_id: str, alert_type: str
) -> VendorAlert | None:
    return (
        await session.execute(
            select(VendorAlert)
            .where(
                VendorAlert.org_id == org_id,
                VendorAlert.vendor_id == vendor_id,
                VendorAlert.alert_type == alert_type,
                VendorAlert.status.in_(UNRESOLVED_ALERT_STATUSES),
            )
            .limit(1)
        )
    ).scalar_one_or_none()


async def open_alert_for_candidate(
    *,
    session: AsyncSession,
    candidate: CandidateAlert,
    actor_id: str | None = "system",
    now: datetime | None = None,
) -> tuple[VendorAlert, bool]:
    """Create an alert unless an unresolved one already exists for (vendor, type).

    Returns ``(alert, created)``. A lost insert race is reported as ``created=False``
    with the winning row, never as a failure.
    """
    alert, created, _ = await _open_alert(session=session, candidate=candidate, actor_id=actor_id, now=now, notify=False)
    return alert, created


async def open_alert_with_notifications(
    *,
    session: AsyncSession,
    candidate: CandidateAlert,
    actor_id: str | None = "system",
    now: datetime | None = None,
) -> tuple[VendorAlert, bool, list[AlertNotificationJob]]:
    """Like ``open_alert_for_candidate`` but queues outbox rows for a new alert.

    The alert, its timeline row and its notification jobs commit together; if queuing
    fails nothing is persisted and the next run raises the alert again.
    """
    return await _open_alert(session=session, candidate=candidate, actor_id=actor_id, now=now, notify=True)


async def _open_alert(
    *,
    session: AsyncSession,
    candidate: CandidateAlert,
    actor_id: str | None,
    now: datetime | None,
    notify: bool,
) -> tuple[VendorAlert, bool, list[AlertNotificationJob]]:
    timestamp = now or _utc_now()
    async with _vendor_lock(candidate.org_id, candidate.vendor_id):
        existing = await find_unresolved_alert(
            session=session,
            org_id=candidate.org_id,
            vendor_id=candidate.vendor_id,
            alert_type=candidate.alert_type,
        )
        if existing is not None:
            # Only escalate; a lower-severity retrigger never downgrades an open alert.
            if candidate.severity.rank > _severity_rank(existing.severity):
                previous = existing.severity
                existing.severity = candidate.severity.value
                await _append_timeline_event(
                    session=session,
                    alert=existing,
                    event_type="alert.escalated",
                    actor_id=actor_id,
                    metadata={"from": previous, "to": candidate.severity.value},
                    now=timestamp,
                )
                await session.commit()
            return existing, False, []

        alert = VendorAlert(
            id=uuid4().hex,
            org_id=candidate.org_id,
            vendor_id=candidate.vendor_id,
            alert_type=candidate.alert_type,
            alert_rule_id=candidate.alert_rule_id,
            severity=candidate.severity.value,
            message=candidate.message,
            status=AlertStatus.OPEN.value,
            metadata_json=dict(candidate.metadata),
            created_at=timestamp,
        )
        session.add(alert)
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            winner = await find_unresolved_alert(
                session=session,
                org_id=candidate.org_id,
                vendor_id=candidate.vendor_id,
                alert_type=candidate.alert_type,
            )
            if winner is None:
                raise ConcurrencyConflict(
                    f"alert insert for vendor {candidate.vendor_id} type {candidate.alert_type} conflicted"
                )
            logger.info(
                "alert already exists org=%s vendor=%s type=%s",
                candidate.org_id,
                candidate.vendor_id,
                candidate.alert_type,
            )
            return winner, False, []

        await _append_timeline_event(
            session=session,
            alert=alert,
            event_type="alert.opened",
            actor_id=actor_id,
            note=candidate.message,
            metadata={"alert_rule_id": candidate.alert_rule_id, "severity": candidate.severity.value},
            now=timestamp,
        )
        jobs: list[AlertNotificationJob] = []
        if notify:
            try:
                jobs = await enqueue_alert_notifications(
                    session=session, alert=alert, candidate=candidate, commit=False
                )
            except Exception:
                await session.rollback()
                raise
        await session.commit()
        return alert, True, jobs


async def _transition(
    *,
    session: AsyncSession,
    org_id: str,
    alert_id: str,
    target: AlertStatus,
    event_type: str,
    actor_id: str | None,
    note: str | None,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> VendorAlert | None:
    alert = await session.get(VendorAlert, alert_id)
    if alert is None or alert.org_id != org_id:
        return None
    if target.value not in _ALLOWED_TRANSITIONS.get(alert.status, frozenset()):
        raise AlertTransitionError(alert.id, alert.status, target.value)
    timestamp = now or _utc_now()
    previous = alert.status
    alert.status = target.value
    if target is AlertStatus.IN_REVIEW:
        alert.in_review_at = timestamp
    if target is AlertStatus.RESOLVED:
        alert.resolved_at = timestamp
        alert.resolved_by = actor_id
    await _append_timeline_event(
        session=session,
        alert=alert,
        event_type=event_type,
        actor_id=actor_id,
        note=note,
        metadata={"from": previous, **(metadata or {})},
        now=timestamp,
    )
    await session.commit()
    return alert


async def mark_alert_in_review(
    *,
    session: AsyncSession,
    org_id: str,
    alert_id: str,
    actor_id: str | None,
    action: str = "request_coi",
    note: str | None = None,
    now: datetime | None = None,
) -> VendorAlert | None:
    # A remediation action (e.g. requesting an updated COI) moves the alert into review.
    return await _transition(
        session=session,
        org_id=org_id,
        alert_id=alert_id,
        target=AlertStatus.IN_REVIEW,
        event_type="alert.in_review",
        actor_id=actor_id,
        note=note,
        metadata={"action": action},
        now=now,
    )


async def resolve_alert(
    *,
    session: AsyncSession,
    org_id: str,
    alert_id: str,
    actor_id: str | None,
    note: str | None = None,
    now: datetime | None = None,
) -> VendorAlert | None:
    return await _transition(
        session=session,
        org_id=org_id,
        alert_id=alert_id,
        target=AlertStatus.RESOLVED,
        event_type="alert.resolved",
        actor_id=actor_id,
        note=note,
        now=now,
    )


async def resolve_cleared_alerts(
    *,
    session: AsyncSession,
    org_id: str,
    vendor_id: str,
    evaluated_types: Iterable[str],
    triggered_types: Iterable[str],
    now: datetime | None = None,
) -> list[VendorAlert]:
    """Resolve template alerts whose trigger was evaluated this run and no longer holds."""
    cleared = set(evaluated_types) - set(triggered_types)
    if not cleared:
        return []
    async with _vendor_lock(org_id, vendor_id):
        rows = (
            await session.execute(
                select(VendorAlert).where(
                    VendorAlert.org_id == org_id,
                    VendorAlert.vendor_id == vendor_id,
                    VendorAlert.alert_type.in_(sorted(cleared)),
                    VendorAlert.alert_rule_id.is_not(None),
                    VendorAlert.status.in_(UNRESOLVED_ALERT_STATUSES),
                )
            )
        ).scalars().all()
        resolved: list[VendorAlert] = []
        for row in rows:
            alert = await _transition(
                session=session,
                org_id=org_id,
                alert_id=row.id,
                target=AlertStatus.RESOLVED,
                event_type="alert.auto_resolved",
                actor_id="system",
                note="Triggering condition no longer holds",
                now=now,
            )
            if alert is not None:
                resolved.append(alert)
        return resolved


async def list_alerts(
    *,
    session: AsyncSession,
    org_id: str,
    status_filter: str | None = None,
    vendor_id: str | None = None,
) -> list[VendorAlert]:
    # Newest first for triage views.
    query = select(VendorAlert).where(VendorAlert.org_id == org_id)
    if status_filter:
        query = query.where(VendorAlert.status == status_filter)
    if vendor_id:
        query = query.where(VendorAlert.vendor_id == vendor_id)
    result = await session.execute(query.order_by(VendorAlert.created_at.desc(), VendorAlert.id))
    return list(result.scalars().all())


async def get_alert(*, session: AsyncSession, org_id: str, alert_id: str) -> VendorAlert | None:
    alert = await session.get(VendorAlert, alert_id)
    if alert is None or alert.org_id != org_id:
        return None
    return alert


async def list_alert_timeline(
    *, session: AsyncSession, org_id: str, alert_id: str
) -> list[AlertTimelineEvent]:
    alert = await session.get(VendorAlert, alert_id)
    if alert is None or alert.org_id != org_id:
        return []
    rows = (
        await session.execute(
            select(AlertTimelineEvent)
            .where(AlertTimelineEvent.org_id == org_id, AlertTimelineEvent.alert_id == alert_id)
            .order_by(AlertTimelineEvent.created_at.asc(), AlertTimelineEvent.id.asc())
        )
    ).scalars().all()
    return list(rows)


def alert_payload(row: VendorAlert) -> dict[str, Any]:
    return {
        "id": row.id,
        "org_id": row.org_id,
        "vendor_id": row.vendor_id,
        "type": row.alert_type,
        "alert_rule_id": row.alert_rule_id,
        "severity": row.severity,
        "message": row.message,
        "status": row.status,
        "metadata": row.metadata_json,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "in_review_at": row.in_review_at.isoformat() if row.in_review_at else None,
        "resolved_at": row.resolved_at.isoformat() if row.resolved_at else None,
        "resolved_by": row.resolved_by,
    }
