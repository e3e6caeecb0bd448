from __future__ import annotations

from typing import Any, Iterable
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vendorshield.domain.models import AlertNotificationJob, VendorAlert
from vendorshield.services.alerts.triggers import CandidateAlert


NOTIFICATION_STATUS_QUEUED = "queued"


def notification_payload(alert: VendorAlert, vendor_name: str | None) -> dict[str, Any]:
    return {
        "vendor_name": vendor_name,
        "alert_code": alert.alert_type,
        "alert_message": alert.message,
        "severity": alert.severity,
    }


async def enqueue_alert_notifications(
    *,
    session: AsyncSession,
    alert: VendorAlert,
    candidate: CandidateAlert,
    commit: bool = True,
) -> list[AlertNotificationJob]:
    # One outbox row per recipient; delivery workers pick up "queued" rows.
    # commit=False leaves the rows in the caller's transaction (flushed only).
    recipients = _unique(candidate.recipients)
    if not recipients:
        return []
    payload = notification_payload(alert, candidate.vendor_name)
    jobs = [
        AlertNotificationJob(
            id=uuid4().hex,
            org_id=alert.org_id,
            alert_id=alert.id,
            recipient=recipient,
            template_key=candidate.template_key,
            status=NOTIFICATION_STATUS_QUEUED,
            payload_json=dict(payload),
        )
        for recipient in recipients
    ]
    session.add_all(jobs)
    if commit:
        await session.commit()
    else:
        await session.flush()
    return jobs


async def list_notification_jobs(*, session: AsyncSession, org_id: str, alert_id: str) -> list[AlertNotificationJob]:
    rows = (
        await session.execute(
            select(AlertNotificationJob)
            .where(AlertNotificationJob.org_id == org_id, AlertNotificationJob.alert_id == alert_id)
            .order_by(AlertNotificationJob.recipient.asc())
        )
    ).scalars().all()
    return list(rows)


def _unique(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        key = value.strip().lower()
        if not key or key in seen:
            continue
        seen.add(key)
        ordered.append(value.strip())
    return ordered
