from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
import logging
from typing import Any, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vendorshield.core.config import Settings, get_settings
from vendorshield.core.errors import DataError
from vendorshield.domain.rules import AlertTemplate
from vendorshield.persistence.db import SessionLocal
from vendorshield.persistence.repos.vendors import get_earliest_expiration, list_vendors
from vendorshield.services.alerts.lifecycle import (
    open_alert_for_candidate,
    open_alert_with_notifications,
    resolve_cleared_alerts,
)
from vendorshield.services.alerts.sla import SlaHealth, org_sla_health
from vendorshield.services.alerts.triggers import (
    VendorAlertContext,
    evaluate_alert_triggers,
    load_alert_templates,
)
from vendorshield.services.rules.engine import RuleSet, evaluate_vendor, load_rule_set
from vendorshield.services.rules.scoring import EvaluationResult, persist_evaluation


logger = logging.getLogger(__name__)

FAILURE_DATA_ERROR = "data_error"
FAILURE_TIMEOUT = "timeout"
FAILURE_UNEXPECTED = "unexpected_error"

RUN_STATUS_OK = "ok"
RUN_STATUS_DISABLED = "disabled"


@dataclass(frozen=True)
class VendorFailure:
    vendor_id: str
    reason: str
    error: str

    def as_dict(self) -> dict[str, str]:
        return {"vendor_id": self.vendor_id, "reason": self.reason, "error": self.error}


@dataclass(frozen=True)
class VendorRunOutcome:
    result: EvaluationResult
    alerts_created: int = 0
    alerts_suppressed: int = 0
    alerts_resolved: int = 0
    notifications_queued: int = 0


@dataclass(frozen=True)
class BatchRunSummary:
    org_id: str
    status: str
    started_at: datetime
    finished_at: datetime
    vendors_total: int = 0
    vendors_evaluated: int = 0
    failures: tuple[VendorFailure, ...] = ()
    average_score: float | None = None
    tier_counts: dict[str, int] = field(default_factory=dict)
    status_counts: dict[str, int] = field(default_factory=dict)
    alerts_created: int = 0
    alerts_suppressed: int = 0
    alerts_resolved: int = 0
    notifications_queued: int = 0
    rule_issues: int = 0
    template_issues: int = 0
    sla: SlaHealth | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "org_id": self.org_id,
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "vendors_total": self.vendors_total,
            "vendors_evaluated": self.vendors_evaluated,
            "failures": [failure.as_dict() for failure in self.failures],
            "average_score": self.average_score,
            "tier_counts": dict(self.tier_counts),
            "status_counts": dict(self.status_counts),
            "alerts_created": self.alerts_created,
            "alerts_suppressed": self.alerts_suppressed,
            "alerts_resolved": self.alerts_resolved,
            "notifications_queued": self.notifications_queued,
            "rule_issues": self.rule_issues,
            "template_issues": self.template_issues,
            "sla": self.sla.as_dict() if self.sla is not None else None,
        }


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def _process_vendor(
    *,
    session: AsyncSession,
    settings: Settings,
    org_id: str,
    vendor_id: str,
    vendor_name: str | None,
    rule_set: RuleSet,
    templates: Sequence[AlertTemplate],
    now: datetime,
    today: date,
) -> VendorRunOutcome:
    result = await evaluate_vendor(session=session, org_id=org_id, vendor_id=vendor_id, rule_set=rule_set, now=now)
    await persist_evaluation(session, result)
    if not templates:
        return VendorRunOutcome(result=result)

    context = VendorAlertContext(
        vendor_id=vendor_id,
        vendor_name=vendor_name,
        earliest_expiration=await get_earliest_expiration(session, org_id, vendor_id),
        non_compliant=result.non_compliant,
    )
    candidates = evaluate_alert_triggers(org_id=org_id, templates=templates, vendors=[context], today=today)
    created = suppressed = queued = 0
    for candidate in candidates:
        if settings.alert_notifications_enabled:
            _, was_created, jobs = await open_alert_with_notifications(session=session, candidate=candidate, now=now)
        else:
            _, was_created = await open_alert_for_candidate(session=session, candidate=candidate, now=now)
            jobs = []
        if not was_created:
            suppressed += 1
            continue
        created += 1
        queued += len(jobs)

    resolved = 0
    if settings.alert_auto_resolve_enabled:
        cleared = await resolve_cleared_alerts(
            session=session,
            org_id=org_id,
            vendor_id=vendor_id,
            evaluated_types={template.condition.code for template in templates},
            triggered_types={candidate.alert_type for candidate in candidates},
            now=now,
        )
        resolved = len(cleared)
    return VendorRunOutcome(
        result=result,
        alerts_created=created,
        alerts_suppressed=suppressed,
        alerts_resolved=resolved,
        notifications_queued=queued,
    )


def _deadline_passed(deadline: float | None, loop: asyncio.AbstractEventLoop) -> bool:
    return deadline is not None and loop.time() >= deadline


def _average(values: list[int]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 1)


async def run_org_batch(
    org_id: str,
    *,
    session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
    now: datetime | None = None,
    max_concurrency: int | None = None,
    timeout_s: float | None = None,
) -> BatchRunSummary:
    """Evaluate every vendor of an org, then raise/resolve alerts and report SLA health.

    One vendor failing never stops the others; aggregates only cover vendors that
    evaluated successfully. Once the deadline passes, vendors that have not started are
    recorded as timeouts while in-flight ones finish.
    """
    settings = get_settings()
    started_at = _utc_now()
    timestamp = now or started_at
    if not settings.compliance_enabled:
        return BatchRunSummary(org_id=org_id, status=RUN_STATUS_DISABLED, started_at=started_at, finished_at=_utc_now())

    async with session_factory() as session:
        rule_set = await load_rule_set(session, org_id)
        vendors = [(row.id, row.name) for row in await list_vendors(session, org_id)]
        templates: tuple[AlertTemplate, ...] = ()
        template_issues: tuple[Any, ...] = ()
        if settings.alerting_enabled:
            templates, template_issues = await load_alert_templates(session, org_id)

    concurrency = max(1, int(max_concurrency or settings.batch_max_concurrency))
    timeout = float(settings.batch_timeout_s if timeout_s is None else timeout_s)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout > 0 else None
    semaphore = asyncio.Semaphore(concurrency)

    async def _run_one(vendor_id: str, vendor_name: str | None) -> VendorRunOutcome | VendorFailure:
        async with semaphore:
            if _deadline_passed(deadline, loop):
                return VendorFailure(vendor_id=vendor_id, reason=FAILURE_TIMEOUT, error="batch deadline passed")
            try:
                async with session_factory() as vendor_session:
                    return await _process_vendor(
                        session=vendor_session,
                        settings=settings,
                        org_id=org_id,
                        vendor_id=vendor_id,
                        vendor_name=vendor_name,
                        rule_set=rule_set,
                        templates=templates,
                        now=timestamp,
                        today=timestamp.date(),
                    )
            except DataError as exc:
                logger.warning("vendor evaluation skipped org=%s vendor=%s: %s", org_id, vendor_id, exc)
                return VendorFailure(vendor_id=vendor_id, reason=FAILURE_DATA_ERROR, error=str(exc))
            except Exception as exc:  # noqa: BLE001 - one vendor must not abort the org run.
                logger.exception("vendor evaluation failed org=%s vendor=%s", org_id, vendor_id)
                return VendorFailure(vendor_id=vendor_id, reason=FAILURE_UNEXPECTED, error=str(exc))

    outcomes = await asyncio.gather(*(_run_one(vendor_id, name) for vendor_id, name in vendors))

    successes = [item for item in outcomes if isinstance(item, VendorRunOutcome)]
    failures = tuple(item for item in outcomes if isinstance(item, VendorFailure))
    scores = [item.result.global_score for item in successes if item.result.global_score is not None]
    tier_counts = Counter(item.result.tier for item in successes if item.result.tier is not None)
    status_counts = Counter(item.result.status for item in successes)

    async with session_factory() as session:
        sla = await org_sla_health(session, org_id, now=timestamp)

    summary = BatchRunSummary(
        org_id=org_id,
        status=RUN_STATUS_OK,
        started_at=started_at,
        finished_at=_utc_now(),
        vendors_total=len(vendors),
        vendors_evaluated=len(successes),
        failures=failures,
        average_score=_average(scores),
        tier_counts=dict(tier_counts),
        status_counts=dict(status_counts),
        alerts_created=sum(item.alerts_created for item in successes),
        alerts_suppressed=sum(item.alerts_suppressed for item in successes),
        alerts_resolved=sum(item.alerts_resolved for item in successes),
        notifications_queued=sum(item.notifications_queued for item in successes),
        rule_issues=len(rule_set.issues),
        template_issues=len(template_issues),
        sla=sla,
    )
    logger.info(
        "compliance batch finished org=%s vendors=%s evaluated=%s failed=%s alerts_created=%s health=%s",
        org_id,
        summary.vendors_total,
        summary.vendors_evaluated,
        len(failures),
        summary.alerts_created,
        sla.health,
    )
    return summary
