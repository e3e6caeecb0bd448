from __future__ import annotations

import pytest

from vendorshield.core.errors import AlertRuleValidationError
from vendorshield.services.alerts.defaults import create_alert_rule, ensure_default_alert_rules, list_alert_rules
from vendorshield.services.alerts.notifications import enqueue_alert_notifications, list_notification_jobs
from vendorshield.services.alerts.lifecycle import open_alert_for_candidate
from vendorshield.services.alerts.triggers import CandidateAlert
from vendorshield.domain.rules import Severity
from vendorshield.tests.utils.fixtures import seed_vendor


ORG = "org-defaults"


@pytest.mark.asyncio
async def test_default_templates_are_seeded_once(session_factory) -> None:
    async with session_factory() as session:
        created = await ensure_default_alert_rules(session=session, org_id=ORG, recipients=["risk@example.com"])
        assert [(row.condition, row.severity, row.template_key) for row in created] == [
            ("expiration<=30", "critical", "renewal_reminder"),
            ("expiration<=60", "high", "renewal_reminder"),
            ("expiration<=90", "medium", "renewal_reminder"),
            ("non_compliant", "critical", "non_compliance_notice"),
        ]
        assert created[0].recipients_json == ["risk@example.com"]
        assert await ensure_default_alert_rules(session=session, org_id=ORG) == []
        assert len(await list_alert_rules(session=session, org_id=ORG)) == 4


@pytest.mark.asyncio
async def test_defaults_skip_conditions_already_configured(session_factory, monkeypatch) -> None:
    monkeypatch.setenv("DEFAULT_ALERT_RECIPIENTS", "ops@example.com, risk@example.com")
    async with session_factory() as session:
        await create_alert_rule(session=session, org_id=ORG, payload={"condition": "non_compliant", "severity": "low"})
        created = await ensure_default_alert_rules(session=session, org_id=ORG)
        assert [row.condition for row in created] == ["expiration<=30", "expiration<=60", "expiration<=90"]
        assert created[0].recipients_json == ["ops@example.com", "risk@example.com"]


@pytest.mark.asyncio
async def test_create_alert_rule_rejects_unknown_condition(session_factory) -> None:
    async with session_factory() as session:
        with pytest.raises(AlertRuleValidationError):
            await create_alert_rule(session=session, org_id=ORG, payload={"condition": "missing_waiver"})
        assert await list_alert_rules(session=session, org_id=ORG) == []


@pytest.mark.asyncio
async def test_notification_jobs_are_queued_per_unique_recipient(session_factory) -> None:
    async with session_factory() as session:
        await seed_vendor(session, org_id=ORG, vendor_id="v1", facts={}, name="Acme Roofing")
        rule = await create_alert_rule(
            session=session,
            org_id=ORG,
            payload={"condition": "expiration<=30", "severity": "critical", "template_key": "renewal_reminder"},
        )
        candidate = CandidateAlert(
            org_id=ORG,
            vendor_id="v1",
            vendor_name="Acme Roofing",
            alert_type="expiration<=30",
            alert_rule_id=rule.id,
            severity=Severity.CRITICAL,
            message="Policy Expiring <=30 Days: Acme Roofing",
            template_key="renewal_reminder",
            recipients=("risk@example.com", "RISK@example.com", "ops@example.com"),
            metadata={},
        )
        alert, _ = await open_alert_for_candidate(session=session, candidate=candidate)
        jobs = await enqueue_alert_notifications(session=session, alert=alert, candidate=candidate)
        assert [job.recipient for job in jobs] == ["risk@example.com", "ops@example.com"]
        stored = await list_notification_jobs(session=session, org_id=ORG, alert_id=alert.id)
        assert {job.status for job in stored} == {"queued"}
        assert stored[0].payload_json == {
            "vendor_name": "Acme Roofing",
            "alert_code": "expiration<=30",
            "alert_message": "Policy Expiring <=30 Days: Acme Roofing",
            "severity": "critical",
        }
