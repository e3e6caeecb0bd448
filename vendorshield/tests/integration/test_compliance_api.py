from __future__ import annotations

from datetime import date, timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from vendorshield.apps.api.deps import get_db, get_session_factory
from vendorshield.apps.api.main import create_app


ORG = "org-api"


@pytest.fixture
async def client(session_factory):
    app = create_app()

    async def _override_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as api:
        yield api


async def _create_baseline_group(client: AsyncClient) -> dict:
    response = await client.post(
        f"/v1/orgs/{ORG}/rule-groups",
        json={
            "label": "General Liability",
            "severity": "high",
            "rules": [
                {"type": "limit", "field": "gl_limit", "condition": "gte", "value": "$1,000,000", "severity": "high"},
                {"type": "endorsement", "field": "endorsements", "condition": "requires", "value": "Additional Insured"},
            ],
        },
    )
    assert response.status_code == 201
    return response.json()["data"]


@pytest.mark.asyncio
async def test_health_uses_envelope(client) -> None:
    response = await client.get("/v1/health", headers={"X-Request-Id": "req-health"})
    assert response.status_code == 200
    body = response.json()
    assert body["data"] == {"status": "ok"}
    assert body["meta"] == {"request_id": "req-health", "api_version": "v1"}


@pytest.mark.asyncio
async def test_rule_group_ingestion_and_listing(client) -> None:
    group = await _create_baseline_group(client)
    assert [rule["value"] for rule in group["rules"]] == ["1000000", "Additional Insured"]
    listed = await client.get(f"/v1/orgs/{ORG}/rule-groups")
    assert listed.status_code == 200
    assert [item["id"] for item in listed.json()["data"]["items"]] == [group["id"]]


@pytest.mark.asyncio
async def test_invalid_rule_group_is_rejected_without_writes(client) -> None:
    response = await client.post(
        f"/v1/orgs/{ORG}/rule-groups",
        json={"label": "Bad", "rules": [{"type": "coverage", "field": "gl", "condition": "gte", "value": 1}]},
    )
    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "RULE_VALIDATION_ERROR"
    assert "rules[0]" in error["message"]
    listed = await client.get(f"/v1/orgs/{ORG}/rule-groups")
    assert listed.json()["data"]["items"] == []


@pytest.mark.asyncio
async def test_evaluate_vendor_distinguishes_fail_from_missing(client) -> None:
    await _create_baseline_group(client)
    stored = await client.put(
        f"/v1/orgs/{ORG}/vendors/v1/snapshot",
        json={"vendor_name": "Acme Roofing", "facts": {"gl_limit": 500000}},
    )
    assert stored.status_code == 200

    response = await client.post(f"/v1/orgs/{ORG}/vendors/v1/evaluate")
    assert response.status_code == 200
    result = response.json()["data"]
    assert sorted(entry["field"] for entry in result["failing"]) == ["endorsements", "gl_limit"]
    assert result["missing"] == []
    assert result["status"] == "non_compliant"
    assert result["global_score"] == 0
    assert result["tier"] == "Severe"

    await client.put(f"/v1/orgs/{ORG}/vendors/v1/snapshot", json={"facts": {"endorsements": ["Additional Insured"]}})
    response = await client.post(f"/v1/orgs/{ORG}/vendors/v1/evaluate")
    result = response.json()["data"]
    assert [entry["field"] for entry in result["missing"]] == ["gl_limit"]
    assert result["status"] == "incomplete"
    assert result["global_score"] == 50

    cached = await client.get(f"/v1/orgs/{ORG}/vendors/v1/compliance")
    assert cached.status_code == 200
    assert cached.json()["data"]["global_score"] == 50
    assert cached.json()["data"]["stale"] is False


@pytest.mark.asyncio
async def test_cached_compliance_is_flagged_stale_after_changes(client) -> None:
    await _create_baseline_group(client)
    await client.put(f"/v1/orgs/{ORG}/vendors/v1/snapshot", json={"facts": {"gl_limit": 500000}})
    await client.put(f"/v1/orgs/{ORG}/vendors/v2/snapshot", json={"facts": {"gl_limit": 500000}})
    await client.post(f"/v1/orgs/{ORG}/vendors/v1/evaluate")
    await client.post(f"/v1/orgs/{ORG}/vendors/v2/evaluate")

    await client.put(
        f"/v1/orgs/{ORG}/vendors/v1/snapshot",
        json={"facts": {"gl_limit": 2000000, "endorsements": ["Additional Insured"]}},
    )
    cached = (await client.get(f"/v1/orgs/{ORG}/vendors/v1/compliance")).json()["data"]
    assert cached["stale"] is True
    assert cached["global_score"] == 0
    other = (await client.get(f"/v1/orgs/{ORG}/vendors/v2/compliance")).json()["data"]
    assert other["stale"] is False

    refreshed = await client.post(f"/v1/orgs/{ORG}/vendors/v1/evaluate")
    assert refreshed.json()["data"]["global_score"] == 100
    cached = (await client.get(f"/v1/orgs/{ORG}/vendors/v1/compliance")).json()["data"]
    assert cached["stale"] is False

    # New rules invalidate every cached result in the org.
    await _create_baseline_group(client)
    for vendor_id in ("v1", "v2"):
        cached = (await client.get(f"/v1/orgs/{ORG}/vendors/{vendor_id}/compliance")).json()["data"]
        assert cached["stale"] is True


@pytest.mark.asyncio
async def test_evaluate_without_snapshot_returns_404(client) -> None:
    response = await client.post(f"/v1/orgs/{ORG}/vendors/ghost/evaluate")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "SNAPSHOT_NOT_FOUND"
    missing_cache = await client.get(f"/v1/orgs/{ORG}/vendors/ghost/compliance")
    assert missing_cache.status_code == 404
    assert missing_cache.json()["error"]["code"] == "COMPLIANCE_NOT_FOUND"


@pytest.mark.asyncio
async def test_vendor_id_owned_by_other_org_is_not_found(client) -> None:
    await client.put(f"/v1/orgs/{ORG}/vendors/shared/snapshot", json={"facts": {}})
    response = await client.put("/v1/orgs/org-other/vendors/shared/snapshot", json={"facts": {}})
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "VENDOR_NOT_FOUND"


@pytest.mark.asyncio
async def test_batch_run_alert_lifecycle_and_sla(client) -> None:
    await _create_baseline_group(client)
    defaults = await client.post(f"/v1/orgs/{ORG}/alert-rules/defaults", json={"recipients": ["risk@example.com"]})
    assert defaults.status_code == 200
    assert len(defaults.json()["data"]["created"]) == 4
    again = await client.post(f"/v1/orgs/{ORG}/alert-rules/defaults")
    assert again.json()["data"]["created"] == []

    expiring = (date.today() + timedelta(days=10)).isoformat()
    await client.put(
        f"/v1/orgs/{ORG}/vendors/v1/snapshot",
        json={
            "vendor_name": "Acme Roofing",
            "facts": {"gl_limit": 2000000, "endorsements": ["Additional Insured"]},
            "policies": [{"coverage_type": "general_liability", "expiration_date": expiring}],
        },
    )

    run = await client.post(f"/v1/orgs/{ORG}/compliance/run", json={"max_concurrency": 1})
    assert run.status_code == 200
    summary = run.json()["data"]
    assert summary["vendors_evaluated"] == 1
    # 10 days out matches the 30, 60 and 90 day templates.
    assert summary["alerts_created"] == 3
    assert summary["notifications_queued"] == 3

    rerun = await client.post(f"/v1/orgs/{ORG}/compliance/run", json={"max_concurrency": 1})
    assert rerun.json()["data"]["alerts_created"] == 0

    alerts = (await client.get(f"/v1/orgs/{ORG}/alerts", params={"status": "open"})).json()["data"]["items"]
    assert sorted(item["type"] for item in alerts) == ["expiration<=30", "expiration<=60", "expiration<=90"]
    target = next(item for item in alerts if item["type"] == "expiration<=30")

    watchlist = (await client.get(f"/v1/orgs/{ORG}/alerts/critical-vendors")).json()["data"]["items"]
    assert watchlist == [{"vendor_id": "v1", "critical_count": 1}]

    reviewed = await client.post(f"/v1/orgs/{ORG}/alerts/{target['id']}/review", json={"actor_id": "analyst"})
    assert reviewed.status_code == 200
    assert reviewed.json()["data"]["status"] == "in_review"
    resolved = await client.post(f"/v1/orgs/{ORG}/alerts/{target['id']}/resolve", json={"note": "COI received"})
    assert resolved.json()["data"]["status"] == "resolved"
    invalid = await client.post(f"/v1/orgs/{ORG}/alerts/{target['id']}/review")
    assert invalid.status_code == 409
    assert invalid.json()["error"]["code"] == "ALERT_TRANSITION_INVALID"

    timeline = await client.get(f"/v1/orgs/{ORG}/alerts/{target['id']}/timeline")
    assert [row["event_type"] for row in timeline.json()["data"]["items"]] == [
        "alert.opened",
        "alert.in_review",
        "alert.resolved",
    ]

    sla = (await client.get(f"/v1/orgs/{ORG}/alerts/sla")).json()["data"]
    assert sla == {"open_alerts": 2, "over24": 0, "over72": 0, "over7d": 0, "health": 100}
    aging = (await client.get(f"/v1/orgs/{ORG}/alerts/aging")).json()["data"]
    assert aging["open_alerts"] == 2
    expirations = (await client.get(f"/v1/orgs/{ORG}/alerts/expirations")).json()["data"]
    assert expirations == {"total": 1, "breached": 0, "due_soon": 0, "on_track": 1}
    stats = (await client.get(f"/v1/orgs/{ORG}/alerts/stats")).json()["data"]
    assert stats["total"] == 3
    assert stats["by_status"] == {"open": 2, "in_review": 0, "resolved": 1}
    assert stats["open_by_severity"]["high"] == 1

    top = (await client.get(f"/v1/orgs/{ORG}/alerts/top-types", params={"limit": 1})).json()["data"]["items"]
    assert top == [{"type": "expiration<=60", "count": 1}]
    by_vendor = (await client.get(f"/v1/orgs/{ORG}/alerts/by-vendor")).json()["data"]
    assert by_vendor == {"v1": 2}
    intel = (await client.get(f"/v1/orgs/{ORG}/vendors/v1/alert-intelligence")).json()["data"]
    assert intel["alert_score"] == 100 - 8 - 4
    assert intel["counts_by_type"] == {"expiration<=60": 1, "expiration<=90": 1}
    # Open alerts never move the compliance tier.
    cached = (await client.get(f"/v1/orgs/{ORG}/vendors/v1/compliance")).json()["data"]
    assert cached["tier"] == "Elite Safe"
    empty = await client.get(f"/v1/orgs/{ORG}/alerts/critical-vendors")
    assert empty.json()["data"]["items"] == []


@pytest.mark.asyncio
async def test_alert_rule_validation_and_unknown_alert(client) -> None:
    bad = await client.post(f"/v1/orgs/{ORG}/alert-rules", json={"condition": "expiration>30"})
    assert bad.status_code == 422
    assert bad.json()["error"]["code"] == "ALERT_RULE_VALIDATION_ERROR"
    created = await client.post(f"/v1/orgs/{ORG}/alert-rules", json={"condition": "expired", "severity": "critical"})
    assert created.status_code == 201
    listed = await client.get(f"/v1/orgs/{ORG}/alert-rules")
    assert [item["condition"] for item in listed.json()["data"]["items"]] == ["expired"]
    missing = await client.post(f"/v1/orgs/{ORG}/alerts/nope/resolve")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "ALERT_NOT_FOUND"
