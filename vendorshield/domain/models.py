from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Use JSONB on Postgres and plain JSON elsewhere (sqlite for local runs and tests).
JsonType = JSON().with_variant(JSONB(), "postgresql")

_UNRESOLVED_PREDICATE = "status IN ('open', 'in_review')"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Vendor(Base):
    __tablename__ = "vendors"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    org_id: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now, server_default=func.now())


class RuleGroup(Base):
    __tablename__ = "rule_groups"
    __table_args__ = (Index("ix_rule_groups_org_active", "org_id", "active"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    org_id: Mapped[str] = mapped_column(String, index=True)
    label: Mapped[str] = mapped_column(String)
    severity: Mapped[str] = mapped_column(String, default="medium")
    # Soft-disable only; rules keep referencing the group for audit history.
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now(), onupdate=_utc_now
    )


class Rule(Base):
    __tablename__ = "rules"
    __table_args__ = (Index("ix_rules_org_group", "org_id", "group_id"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    org_id: Mapped[str] = mapped_column(String, index=True)
    group_id: Mapped[str] = mapped_column(String, ForeignKey("rule_groups.id"))
    rule_type: Mapped[str] = mapped_column(String)
    field: Mapped[str] = mapped_column(String)
    condition: Mapped[str] = mapped_column(String)
    # Stored as text; parsed into number/date/string by the ingestion validator.
    value: Mapped[str | None] = mapped_column(String, nullable=True)
    severity: Mapped[str] = mapped_column(String, default="medium")
    message: Mapped[str] = mapped_column(Text, default="")
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now, server_default=func.now())


class CoverageSnapshot(Base):
    __tablename__ = "coverage_snapshots"

    vendor_id: Mapped[str] = mapped_column(String, primary_key=True)
    org_id: Mapped[str] = mapped_column(String, index=True)
    facts_json: Mapped[Any] = mapped_column(JsonType, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now(), onupdate=_utc_now
    )


class VendorPolicy(Base):
    __tablename__ = "vendor_policies"
    __table_args__ = (Index("ix_vendor_policies_org_vendor", "org_id", "vendor_id"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    org_id: Mapped[str] = mapped_column(String)
    vendor_id: Mapped[str] = mapped_column(String)
    coverage_type: Mapped[str | None] = mapped_column(String, nullable=True)
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class VendorCompliance(Base):
    __tablename__ = "vendor_compliance"

    vendor_id: Mapped[str] = mapped_column(String, primary_key=True)
    org_id: Mapped[str] = mapped_column(String, index=True)
    status: Mapped[str] = mapped_column(String)
    passing_json: Mapped[list[dict[str, Any]]] = mapped_column(JsonType, default=list)
    failing_json: Mapped[list[dict[str, Any]]] = mapped_column(JsonType, default=list)
    missing_json: Mapped[list[dict[str, Any]]] = mapped_column(JsonType, default=list)
    # Null when the org has no active requirements; never coerced to 0 or 100.
    global_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tier: Mapped[str | None] = mapped_column(String, nullable=True)
    total_rules: Mapped[int] = mapped_column(Integer, default=0)
    evaluated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    # Set when the snapshot or the org's rules change after this evaluation.
    stale: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))


class AlertRule(Base):
    __tablename__ = "alert_rules"
    __table_args__ = (Index("ix_alert_rules_org_active", "org_id", "active"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    org_id: Mapped[str] = mapped_column(String)
    label: Mapped[str] = mapped_column(String)
    condition: Mapped[str] = mapped_column(String)
    severity: Mapped[str] = mapped_column(String)
    recipients_json: Mapped[list[str]] = mapped_column(JsonType, default=list)
    template_key: Mapped[str | None] = mapped_column(String, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now, server_default=func.now())


class VendorAlert(Base):
    __tablename__ = "vendor_alerts"
    __table_args__ = (
        Index("ix_vendor_alerts_org_status", "org_id", "status"),
        # At most one unresolved alert per (org, vendor, type), even across processes.
        Index(
            "uq_vendor_alerts_unresolved",
            "org_id",
            "vendor_id",
            "alert_type",
            unique=True,
            postgresql_where=text(_UNRESOLVED_PREDICATE),
            sqlite_where=text(_UNRESOLVED_PREDICATE),
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    org_id: Mapped[str] = mapped_column(String)
    vendor_id: Mapped[str] = mapped_column(String, index=True)
    alert_type: Mapped[str] = mapped_column(String)
    alert_rule_id: Mapped[str | None] = mapped_column(String, ForeignKey("alert_rules.id"), nullable=True)
    severity: Mapped[str] = mapped_column(String)
    message: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String, default="open")
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    in_review_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String, nullable=True)


class AlertTimelineEvent(Base):
    __tablename__ = "alert_timeline_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    alert_id: Mapped[str] = mapped_column(String, ForeignKey("vendor_alerts.id"), index=True)
    org_id: Mapped[str] = mapped_column(String, index=True)
    event_type: Mapped[str] = mapped_column(String)
    actor_id: Mapped[str | None] = mapped_column(String, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)


class AlertNotificationJob(Base):
    __tablename__ = "alert_notification_jobs"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    org_id: Mapped[str] = mapped_column(String, index=True)
    alert_id: Mapped[str] = mapped_column(String, ForeignKey("vendor_alerts.id"), index=True)
    recipient: Mapped[str] = mapped_column(String)
    template_key: Mapped[str | None] = mapped_column(String, nullable=True)
    # Delivery workers own transitions past "queued".
    status: Mapped[str] = mapped_column(String, default="queued")
    payload_json: Mapped[dict[str, Any]] = mapped_column(JsonType, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
