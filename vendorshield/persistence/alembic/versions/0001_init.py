"""init

Revision ID: 0001_init
Revises: 
Create Date: 2026-10-17 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
UNRESOLVED_PREDICATE = "status IN ('open', 'in_review')"


def upgrade() -> None:
    op.create_table(
        "vendors",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_vendors_org_id", "vendors", ["org_id"])

    op.create_table(
        "rule_groups",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("label", sa.String(), nullable=False),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_rule_groups_org_id", "rule_groups", ["org_id"])
    op.create_index("ix_rule_groups_org_active", "rule_groups", ["org_id", "active"])

    op.create_table(
        "rules",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("group_id", sa.String(), sa.ForeignKey("rule_groups.id"), nullable=False),
        sa.Column("rule_type", sa.String(), nullable=False),
        sa.Column("field", sa.String(), nullable=False),
        sa.Column("condition", sa.String(), nullable=False),
        sa.Column("value", sa.String(), nullable=True),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_rules_org_id", "rules", ["org_id"])
    op.create_index("ix_rules_org_group", "rules", ["org_id", "group_id"])

    op.create_table(
        "coverage_snapshots",
        sa.Column("vendor_id", sa.String(), primary_key=True),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("facts_json", JSON_TYPE, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_coverage_snapshots_org_id", "coverage_snapshots", ["org_id"])

    op.create_table(
        "vendor_policies",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("vendor_id", sa.String(), nullable=False),
        sa.Column("coverage_type", sa.String(), nullable=True),
        sa.Column("expiration_date", sa.Date(), nullable=True),
    )
    op.create_index("ix_vendor_policies_org_vendor", "vendor_policies", ["org_id", "vendor_id"])

    op.create_table(
        "vendor_compliance",
        sa.Column("vendor_id", sa.String(), primary_key=True),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("passing_json", JSON_TYPE, nullable=False),
        sa.Column("failing_json", JSON_TYPE, nullable=False),
        sa.Column("missing_json", JSON_TYPE, nullable=False),
        sa.Column("global_score", sa.Integer(), nullable=True),
        sa.Column("tier", sa.String(), nullable=True),
        sa.Column("total_rules", sa.Integer(), nullable=False),
        sa.Column("evaluated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("stale", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.create_index("ix_vendor_compliance_org_id", "vendor_compliance", ["org_id"])

    op.create_table(
        "alert_rules",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("label", sa.String(), nullable=False),
        sa.Column("condition", sa.String(), nullable=False),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("recipients_json", JSON_TYPE, nullable=False),
        sa.Column("template_key", sa.String(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_alert_rules_org_active", "alert_rules", ["org_id", "active"])

    op.create_table(
        "vendor_alerts",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("vendor_id", sa.String(), nullable=False),
        sa.Column("alert_type", sa.String(), nullable=False),
        sa.Column("alert_rule_id", sa.String(), sa.ForeignKey("alert_rules.id"), nullable=True),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("metadata_json", JSON_TYPE, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("in_review_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(), nullable=True),
    )
    op.create_index("ix_vendor_alerts_vendor_id", "vendor_alerts", ["vendor_id"])
    op.create_index("ix_vendor_alerts_org_status", "vendor_alerts", ["org_id", "status"])
    # Dedup guard that holds across processes, not only inside one runner.
    op.create_index(
        "uq_vendor_alerts_unresolved",
        "vendor_alerts",
        ["org_id", "vendor_id", "alert_type"],
        unique=True,
        postgresql_where=sa.text(UNRESOLVED_PREDICATE),
        sqlite_where=sa.text(UNRESOLVED_PREDICATE),
    )

    op.create_table(
        "alert_timeline_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("alert_id", sa.String(), sa.ForeignKey("vendor_alerts.id"), nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("metadata_json", JSON_TYPE, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_alert_timeline_events_alert_id", "alert_timeline_events", ["alert_id"])
    op.create_index("ix_alert_timeline_events_org_id", "alert_timeline_events", ["org_id"])

    op.create_table(
        "alert_notification_jobs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("alert_id", sa.String(), sa.ForeignKey("vendor_alerts.id"), nullable=False),
        sa.Column("recipient", sa.String(), nullable=False),
        sa.Column("template_key", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("payload_json", JSON_TYPE, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_alert_notification_jobs_org_id", "alert_notification_jobs", ["org_id"])
    op.create_index("ix_alert_notification_jobs_alert_id", "alert_notification_jobs", ["alert_id"])


def downgrade() -> None:
    op.drop_index("ix_alert_notification_jobs_alert_id", table_name="alert_notification_jobs")
    op.drop_index("ix_alert_notification_jobs_org_id", table_name="alert_notification_jobs")
    op.drop_table("alert_notification_jobs")

    op.drop_index("ix_alert_timeline_events_org_id", table_name="alert_timeline_events")
    op.drop_index("ix_alert_timeline_events_alert_id", table_name="alert_timeline_events")
    op.drop_table("alert_timeline_events")

    op.drop_index("uq_vendor_alerts_unresolved", table_name="vendor_alerts")
    op.drop_index("ix_vendor_alerts_org_status", table_name="vendor_alerts")
    op.drop_index("ix_vendor_alerts_vendor_id", table_name="vendor_alerts")
    op.drop_table("vendor_alerts")

    op.drop_index("ix_alert_rules_org_active", table_name="alert_rules")
    op.drop_table("alert_rules")

    op.drop_index("ix_vendor_compliance_org_id", table_name="vendor_compliance")
    op.drop_table("vendor_compliance")

    op.drop_index("ix_vendor_policies_org_vendor", table_name="vendor_policies")
    op.drop_table("vendor_policies")

    op.drop_index("ix_coverage_snapshots_org_id", table_name="coverage_snapshots")
    op.drop_table("coverage_snapshots")

    op.drop_index("ix_rules_org_group", table_name="rules")
    op.drop_index("ix_rules_org_id", table_name="rules")
    op.drop_table("rules")

    op.drop_index("ix_rule_groups_org_active", table_name="rule_groups")
    op.drop_index("ix_rule_groups_org_id", table_name="rule_groups")
    op.drop_table("rule_groups")

    op.drop_index("ix_vendors_org_id", table_name="vendors")
    op.drop_table("vendors")
