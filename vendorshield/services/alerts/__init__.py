from vendorshield.services.alerts.defaults import (
    create_alert_rule,
    ensure_default_alert_rules,
    list_alert_rules,
)
from vendorshield.services.alerts.intelligence import (
    VendorAlertIntelligence,
    alert_penalty_score,
    critical_vendors,
    summarize_vendor_alerts,
    top_alert_types,
    unresolved_counts_by_vendor,
    vendor_alert_intelligence,
)
from vendorshield.services.alerts.lifecycle import (
    get_alert,
    list_alert_timeline,
    list_alerts,
    mark_alert_in_review,
    open_alert_for_candidate,
    open_alert_with_notifications,
    resolve_alert,
    resolve_cleared_alerts,
)
from vendorshield.services.alerts.notifications import enqueue_alert_notifications
from vendorshield.services.alerts.sla import (
    compute_aging,
    compute_sla,
    expiry_severity,
    org_alert_aging,
    org_alert_stats,
    org_expiration_summary,
    org_sla_health,
    summarize_expirations,
)
from vendorshield.services.alerts.triggers import (
    CandidateAlert,
    VendorAlertContext,
    evaluate_alert_triggers,
    load_alert_templates,
    parse_alert_condition,
)

__all__ = [
    "CandidateAlert",
    "VendorAlertContext",
    "VendorAlertIntelligence",
    "alert_penalty_score",
    "compute_aging",
    "compute_sla",
    "create_alert_rule",
    "critical_vendors",
    "enqueue_alert_notifications",
    "ensure_default_alert_rules",
    "evaluate_alert_triggers",
    "expiry_severity",
    "get_alert",
    "list_alert_rules",
    "list_alert_timeline",
    "list_alerts",
    "load_alert_templates",
    "mark_alert_in_review",
    "open_alert_for_candidate",
    "open_alert_with_notifications",
    "org_alert_aging",
    "org_alert_stats",
    "org_expiration_summary",
    "org_sla_health",
    "parse_alert_condition",
    "resolve_alert",
    "resolve_cleared_alerts",
    "summarize_expirations",
    "summarize_vendor_alerts",
    "top_alert_types",
    "unresolved_counts_by_vendor",
    "vendor_alert_intelligence",
]
