from __future__ import annotations


class VendorShieldError(Exception):
    """Base error for VendorShield."""


class DataError(VendorShieldError):
    """Vendor input data could not be loaded or parsed."""


class SnapshotLoadError(DataError):
    """Coverage snapshot missing or unreadable for a vendor."""

    def __init__(self, vendor_id: str, reason: str) -> None:
        super().__init__(f"coverage snapshot unavailable for vendor {vendor_id}: {reason}")
        self.vendor_id = vendor_id
        self.reason = reason


class ConfigError(VendorShieldError):
    """Rule or alert template definition is invalid."""


class RuleValidationError(ConfigError, ValueError):
    """Rule or rule group payload failed ingestion validation."""


class AlertRuleValidationError(ConfigError, ValueError):
    """Alert template condition or payload failed ingestion validation."""


class ConcurrencyConflict(VendorShieldError):
    """A concurrent writer already created the same open alert."""


class AlertTransitionError(VendorShieldError, ValueError):
    """Requested alert status transition is not allowed."""

    def __init__(self, alert_id: str, current: str, target: str) -> None:
        super().__init__(f"alert {alert_id} cannot move from {current} to {target}")
        self.alert_id = alert_id
        self.current = current
        self.target = target


class DatabaseError(VendorShieldError):
    """Database layer failure."""
