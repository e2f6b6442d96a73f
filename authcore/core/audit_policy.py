"""Audit action enumeration and the risk / retention classification table."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional

from authcore.core.config import Settings, settings


class AuditAction(str, Enum):
    """Closed set of actions that may be written to the audit trail."""

    # Sessions and credentials
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    FAILED_LOGIN_ATTEMPT = "FAILED_LOGIN_ATTEMPT"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    PASSWORD_HASH_MIGRATED = "PASSWORD_HASH_MIGRATED"
    RESET_USER_PASSWORD = "RESET_USER_PASSWORD"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    IP_BLOCKED = "IP_BLOCKED"
    IP_UNBLOCKED = "IP_UNBLOCKED"

    # Users
    VIEW_USERS = "VIEW_USERS"
    CREATE_USER = "CREATE_USER"
    UPDATE_USER = "UPDATE_USER"
    DELETE_USER = "DELETE_USER"
    EXPORT_USER_DATA = "EXPORT_USER_DATA"

    # Roles and permissions
    ROLE_CREATED = "ROLE_CREATED"
    ROLE_UPDATED = "ROLE_UPDATED"
    ROLE_DELETED = "ROLE_DELETED"
    ROLE_ASSIGNED = "ROLE_ASSIGNED"
    CHANGE_USER_ROLE = "CHANGE_USER_ROLE"
    UNAUTHORIZED_ACCESS = "UNAUTHORIZED_ACCESS"

    # Catalog and orders
    VIEW_PRODUCTS = "VIEW_PRODUCTS"
    CREATE_PRODUCT = "CREATE_PRODUCT"
    UPDATE_PRODUCT = "UPDATE_PRODUCT"
    DELETE_PRODUCT = "DELETE_PRODUCT"
    CREATE_CATEGORY = "CREATE_CATEGORY"
    DELETE_CATEGORY = "DELETE_CATEGORY"
    VIEW_ORDERS = "VIEW_ORDERS"
    UPDATE_ORDER = "UPDATE_ORDER"
    CANCEL_ORDER = "CANCEL_ORDER"
    REFUND_ORDER = "REFUND_ORDER"
    DELETE_ORDER = "DELETE_ORDER"
    DELETE_REVIEW = "DELETE_REVIEW"
    BULK_UPDATE = "BULK_UPDATE"
    BULK_DELETE = "BULK_DELETE"

    # System
    VIEW_DASHBOARD = "VIEW_DASHBOARD"
    DATA_EXPORT = "DATA_EXPORT"
    SYSTEM_CONFIGURATION_CHANGE = "SYSTEM_CONFIGURATION_CHANGE"
    SECURITY_SETTINGS_CHANGE = "SECURITY_SETTINGS_CHANGE"
    DATABASE_OPERATION = "DATABASE_OPERATION"

    # Audit trail
    VIEW_AUDIT_LOGS = "VIEW_AUDIT_LOGS"
    AUDIT_EXPORT = "AUDIT_EXPORT"
    AUDIT_REVIEWED = "AUDIT_REVIEWED"
    AUDIT_PURGE = "AUDIT_PURGE"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


_MEDIUM_MARKERS = ("DELETE", "BULK")


@dataclass(frozen=True)
class AuditPolicy:
    """Versioned classification table used by the audit trail at write time.

    Classification order: explicit CRITICAL list, explicit HIGH list, then
    MEDIUM for deletion or bulk actions, else LOW.
    """

    version: str
    critical_actions: FrozenSet[str]
    high_actions: FrozenSet[str]
    retention_days: Dict[RiskLevel, int] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        version: str,
        critical_actions: Iterable[str],
        high_actions: Iterable[str],
        retention_days: Dict[str, int],
    ) -> "AuditPolicy":
        days = {RiskLevel(level): int(value) for level, value in retention_days.items()}
        missing = [level.value for level in RiskLevel if level not in days]
        if missing:
            raise ValueError(f"Retention days missing for risk levels: {', '.join(missing)}")
        return cls(
            version=version,
            critical_actions=frozenset(_action_name(a) for a in critical_actions),
            high_actions=frozenset(_action_name(a) for a in high_actions),
            retention_days=days,
        )

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "AuditPolicy":
        config = config or settings
        return cls.build(
            version=config.AUDIT_POLICY_VERSION,
            critical_actions=config.AUDIT_CRITICAL_ACTIONS,
            high_actions=config.AUDIT_HIGH_ACTIONS,
            retention_days=config.AUDIT_RETENTION_DAYS,
        )


def _action_name(action) -> str:
    return action.value if isinstance(action, AuditAction) else str(action)


def classify_risk(policy: AuditPolicy, action) -> RiskLevel:
    """Return the risk level for an action under the given policy."""
    name = _action_name(action)
    if name in policy.critical_actions:
        return RiskLevel.CRITICAL
    if name in policy.high_actions:
        return RiskLevel.HIGH
    if any(marker in name for marker in _MEDIUM_MARKERS):
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def retention_days_for(policy: AuditPolicy, risk: RiskLevel) -> int:
    return policy.retention_days[risk]
