"""Permission registry and matching rules.

Permission naming: `<resource>.<action>`, a per-resource wildcard
`<resource>.*`, or the global wildcard `*`.

Every concrete permission must be registered in PERMISSIONS. Strings that
are not registered (and are not a wildcard over a registered resource) are
rejected before they are stored on a role or evaluated for a user.
"""

from __future__ import annotations

import json
from typing import NamedTuple, Optional

GLOBAL_WILDCARD = "*"


class PermissionInfo(NamedTuple):
    resource: str
    action: str
    risk: str
    description: str


def _p(resource: str, action: str, risk: str, description: str) -> tuple[str, PermissionInfo]:
    return f"{resource}.{action}", PermissionInfo(resource, action, risk, description)


# ── All known permissions ───────────────────────────────────

PERMISSIONS: dict[str, PermissionInfo] = dict([
    # Products
    _p("products", "read", "low", "View product listings and details"),
    _p("products", "create", "medium", "Create new products"),
    _p("products", "update", "medium", "Update existing products"),
    _p("products", "delete", "high", "Delete products"),
    _p("products", "publish", "medium", "Publish or unpublish products"),

    # Categories
    _p("categories", "read", "low", "View categories"),
    _p("categories", "create", "medium", "Create categories"),
    _p("categories", "update", "medium", "Update categories"),
    _p("categories", "delete", "high", "Delete categories"),

    # Orders
    _p("orders", "read", "low", "View order details"),
    _p("orders", "update", "medium", "Update order status and details"),
    _p("orders", "cancel", "high", "Cancel orders"),
    _p("orders", "refund", "high", "Process order refunds"),

    # Users
    _p("users", "read", "medium", "View user profiles"),
    _p("users", "create", "high", "Create user accounts"),
    _p("users", "update", "high", "Update user information"),
    _p("users", "delete", "critical", "Delete user accounts"),
    _p("users", "assign_role", "critical", "Assign roles to users"),

    # Content
    _p("content", "read", "low", "View content and pages"),
    _p("content", "create", "low", "Create content"),
    _p("content", "update", "low", "Update content"),
    _p("content", "delete", "medium", "Delete content"),
    _p("content", "moderate", "medium", "Moderate user-generated content"),

    # Reviews
    _p("reviews", "read", "low", "View product reviews"),
    _p("reviews", "moderate", "medium", "Approve or reject reviews"),
    _p("reviews", "delete", "medium", "Delete reviews"),

    # Inventory
    _p("inventory", "read", "low", "View inventory levels"),
    _p("inventory", "update", "medium", "Update inventory quantities"),
    _p("inventory", "adjust", "high", "Make inventory adjustments"),

    # Marketing
    _p("marketing", "read", "low", "View marketing campaigns"),
    _p("marketing", "create", "medium", "Create marketing campaigns"),
    _p("marketing", "send", "high", "Send marketing campaigns"),

    # Analytics
    _p("analytics", "read", "low", "View analytics and reports"),
    _p("analytics", "export", "medium", "Export analytics data"),

    # Settings
    _p("settings", "read", "medium", "View system settings"),
    _p("settings", "update", "critical", "Update system settings"),

    # Roles
    _p("roles", "read", "medium", "View roles and permissions"),
    _p("roles", "create", "critical", "Create roles"),
    _p("roles", "update", "critical", "Update role permissions"),
    _p("roles", "delete", "critical", "Delete roles"),

    # Audit
    _p("audit", "read", "medium", "View audit logs"),
    _p("audit", "export", "high", "Export audit logs"),
    _p("audit", "review", "medium", "Mark audit entries as reviewed"),
    _p("audit", "purge", "critical", "Purge old audit logs"),
])

_WILDCARD_INFO = PermissionInfo("all", "all", "critical", "All permissions (Super Admin)")


def _split(permission: str) -> tuple[str, str]:
    resource, _, action = permission.partition(".")
    return resource, action


# ── Registry lookups ────────────────────────────────────────

def get_all_permissions() -> list[str]:
    return list(PERMISSIONS)


def get_all_resources() -> list[str]:
    return sorted({info.resource for info in PERMISSIONS.values()})


def get_actions_for_resource(resource: str) -> list[str]:
    return sorted(info.action for info in PERMISSIONS.values() if info.resource == resource)


def get_permissions_by_resource(resource: str) -> dict[str, PermissionInfo]:
    return {key: info for key, info in PERMISSIONS.items() if info.resource == resource}


def get_permissions_grouped() -> dict[str, dict[str, PermissionInfo]]:
    grouped: dict[str, dict[str, PermissionInfo]] = {}
    for key, info in PERMISSIONS.items():
        grouped.setdefault(info.resource, {})[key] = info
    return grouped


def get_permissions_by_risk(risk: str) -> dict[str, PermissionInfo]:
    return {key: info for key, info in PERMISSIONS.items() if info.risk == risk}


def get_permission_metadata(permission: str) -> Optional[PermissionInfo]:
    """Return registry metadata for a permission, or None if unknown."""
    if permission == GLOBAL_WILDCARD:
        return _WILDCARD_INFO
    return PERMISSIONS.get(permission)


# ── Validation ──────────────────────────────────────────────

def is_valid_permission(permission: object) -> bool:
    """Check a permission string against the grammar and the registry.

    Accepts `*`, any registered `resource.action`, and `resource.*` where
    `resource` has at least one registered action.
    """
    if not isinstance(permission, str) or not permission:
        return False
    if permission == GLOBAL_WILDCARD:
        return True
    if permission in PERMISSIONS:
        return True
    resource, action = _split(permission)
    return action == "*" and resource in get_all_resources()


def validate_permissions(permissions) -> tuple[bool, list]:
    """Validate a list of permissions, returning (valid, invalid_entries)."""
    invalid = [p for p in permissions if not is_valid_permission(p)]
    return not invalid, invalid


# ── Matching ────────────────────────────────────────────────

def matches_permission(required: str, granted: str) -> bool:
    """Check whether a single granted permission satisfies a required one.

    Case-sensitive; no synonym normalisation, no deny rules.
    """
    if granted == GLOBAL_WILDCARD:
        return True
    if required == granted:
        return True
    if granted.endswith(".*"):
        return _split(required)[0] == granted[:-2]
    return False


def expand_permission_pattern(pattern: str) -> list[str]:
    """Expand `*` or `resource.*` into the registered permissions it covers."""
    if pattern == GLOBAL_WILDCARD:
        return get_all_permissions()
    if pattern.endswith(".*"):
        return list(get_permissions_by_resource(pattern[:-2]))
    return [pattern]


# ── Storage encoding ────────────────────────────────────────

def load_permission_list(raw: Optional[str]) -> list[str]:
    """Decode a ``*_json`` permission column."""
    return list(json.loads(raw)) if raw else []


def dump_permission_list(permissions) -> str:
    return json.dumps(list(permissions))
