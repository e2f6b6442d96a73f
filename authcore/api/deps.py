"""Service providers for route dependencies (overridable in tests)."""

from authcore.services.audit_service import AuditTrail, audit_trail
from authcore.services.permission_service import PermissionEvaluator, permission_service
from authcore.services.role_service import RoleStore, role_store


def get_permission_evaluator() -> PermissionEvaluator:
    return permission_service


def get_role_store() -> RoleStore:
    return role_store


def get_audit_trail() -> AuditTrail:
    return audit_trail
