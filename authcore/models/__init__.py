"""Models package: import all models so metadata discovers them."""

from authcore.models.role import Role
from authcore.models.user import User, RoleHistoryEntry
from authcore.models.audit_log import AuditLog

__all__ = ["Role", "User", "RoleHistoryEntry", "AuditLog"]
