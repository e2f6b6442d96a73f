"""Permission evaluator: resolves "does user U have permission P?".

Resolution order: cache, then the user's permission snapshot (lazily
materialised from the role, or the built-in role table), then wildcard
matching. A denial is returned as ``False``; turning it into a rejection and
an audit entry is the caller's job (see ``core.security``).
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from authcore.core.audit_policy import AuditAction
from authcore.core.default_roles import DEFAULT_ROLES
from authcore.core.permissions import (
    GLOBAL_WILDCARD,
    dump_permission_list,
    is_valid_permission,
    load_permission_list,
    matches_permission,
)
from authcore.models.audit_log import AuditLog
from authcore.models.role import Role
from authcore.models.user import User
from authcore.services.audit_service import AuditTrail, audit_trail
from authcore.services.permission_cache import PermissionCache, permission_cache

logger = logging.getLogger(__name__)

CHECK_MODES = ("all", "any")


class PermissionEvaluator:
    """Checks user permissions through the injected cache."""

    def __init__(
        self,
        cache: PermissionCache,
        audit: AuditTrail,
        default_roles: Optional[Dict[str, dict]] = None,
    ):
        self.cache = cache
        self.audit = audit
        self.default_roles = DEFAULT_ROLES if default_roles is None else default_roles

    def check(self, db: Session, user_id: int, permission: str) -> bool:
        """Return True if the user holds a grant matching ``permission``."""
        if not is_valid_permission(permission):
            logger.warning("Invalid permission check attempted: user=%s permission=%r", user_id, permission)
            return False

        cached = self.cache.get_decision(user_id, permission)
        if cached is not None:
            return cached

        generation = self.cache.generation(user_id)
        try:
            granted = self._resolve_permissions(db, user_id, generation)
        except SQLAlchemyError as exc:
            logger.error("Permission lookup failed for user %s: %s", user_id, exc)
            return False
        if granted is None:
            return False

        allowed = (
            GLOBAL_WILDCARD in granted
            or permission in granted
            or any(matches_permission(permission, grant) for grant in granted)
        )
        self.cache.set_decision(user_id, permission, allowed, generation=generation)
        return allowed

    def get_user_permissions(self, db: Session, user_id: int) -> List[str]:
        """Return the user's effective permission list.

        Uses the stored snapshot when present; otherwise resolves the role's
        permissions, writes them onto the user as the new snapshot, and
        caches them. Unknown users and roles resolve to an empty list that
        is not cached.
        """
        resolved = self._resolve_permissions(db, user_id, self.cache.generation(user_id))
        return [] if resolved is None else resolved

    def _resolve_permissions(self, db: Session, user_id: int, generation) -> Optional[List[str]]:
        cached = self.cache.get_permissions(user_id)
        if cached is not None:
            return cached

        user = db.get(User, user_id)
        if user is None:
            logger.warning("User %s not found when fetching permissions", user_id)
            return None

        snapshot = load_permission_list(user.permissions_json)
        if snapshot:
            self.cache.set_permissions(user_id, snapshot, generation=generation)
            return snapshot

        role = db.query(Role).filter(Role.name == user.role).first()
        if role is not None:
            permissions = load_permission_list(role.permissions_json)
        elif user.role in self.default_roles:
            permissions = list(self.default_roles[user.role]["permissions"])
            logger.info(
                "Using built-in permissions for role %s (user %s, %d permissions)",
                user.role, user_id, len(permissions),
            )
        else:
            logger.warning("Role %r not found for user %s", user.role, user_id)
            return None

        if permissions:
            try:
                user.permissions_json = dump_permission_list(permissions)
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error("Could not store permission snapshot for user %s: %s", user_id, exc)

        self.cache.set_permissions(user_id, permissions, generation=generation)
        return permissions

    def get_user_permissions_grouped(self, db: Session, user_id: int) -> Dict[str, List[str]]:
        grouped: Dict[str, List[str]] = {}
        for permission in self.get_user_permissions(db, user_id):
            if permission == GLOBAL_WILDCARD:
                grouped["all"] = [GLOBAL_WILDCARD]
                continue
            resource, _, action = permission.partition(".")
            grouped.setdefault(resource, []).append(action)
        return grouped

    def check_permissions(
        self, db: Session, user_id: int, permissions: Iterable[str], mode: str = "all"
    ) -> bool:
        """Evaluate each permission independently and combine with AND/OR.

        An empty list, a non-list, or an unknown mode is always denied.
        """
        if isinstance(permissions, str) or mode not in CHECK_MODES:
            return False
        permissions = list(permissions)
        if not permissions:
            return False

        results = [self.check(db, user_id, permission) for permission in permissions]
        return all(results) if mode == "all" else any(results)

    def check_all(self, db: Session, user_id: int, permissions: Iterable[str]) -> bool:
        return self.check_permissions(db, user_id, permissions, "all")

    def check_any(self, db: Session, user_id: int, permissions: Iterable[str]) -> bool:
        return self.check_permissions(db, user_id, permissions, "any")

    def missing_permissions(
        self, db: Session, user_id: int, permissions: Iterable[str]
    ) -> List[str]:
        return [p for p in permissions if not self.check(db, user_id, p)]

    def log_denied(
        self,
        db: Session,
        user_id: Optional[int],
        permission: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """Record a denied permission check in the audit trail."""
        context = dict(context or {})
        request_fields = {
            key: context.pop(key, None)
            for key in ("endpoint", "method", "ip_address", "user_agent")
        }
        logger.warning(
            "Unauthorized access attempt: user=%s permission=%s endpoint=%s",
            user_id, permission, request_fields["endpoint"],
        )
        return self.audit.record(
            db,
            AuditAction.UNAUTHORIZED_ACCESS,
            actor_id=user_id,
            resource_type="permission",
            resource_id=permission,
            status_code=403,
            success=False,
            error_message=f"Missing permission: {permission}",
            details={"permission": permission, **context},
            **request_fields,
        )

    def invalidate_user(self, user_id: int) -> int:
        return self.cache.invalidate(user_id)

    def invalidate_all(self) -> int:
        return self.cache.invalidate_all()

    def cache_stats(self) -> Dict[str, int]:
        return self.cache.stats()


permission_service = PermissionEvaluator(cache=permission_cache, audit=audit_trail)
