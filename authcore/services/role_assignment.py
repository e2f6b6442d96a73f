"""Role assignment workflow: the side effects of giving a user a role.

Assignment copies the role's permissions onto the user as a snapshot,
appends to the user's role history, stamps the role, and invalidates the
user's cached decisions before returning.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from authcore.core.audit_policy import AuditAction
from authcore.core.permissions import dump_permission_list, load_permission_list
from authcore.models.role import Role
from authcore.models.user import RoleHistoryEntry, User
from authcore.services.audit_service import AuditTrail, audit_trail
from authcore.services.permission_cache import PermissionCache, permission_cache

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoleAssignmentWorkflow:
    """Applies role changes to users and keeps the permission cache coherent."""

    def __init__(
        self,
        cache: PermissionCache,
        audit: AuditTrail,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.cache = cache
        self.audit = audit
        self._clock = clock

    def assign(
        self,
        db: Session,
        user: User,
        role: Role,
        performed_by: Optional[int] = None,
        reason: str = "",
    ) -> User:
        """Give ``user`` the role, replacing its permission snapshot."""
        before = {
            "role": user.role,
            "permissions": load_permission_list(user.permissions_json),
        }
        permissions = load_permission_list(role.permissions_json)
        now = self._clock()

        user.role = role.name
        user.permissions_json = dump_permission_list(permissions)
        user.role_history.append(
            RoleHistoryEntry(role=role.name, assigned_by=performed_by, assigned_at=now, reason=reason or None)
        )
        role.last_assigned_at = now
        self._commit(db)
        db.refresh(user)

        self.cache.invalidate(user.id)
        logger.info("Assigned role %s to user %s (by %s)", role.name, user.id, performed_by)

        self.audit.record(
            db,
            AuditAction.ROLE_ASSIGNED,
            actor_id=performed_by,
            resource_type="user",
            resource_id=user.id,
            changes={
                "before": before,
                "after": {"role": role.name, "permissions": permissions},
            },
            details={"reason": reason} if reason else None,
        )
        return user

    def propagate_permissions(
        self, db: Session, role_name: str, permissions: List[str], commit: bool = True
    ) -> List[int]:
        """Refresh the snapshot of every user holding ``role_name``.

        Returns the ids of the affected users. With ``commit=False`` the
        changes are only flushed; the caller owns the transaction and must
        invalidate the returned users once it commits.
        """
        snapshot = dump_permission_list(permissions)
        holders = db.query(User).filter(User.role == role_name).all()
        for user in holders:
            user.permissions_json = snapshot
        db.flush()

        user_ids = [user.id for user in holders]
        if commit:
            self._commit(db)
            self.cache.invalidate_many(user_ids)
        if user_ids:
            logger.info("Propagated %s permissions to %d user(s)", role_name, len(user_ids))
        return user_ids

    def rename_role(self, db: Session, old_name: str, new_name: str, commit: bool = True) -> List[int]:
        """Move every holder of ``old_name`` onto ``new_name``."""
        holders = db.query(User).filter(User.role == old_name).all()
        for user in holders:
            user.role = new_name
        db.flush()

        user_ids = [user.id for user in holders]
        if commit:
            self._commit(db)
            self.cache.invalidate_many(user_ids)
        logger.info("Renamed role %s -> %s for %d user(s)", old_name, new_name, len(user_ids))
        return user_ids

    @staticmethod
    def _commit(db: Session) -> None:
        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise


role_assignment = RoleAssignmentWorkflow(cache=permission_cache, audit=audit_trail)
