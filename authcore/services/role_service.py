"""Role store: create, update, delete and assign roles.

Every mutation validates the whole request before writing anything. System
roles (seeded from the built-in role table) can only be activated or
deactivated; their names are permanent and they cannot be deleted.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from authcore.core.audit_policy import AuditAction
from authcore.core.exceptions import (
    ResourceConflictError,
    ResourceNotFoundError,
    RoleInUseError,
    ValidationError,
)
from authcore.core.permissions import (
    dump_permission_list,
    load_permission_list,
    validate_permissions,
)
from authcore.models.role import Role
from authcore.models.user import User
from authcore.schemas.schemas import RoleOut
from authcore.services.audit_service import AuditTrail, audit_trail
from authcore.services.role_assignment import RoleAssignmentWorkflow, role_assignment

logger = logging.getLogger(__name__)

ROLE_NAME_RE = re.compile(r"^[a-z_]+$")
REQUIRED_FIELDS = ("name", "display_name", "description", "permissions", "priority")
UPDATABLE_FIELDS = ("name", "display_name", "description", "permissions", "priority", "is_active")
SYSTEM_ROLE_FIELDS = ("is_active",)


def _as_dict(data: Any) -> Dict[str, Any]:
    if hasattr(data, "model_dump"):
        return data.model_dump(exclude_unset=True)
    return dict(data)


def _normalise_name(name: Any) -> str:
    if not isinstance(name, str) or not ROLE_NAME_RE.match(name.strip().lower()):
        raise ValidationError(
            "Role name must contain only lowercase letters and underscores"
        )
    return name.strip().lower()


def _check_priority(priority: Any) -> int:
    if isinstance(priority, bool) or not isinstance(priority, int) or not 1 <= priority <= 100:
        raise ValidationError("Priority must be an integer between 1 and 100")
    return priority


def _check_permissions(permissions: Any) -> List[str]:
    if not isinstance(permissions, (list, tuple)):
        raise ValidationError("Permissions must be a list")
    valid, invalid = validate_permissions(permissions)
    if not valid:
        raise ValidationError(f"Invalid permissions: {', '.join(map(str, invalid))}")
    return list(permissions)


def _snapshot(role: Role) -> Dict[str, Any]:
    return {
        "name": role.name,
        "display_name": role.display_name,
        "description": role.description,
        "permissions": load_permission_list(role.permissions_json),
        "priority": role.priority,
        "is_active": role.is_active,
    }


def role_to_out(role: Role, user_count: int = 0) -> RoleOut:
    return RoleOut(
        id=role.id,
        name=role.name,
        display_name=role.display_name,
        description=role.description,
        permissions=load_permission_list(role.permissions_json),
        priority=role.priority,
        is_system_role=role.is_system_role,
        is_active=role.is_active,
        user_count=user_count,
        last_assigned_at=role.last_assigned_at,
        created_at=role.created_at,
        updated_at=role.updated_at,
    )


class RoleStore:
    """Owns role records and drives the assignment workflow on changes."""

    def __init__(self, workflow: RoleAssignmentWorkflow, audit: AuditTrail):
        self.workflow = workflow
        self.audit = audit

    # ---- reads ----

    def get_role(self, db: Session, role_id: int) -> Role:
        role = db.get(Role, role_id)
        if role is None:
            raise ResourceNotFoundError(f"Role {role_id} not found")
        return role

    def get_role_by_name(self, db: Session, name: str) -> Role:
        role = db.query(Role).filter(Role.name == str(name).strip().lower()).first()
        if role is None:
            raise ResourceNotFoundError(f"Role '{name}' not found")
        return role

    def count_users(self, db: Session, role_name: str) -> int:
        return db.query(func.count(User.id)).filter(User.role == role_name).scalar() or 0

    def list_roles(
        self,
        db: Session,
        is_active: Optional[bool] = None,
        is_system_role: Optional[bool] = None,
    ) -> List[RoleOut]:
        """List roles by priority (highest first) with their current user counts."""
        query = db.query(Role)
        if is_active is not None:
            query = query.filter(Role.is_active == is_active)
        if is_system_role is not None:
            query = query.filter(Role.is_system_role == is_system_role)
        roles = query.order_by(Role.priority.desc(), Role.name).all()

        counts = dict(
            db.query(User.role, func.count(User.id)).group_by(User.role).all()
        )
        return [role_to_out(role, counts.get(role.name, 0)) for role in roles]

    def get_users_by_role(
        self, db: Session, role_name: str, page: int = 1, page_size: int = 20
    ) -> Dict[str, Any]:
        role = self.get_role_by_name(db, role_name)
        query = db.query(User).filter(User.role == role.name)
        total = query.count()
        users = query.order_by(User.id).offset((page - 1) * page_size).limit(page_size).all()
        return {"users": users, "total": total, "page": page, "page_size": page_size}

    # ---- mutations ----

    def create(self, db: Session, data: Any, created_by: Optional[int] = None) -> Role:
        """Create a custom (non-system) role.

        Raises:
            ValidationError: Missing fields, bad name, priority or permissions.
            ResourceConflictError: A role with that name already exists.
        """
        data = _as_dict(data)
        missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        name = _normalise_name(data["name"])
        priority = _check_priority(data["priority"])
        if db.query(Role).filter(Role.name == name).first() is not None:
            raise ResourceConflictError(f"Role '{name}' already exists")
        permissions = _check_permissions(data["permissions"])

        role = Role(
            name=name,
            display_name=data["display_name"],
            description=data["description"],
            permissions_json=dump_permission_list(permissions),
            priority=priority,
            is_system_role=False,
            is_active=data.get("is_active", True),
            created_by=created_by,
            updated_by=created_by,
        )
        db.add(role)
        db.commit()
        db.refresh(role)
        logger.info("Role %s created by %s", role.name, created_by)

        self.audit.record(
            db,
            AuditAction.ROLE_CREATED,
            actor_id=created_by,
            resource_type="role",
            resource_id=role.id,
            changes={"after": _snapshot(role)},
        )
        return role

    def update(
        self, db: Session, role_id: int, patch: Any, updated_by: Optional[int] = None
    ) -> Role:
        """Apply a partial update to a role.

        Changed permissions are pushed to every holder of the role and their
        cache entries dropped before this returns.
        """
        patch = _as_dict(patch)
        reason = patch.pop("reason", None)
        role = self.get_role(db, role_id)

        unknown = [key for key in patch if key not in UPDATABLE_FIELDS]
        if unknown:
            raise ValidationError(f"Unknown role fields: {', '.join(unknown)}")

        if role.is_system_role:
            if "name" in patch and patch["name"] != role.name:
                raise ResourceConflictError(f"System role '{role.name}' cannot be renamed")
            blocked = [key for key in patch if key not in SYSTEM_ROLE_FIELDS and key != "name"]
            if blocked:
                raise ValidationError(
                    f"System role '{role.name}' only allows changing: is_active "
                    f"(got {', '.join(blocked)})"
                )
            patch = {key: value for key, value in patch.items() if key in SYSTEM_ROLE_FIELDS}

        # Validate the whole patch before touching the row.
        changes: Dict[str, Any] = {}
        if "name" in patch and patch["name"] != role.name:
            new_name = _normalise_name(patch["name"])
            if new_name != role.name:
                if db.query(Role).filter(Role.name == new_name).first() is not None:
                    raise ResourceConflictError(f"Role '{new_name}' already exists")
                changes["name"] = new_name
        if patch.get("permissions") is not None:
            changes["permissions"] = _check_permissions(patch["permissions"])
        if patch.get("priority") is not None:
            changes["priority"] = _check_priority(patch["priority"])
        for key in ("display_name", "description", "is_active"):
            if patch.get(key) is not None:
                changes[key] = patch[key]

        before = _snapshot(role)
        old_name = role.name
        affected: List[int] = []
        # The role row and its holders change in one transaction.
        try:
            for key, value in changes.items():
                if key == "permissions":
                    role.permissions_json = dump_permission_list(value)
                else:
                    setattr(role, key, value)
            role.updated_by = updated_by
            db.flush()
            if "name" in changes:
                affected += self.workflow.rename_role(db, old_name, role.name, commit=False)
            if "permissions" in changes:
                affected += self.workflow.propagate_permissions(
                    db, role.name, changes["permissions"], commit=False
                )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Update of role %s rolled back: %s", old_name, exc)
            raise
        db.refresh(role)
        self.workflow.cache.invalidate_many(sorted(set(affected)))

        logger.info("Role %s updated by %s (%s)", role.name, updated_by, ", ".join(changes) or "no changes")
        self.audit.record(
            db,
            AuditAction.ROLE_UPDATED,
            actor_id=updated_by,
            resource_type="role",
            resource_id=role.id,
            changes={"before": before, "after": _snapshot(role)},
            details={"reason": reason} if reason else None,
        )
        return role

    def delete(self, db: Session, role_id: int, deleted_by: Optional[int] = None) -> None:
        """Delete an unreferenced custom role.

        Raises:
            ResourceConflictError: The role is a system role.
            RoleInUseError: Users still reference the role.
        """
        role = self.get_role(db, role_id)
        if role.is_system_role:
            raise ResourceConflictError(f"System role '{role.name}' cannot be deleted")

        user_count = self.count_users(db, role.name)
        if user_count > 0:
            raise RoleInUseError(role.name, user_count)

        self.audit.record(
            db,
            AuditAction.ROLE_DELETED,
            actor_id=deleted_by,
            resource_type="role",
            resource_id=role.id,
            changes={"before": _snapshot(role)},
        )
        db.delete(role)
        db.commit()
        logger.info("Role %s deleted by %s", role.name, deleted_by)

    def assign_to_user(
        self,
        db: Session,
        user_id: int,
        role_name: str,
        performed_by: Optional[int] = None,
        reason: str = "",
    ) -> User:
        user = db.get(User, user_id)
        if user is None:
            raise ResourceNotFoundError(f"User {user_id} not found")
        role = self.get_role_by_name(db, role_name)
        if not role.is_active:
            raise ValidationError(f"Cannot assign inactive role '{role.name}'")
        return self.workflow.assign(db, user, role, performed_by=performed_by, reason=reason)


role_store = RoleStore(workflow=role_assignment, audit=audit_trail)
