"""Roles & permissions API router."""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from authcore.api.admin import user_to_out
from authcore.api.deps import get_permission_evaluator, get_role_store
from authcore.core.permissions import get_permissions_grouped
from authcore.core.security import RequirePermission, get_current_user_id
from authcore.db.session import get_db
from authcore.schemas.schemas import (
    MessageResponse,
    PermissionOut,
    RoleAssignRequest,
    RoleCreate,
    RoleOut,
    RoleUpdate,
    UserListResponse,
    UserPermissionsOut,
)
from authcore.services.permission_service import PermissionEvaluator
from authcore.services.role_service import RoleStore, role_to_out

router = APIRouter(prefix="/roles", tags=["roles"])


@router.get("", response_model=List[RoleOut])
def list_roles(
    is_active: Optional[bool] = Query(None),
    is_system_role: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    store: RoleStore = Depends(get_role_store),
    user_id: int = Depends(RequirePermission("roles.read")),
):
    """List roles, highest priority first."""
    return store.list_roles(db, is_active=is_active, is_system_role=is_system_role)


@router.post("", response_model=RoleOut, status_code=status.HTTP_201_CREATED)
def create_role(
    body: RoleCreate,
    db: Session = Depends(get_db),
    store: RoleStore = Depends(get_role_store),
    user_id: int = Depends(RequirePermission("roles.create")),
):
    """Create a custom role."""
    role = store.create(db, body, created_by=user_id)
    return role_to_out(role)


@router.get("/permissions", response_model=Dict[str, List[PermissionOut]])
def list_permissions(
    user_id: int = Depends(RequirePermission("roles.read")),
):
    """All registered permissions grouped by resource."""
    return {
        resource: [
            PermissionOut(permission=key, **info._asdict())
            for key, info in entries.items()
        ]
        for resource, entries in get_permissions_grouped().items()
    }


@router.get("/me/permissions", response_model=UserPermissionsOut)
def my_permissions(
    db: Session = Depends(get_db),
    evaluator: PermissionEvaluator = Depends(get_permission_evaluator),
    user_id: int = Depends(get_current_user_id),
):
    """Effective permissions of the calling user."""
    return UserPermissionsOut(
        user_id=user_id,
        permissions=evaluator.get_user_permissions(db, user_id),
        grouped=evaluator.get_user_permissions_grouped(db, user_id),
    )


@router.post("/assign", response_model=MessageResponse)
def assign_role(
    body: RoleAssignRequest,
    db: Session = Depends(get_db),
    store: RoleStore = Depends(get_role_store),
    user_id: int = Depends(RequirePermission("users.assign_role")),
):
    """Assign a role to a user."""
    user = store.assign_to_user(
        db, body.user_id, body.role_name, performed_by=user_id, reason=body.reason,
    )
    return MessageResponse(
        message=f"Role '{user.role}' assigned to user {user.id}",
        detail=user_to_out(user).model_dump(mode="json"),
    )


@router.get("/{name}/users", response_model=UserListResponse)
def role_users(
    name: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    store: RoleStore = Depends(get_role_store),
    user_id: int = Depends(RequirePermission("roles.read", "users.read")),
):
    """Users currently holding a role."""
    result = store.get_users_by_role(db, name, page, page_size)
    return UserListResponse(
        users=[user_to_out(u) for u in result["users"]],
        total=result["total"],
        page=result["page"],
        page_size=result["page_size"],
    )


@router.get("/{role_id}", response_model=RoleOut)
def get_role(
    role_id: int,
    db: Session = Depends(get_db),
    store: RoleStore = Depends(get_role_store),
    user_id: int = Depends(RequirePermission("roles.read")),
):
    role = store.get_role(db, role_id)
    return role_to_out(role, store.count_users(db, role.name))


@router.patch("/{role_id}", response_model=RoleOut)
def update_role(
    role_id: int,
    body: RoleUpdate,
    db: Session = Depends(get_db),
    store: RoleStore = Depends(get_role_store),
    user_id: int = Depends(RequirePermission("roles.update")),
):
    """Update a role; system roles accept only is_active."""
    role = store.update(db, role_id, body, updated_by=user_id)
    return role_to_out(role, store.count_users(db, role.name))


@router.delete("/{role_id}", response_model=MessageResponse)
def delete_role(
    role_id: int,
    db: Session = Depends(get_db),
    store: RoleStore = Depends(get_role_store),
    user_id: int = Depends(RequirePermission("roles.delete")),
):
    store.delete(db, role_id, deleted_by=user_id)
    return MessageResponse(message=f"Role {role_id} deleted")
